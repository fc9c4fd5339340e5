"""
Invitation Endpoints

Admins invite people into a tenant; the invitee looks the token up and
accepts it, which creates their account with the invited role.
The token routes are public: the token is the credential.
"""
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from crux.api.deps import get_email_service, get_policy_session, require_admin, unwrap
from crux.core.policies import Caller, PolicySession
from crux.schemas.invitation import (
    InvitationAccept,
    InvitationCreate,
    InvitationResponse,
    InvitationTokenResponse,
)
from crux.schemas.user import ProfileResponse
from crux.services.auth_service import issue_token
from crux.services.email_service import EmailService
from crux.services.invitation_service import InvitationService
from crux.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/invitations", tags=["invitations"])


@router.get("", response_model=List[InvitationResponse])
def list_invitations(
    tenant_id: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    caller: Caller = Depends(require_admin),
    db: PolicySession = Depends(get_policy_session),
):
    return unwrap(InvitationService(db).get_invitations(tenant_id, status_filter))


@router.post("", response_model=InvitationResponse, status_code=status.HTTP_201_CREATED)
def create_invitation(
    body: InvitationCreate,
    caller: Caller = Depends(require_admin),
    db: PolicySession = Depends(get_policy_session),
    email_service: EmailService = Depends(get_email_service),
):
    """
    Invite an email address into a tenant.

    Tenant admins can only invite into their own tenant, and never as
    super admin (rejected by the invitations policies).
    """
    return unwrap(InvitationService(db, email_service).create_invitation(
        body.email, body.role.value, body.tenant_id, body.send_email
    ))


@router.get("/token/{token}", response_model=InvitationTokenResponse)
def get_invitation_by_token(token: str, db: PolicySession = Depends(get_policy_session)):
    return unwrap(InvitationService(db).get_invitation_by_token(token))


@router.post("/accept", status_code=status.HTTP_201_CREATED)
def accept_invitation(body: InvitationAccept, db: PolicySession = Depends(get_policy_session)):
    """Create the invited account and sign it in."""
    result = unwrap(InvitationService(db).accept_invitation(body.token, body.password, body.full_name))
    return {
        "profile": ProfileResponse.model_validate(result["profile"]),
        "token": issue_token(result["user"]),
    }


@router.post("/{invitation_id}/resend", response_model=InvitationResponse)
def resend_invitation(
    invitation_id: str,
    send_email: bool = Query(True),
    caller: Caller = Depends(require_admin),
    db: PolicySession = Depends(get_policy_session),
    email_service: EmailService = Depends(get_email_service),
):
    """New token and expiry. Works for used invitations too."""
    return unwrap(InvitationService(db, email_service).resend_invitation(invitation_id, send_email))


@router.delete("/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invitation(
    invitation_id: str,
    caller: Caller = Depends(require_admin),
    db: PolicySession = Depends(get_policy_session),
):
    unwrap(InvitationService(db).delete_invitation(invitation_id))
    return None
