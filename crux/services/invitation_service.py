"""
User Invitation Service

Creating or resending an invitation is all-or-nothing: the row is
flushed (and policy-checked), the email is sent, and only then is the
transaction committed. A failed send rolls the invitation back.
"""
from datetime import datetime, timedelta
from typing import Optional

from crux.config import get_settings
from crux.core.exceptions import EmailDeliveryError, RecordNotFoundError, ValidationFailedError
from crux.core.security import generate_invitation_token
from crux.models.invitation import UserInvitation
from crux.models.tenant import Tenant
from crux.models.user import AuthUser, Profile, UserRole
from crux.services.audit_service import AuditService
from crux.services.base import BaseService, service_method
from crux.services.email_service import EmailService
from crux.services.provisioning import create_auth_user, normalize_email

settings = get_settings()

INVITATION_STATUSES = ("pending", "used", "expired")


def invitation_accept_url(token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/accept-invitation?token={token}"


class InvitationService(BaseService):

    def __init__(self, db, email_service: EmailService = None):
        super().__init__(db)
        self.email = email_service or EmailService()

    def _deliver(self, invitation: UserInvitation) -> None:
        tenant = self.db.elevated().get(Tenant, invitation.tenant_id)
        tenant_name = (tenant.business_name or tenant.name) if tenant else settings.APP_NAME
        sent, error, _ = self.email.send_invitation(invitation, tenant_name, invitation_accept_url(invitation.token))
        if not sent:
            raise EmailDeliveryError(f"Failed to send invitation email: {error}")

    def build_invitation(
        self,
        email: str,
        role: str = UserRole.USER.value,
        tenant_id: Optional[str] = None,
        send_email: bool = True,
    ) -> UserInvitation:
        """
        Insert (policy-checked) and optionally email an invitation inside
        the current unit of work. Raises; does not commit.
        """
        email = normalize_email(email)
        if not email:
            raise ValidationFailedError("Email is required")
        try:
            role = UserRole(role).value
        except ValueError:
            raise ValidationFailedError(f"Invalid role: {role}")

        tenant_id = tenant_id or self.caller.tenant_id
        if not tenant_id:
            raise ValidationFailedError("tenant_id is required")
        if self.db.elevated().get(Tenant, tenant_id) is None:
            raise RecordNotFoundError("Tenant", tenant_id)

        invitation = UserInvitation(
            tenant_id=tenant_id,
            email=email,
            role=role,
            invited_by=self.caller.user_id,
            token=generate_invitation_token(),
            expires_at=datetime.utcnow() + timedelta(days=settings.INVITATION_EXPIRY_DAYS),
        )
        self.db.add(invitation)

        if send_email:
            self._deliver(invitation)

        AuditService(self.db).record(
            "invitation.created", "user_invitation", invitation.id,
            {"email": email, "role": role}, tenant_id=tenant_id,
        )
        return invitation

    @service_method("InvitationService.create_invitation")
    def create_invitation(
        self,
        email: str,
        role: str = UserRole.USER.value,
        tenant_id: Optional[str] = None,
        send_email: bool = True,
    ):
        invitation = self.build_invitation(email, role, tenant_id, send_email)
        self.db.commit()
        self.logger.info(f"Invitation created for {invitation.email}", extra={"tenant_id": invitation.tenant_id})
        return invitation

    @service_method("InvitationService.get_invitation_by_token")
    def get_invitation_by_token(self, token: str):
        """Token lookup is public: the token itself is the credential."""
        invitation = (
            self.db.elevated().query(UserInvitation)
            .filter(UserInvitation.token == token)
            .first()
        )
        if invitation is None:
            raise RecordNotFoundError("Invitation")
        if not invitation.is_valid():
            if invitation.used_at is not None:
                raise ValidationFailedError("Invitation has already been used")
            raise ValidationFailedError("Invitation has expired")
        return invitation

    @service_method("InvitationService.accept_invitation")
    def accept_invitation(self, token: str, password: str, full_name: Optional[str] = None):
        """
        Create the invited account from exactly this token's invitation:
        its role and tenant are assigned and it is the one marked used.
        """
        response = self.get_invitation_by_token(token)
        if not response.success:
            return response
        invitation = response.data

        auth_user = create_auth_user(
            self.db.session,
            invitation.email,
            password,
            full_name=full_name,
            require_invitation=True,
            invitation=invitation,
        )
        profile = self.db.session.query(Profile).filter(Profile.id == auth_user.id).one()
        self.db.commit()
        self.logger.info(
            f"Invitation accepted by {auth_user.email}",
            extra={"tenant_id": profile.tenant_id, "user_id": auth_user.id},
        )
        return {"user": auth_user, "profile": profile}

    @service_method("InvitationService.get_invitations")
    def get_invitations(self, tenant_id: Optional[str] = None, status: Optional[str] = None):
        query = self.db.query(UserInvitation)
        if tenant_id:
            query = query.filter(UserInvitation.tenant_id == tenant_id)

        now = datetime.utcnow()
        if status == "pending":
            query = query.filter(UserInvitation.used_at.is_(None), UserInvitation.expires_at > now)
        elif status == "used":
            query = query.filter(UserInvitation.used_at.isnot(None))
        elif status == "expired":
            query = query.filter(UserInvitation.used_at.is_(None), UserInvitation.expires_at <= now)
        elif status is not None:
            raise ValidationFailedError(f"Invalid status filter: {status}")

        return query.order_by(UserInvitation.created_at.desc()).all()

    @service_method("InvitationService.resend_invitation")
    def resend_invitation(self, invitation_id: str, send_email: bool = True):
        """New token and expiry; a used invitation becomes usable again."""
        invitation = self.db.get(UserInvitation, invitation_id)
        if invitation is None:
            raise RecordNotFoundError("Invitation", invitation_id)

        self.db.update(invitation, {
            "token": generate_invitation_token(),
            "expires_at": datetime.utcnow() + timedelta(days=settings.INVITATION_EXPIRY_DAYS),
            "used_at": None,
        })
        if send_email:
            self._deliver(invitation)
        self.db.commit()
        return invitation

    @service_method("InvitationService.delete_invitation")
    def delete_invitation(self, invitation_id: str):
        invitation = self.db.get(UserInvitation, invitation_id)
        if invitation is None:
            raise RecordNotFoundError("Invitation", invitation_id)
        self.db.delete(invitation)
        self.db.commit()
        return True

    @service_method("InvitationService.is_email_registered")
    def is_email_registered(self, email: str):
        return (
            self.db.session.query(AuthUser.id)
            .filter(AuthUser.email == normalize_email(email))
            .first()
            is not None
        )
