"""
Authentication Endpoints

Signup (invitation-gated unless public signup is enabled), password
login and the current identity.
"""
from fastapi import APIRouter, Depends, Query, status
from pydantic import EmailStr

from crux.api.deps import get_policy_session, require_authenticated, unwrap
from crux.core.policies import Caller, PolicySession
from crux.schemas.auth import LoginRequest, SignupAllowedResponse, SignupRequest, Token
from crux.schemas.user import ProfileResponse
from crux.services.auth_service import AuthService
from crux.services.user_service import UserService
from crux.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/signup", response_model=Token, status_code=status.HTTP_201_CREATED)
def signup(body: SignupRequest, db: PolicySession = Depends(get_policy_session)):
    """
    Create an account.

    The profile is provisioned in the same transaction: invited emails
    get the invitation's role and tenant, everyone else an orphan account.
    """
    return unwrap(AuthService(db).signup(body.email, body.password, body.full_name, body.metadata))


@router.post("/login", response_model=Token)
def login(credentials: LoginRequest, db: PolicySession = Depends(get_policy_session)):
    """
    Authenticate and return a JWT.

    SECURITY: Generic error for unknown email and wrong password alike.
    """
    return unwrap(AuthService(db).login(credentials.email, credentials.password))


@router.get("/signup-allowed", response_model=SignupAllowedResponse)
def signup_allowed(email: EmailStr = Query(...), db: PolicySession = Depends(get_policy_session)):
    return {"email": email, "allowed": unwrap(AuthService(db).signup_allowed(email))}


@router.get("/me", response_model=ProfileResponse)
def me(
    caller: Caller = Depends(require_authenticated),
    db: PolicySession = Depends(get_policy_session),
):
    """Profile of the authenticated caller."""
    return unwrap(UserService(db).get_current_profile())
