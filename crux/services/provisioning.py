"""
New-user provisioning

handle_new_user() runs once per new auth identity, inside the transaction
that created it, with definer rights (raw session, no row policies):

1. An unused, unexpired invitation for the email exists (the accepted
   token's invitation when one is given, else the newest): profile gets
   its role and tenant, and it is marked used.
2. Otherwise: profile with role "user" and no tenant (orphan account).

It is idempotent on the profile id: a second call returns the existing
profile untouched.
"""
from datetime import datetime
from typing import Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from crux.config import get_settings
from crux.core.exceptions import ConflictError, PermissionDeniedError, ValidationFailedError
from crux.core.security import get_password_hash
from crux.models.invitation import UserInvitation
from crux.models.user import AuthUser, Profile, UserRole
from crux.utils.logging import log_security_event

logger = logging.getLogger(__name__)
settings = get_settings()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def find_pending_invitation(db: Session, email: str, now: datetime = None) -> Optional[UserInvitation]:
    """Newest unused, unexpired invitation for email."""
    now = now or datetime.utcnow()
    return (
        db.query(UserInvitation)
        .filter(
            func.lower(UserInvitation.email) == normalize_email(email),
            UserInvitation.used_at.is_(None),
            UserInvitation.expires_at > now,
        )
        .order_by(UserInvitation.created_at.desc())
        .first()
    )


def is_signup_allowed(db: Session, email: str) -> bool:
    """True iff a pending (unused and unexpired) invitation exists for email."""
    return find_pending_invitation(db, email) is not None


def handle_new_user(db: Session, auth_user: AuthUser, invitation: Optional[UserInvitation] = None) -> Profile:
    """
    Create the profile for a new auth identity. Does not commit.

    invitation pins the row to consume (token acceptance); without it the
    newest pending invitation for the email is used.
    """
    existing = db.query(Profile).filter(Profile.id == auth_user.id).first()
    if existing is not None:
        logger.debug(f"Profile already provisioned for {auth_user.id}")
        return existing

    metadata = auth_user.user_metadata or {}
    full_name = metadata.get("full_name")
    if invitation is None:
        invitation = find_pending_invitation(db, auth_user.email)
    elif not invitation.is_valid() or normalize_email(invitation.email) != normalize_email(auth_user.email):
        raise ValidationFailedError("Invitation is no longer valid")

    if invitation is not None:
        profile = Profile(
            id=auth_user.id,
            email=auth_user.email,
            full_name=full_name,
            role=invitation.role,
            tenant_id=invitation.tenant_id,
        )
        invitation.used_at = datetime.utcnow()
        logger.info(
            f"Provisioned {auth_user.email} from invitation {invitation.id}",
            extra={"tenant_id": invitation.tenant_id, "user_id": auth_user.id},
        )
    else:
        profile = Profile(
            id=auth_user.id,
            email=auth_user.email,
            full_name=full_name,
            role=UserRole.USER.value,
            tenant_id=None,
        )
        logger.info(f"Provisioned orphan account {auth_user.email}", extra={"user_id": auth_user.id})

    db.add(profile)
    db.flush()
    return profile


def build_auth_user(
    db: Session,
    email: str,
    password: str,
    full_name: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> AuthUser:
    """Validate and insert an auth identity without provisioning it. Does not commit."""
    email = normalize_email(email)
    if not email:
        raise ValidationFailedError("Email is required")
    if not password or len(password) < settings.MIN_PASSWORD_LENGTH:
        raise ValidationFailedError(
            f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters long"
        )
    if db.query(AuthUser.id).filter(AuthUser.email == email).first() is not None:
        raise ConflictError("A user with this email already exists")

    user_metadata = dict(metadata or {})
    if full_name:
        user_metadata["full_name"] = full_name

    auth_user = AuthUser(
        email=email,
        hashed_password=get_password_hash(password),
        user_metadata=user_metadata,
        email_confirmed_at=datetime.utcnow(),
    )
    db.add(auth_user)
    db.flush()
    return auth_user


def create_auth_user(
    db: Session,
    email: str,
    password: str,
    full_name: Optional[str] = None,
    metadata: Optional[dict] = None,
    require_invitation: Optional[bool] = None,
    invitation: Optional[UserInvitation] = None,
) -> AuthUser:
    """
    Create an auth identity and provision its profile in the caller's
    transaction. Does not commit.

    require_invitation defaults to "not ALLOW_PUBLIC_SIGNUP". An explicit
    invitation satisfies it and is the one consumed.
    """
    if require_invitation is None:
        require_invitation = not settings.ALLOW_PUBLIC_SIGNUP
    if require_invitation and invitation is None and not is_signup_allowed(db, email):
        log_security_event("signup_rejected", {"reason": "no_invitation"}, logger)
        raise PermissionDeniedError("Signups are by invitation only")

    auth_user = build_auth_user(db, email, password, full_name, metadata)
    handle_new_user(db, auth_user, invitation)
    return auth_user
