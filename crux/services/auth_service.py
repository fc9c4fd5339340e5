"""
Authentication service

Signup and password login against the auth_users table. Both run with
definer rights on the raw session: the caller is anonymous until they
hold a token, so no row policy could admit them.
"""
from datetime import datetime, timedelta

from crux.config import get_settings
from crux.core.exceptions import AuthenticationFailedError
from crux.core.security import create_access_token, verify_password
from crux.models.user import AuthUser
from crux.services.base import BaseService, service_method
from crux.services.provisioning import create_auth_user, is_signup_allowed, normalize_email
from crux.utils.logging import log_security_event

settings = get_settings()


def issue_token(auth_user: AuthUser) -> dict:
    expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = create_access_token({"sub": auth_user.id, "email": auth_user.email}, expires)
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_in": int(expires.total_seconds()),
    }


class AuthService(BaseService):

    @service_method("AuthService.signup")
    def signup(self, email: str, password: str, full_name: str = None, metadata: dict = None):
        auth_user = create_auth_user(self.db.session, email, password, full_name, metadata)
        self.db.commit()
        self.logger.info(f"New signup: {auth_user.email}", extra={"user_id": auth_user.id})
        return issue_token(auth_user)

    @service_method("AuthService.login")
    def login(self, email: str, password: str):
        """
        Password login.

        SECURITY: Unknown email and wrong password produce the same error.
        """
        email = normalize_email(email)
        auth_user = self.db.session.query(AuthUser).filter(AuthUser.email == email).first()

        if auth_user is None or not verify_password(password, auth_user.hashed_password):
            log_security_event(
                "failed_login",
                {"email": email, "reason": "unknown_email" if auth_user is None else "bad_password"},
                self.logger,
            )
            raise AuthenticationFailedError("Invalid email or password")

        auth_user.last_sign_in_at = datetime.utcnow()
        self.db.commit()

        log_security_event("successful_login", {"user_id": auth_user.id}, self.logger)
        return issue_token(auth_user)

    @service_method("AuthService.signup_allowed")
    def signup_allowed(self, email: str) -> bool:
        if settings.ALLOW_PUBLIC_SIGNUP:
            return True
        return is_signup_allowed(self.db.session, email)
