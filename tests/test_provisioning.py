"""New-user provisioning and invitation gating."""

from datetime import datetime, timedelta

import pytest

from crux.core.exceptions import ConflictError, PermissionDeniedError, ValidationFailedError
from crux.models import AuthUser, Profile, UserInvitation
from crux.services.provisioning import (
    create_auth_user,
    find_pending_invitation,
    handle_new_user,
    is_signup_allowed,
    normalize_email,
)


def _invite(db, tenant, email, role="user", days=7, used=False, created_at=None):
    invitation = UserInvitation(
        tenant_id=tenant.id,
        email=email,
        role=role,
        token=f"tok-{email}-{role}-{days}",
        expires_at=datetime.utcnow() + timedelta(days=days),
        used_at=datetime.utcnow() if used else None,
    )
    if created_at is not None:
        invitation.created_at = created_at
    db.add(invitation)
    db.commit()
    return invitation


def test_normalize_email():
    assert normalize_email("  Jane@Example.COM ") == "jane@example.com"
    assert normalize_email(None) == ""


class TestSignupAllowed:
    def test_pending_invitation_allows(self, db, tenant_a):
        _invite(db, tenant_a, "new@acme.example.com")
        assert is_signup_allowed(db, "new@acme.example.com")

    def test_lookup_ignores_case(self, db, tenant_a):
        _invite(db, tenant_a, "new@acme.example.com")
        assert is_signup_allowed(db, "NEW@Acme.example.com")

    def test_no_invitation(self, db):
        assert not is_signup_allowed(db, "stranger@example.com")

    def test_expired_invitation(self, db, tenant_a):
        _invite(db, tenant_a, "late@acme.example.com", days=-1)
        assert not is_signup_allowed(db, "late@acme.example.com")

    def test_used_invitation(self, db, tenant_a):
        _invite(db, tenant_a, "done@acme.example.com", used=True)
        assert not is_signup_allowed(db, "done@acme.example.com")


class TestHandleNewUser:
    def test_invited_user_gets_role_and_tenant(self, db, tenant_a):
        invitation = _invite(db, tenant_a, "lead@acme.example.com", role="tenant_admin")
        auth_user = AuthUser(email="lead@acme.example.com", hashed_password="x", user_metadata={"full_name": "Lee"})
        db.add(auth_user)
        db.flush()

        profile = handle_new_user(db, auth_user)

        assert profile.role == "tenant_admin"
        assert profile.tenant_id == tenant_a.id
        assert profile.full_name == "Lee"
        assert invitation.used_at is not None
        assert find_pending_invitation(db, "lead@acme.example.com") is None

    def test_uninvited_user_is_orphan(self, db):
        auth_user = AuthUser(email="walkin@example.com", hashed_password="x", user_metadata={})
        db.add(auth_user)
        db.flush()

        profile = handle_new_user(db, auth_user)

        assert profile.role == "user"
        assert profile.tenant_id is None

    def test_is_idempotent(self, db, tenant_a):
        _invite(db, tenant_a, "twice@acme.example.com", role="tenant_admin")
        auth_user = AuthUser(email="twice@acme.example.com", hashed_password="x", user_metadata={})
        db.add(auth_user)
        db.flush()

        first = handle_new_user(db, auth_user)
        second = handle_new_user(db, auth_user)

        assert first is second
        assert db.query(Profile).filter(Profile.id == auth_user.id).count() == 1

    def test_newest_invitation_wins(self, db, tenant_a, tenant_b):
        _invite(db, tenant_a, "pick@example.com", created_at=datetime.utcnow() - timedelta(days=2))
        _invite(db, tenant_b, "pick@example.com", role="tenant_admin", days=6)
        auth_user = AuthUser(email="pick@example.com", hashed_password="x", user_metadata={})
        db.add(auth_user)
        db.flush()

        profile = handle_new_user(db, auth_user)

        assert profile.tenant_id == tenant_b.id
        assert profile.role == "tenant_admin"

    def test_explicit_invitation_overrides_newest(self, db, tenant_a, tenant_b):
        older = _invite(db, tenant_a, "both@example.com", role="tenant_admin", created_at=datetime.utcnow() - timedelta(days=2))
        newer = _invite(db, tenant_b, "both@example.com", days=6)
        auth_user = AuthUser(email="both@example.com", hashed_password="x", user_metadata={})
        db.add(auth_user)
        db.flush()

        profile = handle_new_user(db, auth_user, older)

        assert profile.tenant_id == tenant_a.id
        assert profile.role == "tenant_admin"
        assert older.used_at is not None
        assert newer.used_at is None

    def test_explicit_invitation_must_still_be_valid(self, db, tenant_a):
        invitation = _invite(db, tenant_a, "stale@acme.example.com", days=-1)
        auth_user = AuthUser(email="stale@acme.example.com", hashed_password="x", user_metadata={})
        db.add(auth_user)
        db.flush()

        with pytest.raises(ValidationFailedError):
            handle_new_user(db, auth_user, invitation)

    def test_explicit_invitation_must_match_email(self, db, tenant_a):
        invitation = _invite(db, tenant_a, "owner@acme.example.com")
        auth_user = AuthUser(email="someone-else@example.com", hashed_password="x", user_metadata={})
        db.add(auth_user)
        db.flush()

        with pytest.raises(ValidationFailedError):
            handle_new_user(db, auth_user, invitation)


class TestCreateAuthUser:
    def test_invitation_required(self, db):
        with pytest.raises(PermissionDeniedError):
            create_auth_user(db, "nobody@example.com", "password123", require_invitation=True)
        assert db.query(AuthUser).count() == 0

    def test_invited_signup(self, db, tenant_a):
        _invite(db, tenant_a, "invited@acme.example.com")
        auth_user = create_auth_user(db, "Invited@Acme.example.com", "password123", full_name="Ivy", require_invitation=True)
        db.commit()

        assert auth_user.email == "invited@acme.example.com"
        assert auth_user.profile.tenant_id == tenant_a.id
        assert auth_user.user_metadata["full_name"] == "Ivy"

    def test_open_signup_creates_orphan(self, db):
        auth_user = create_auth_user(db, "open@example.com", "password123", require_invitation=False)
        assert auth_user.profile.tenant_id is None

    def test_short_password(self, db):
        with pytest.raises(ValidationFailedError):
            create_auth_user(db, "short@example.com", "abc", require_invitation=False)

    def test_duplicate_email(self, db):
        create_auth_user(db, "dup@example.com", "password123", require_invitation=False)
        db.commit()
        with pytest.raises(ConflictError):
            create_auth_user(db, "DUP@example.com", "password123", require_invitation=False)
