"""CLI tools for Crux operations."""

from datetime import datetime, timedelta
from pathlib import Path
import sys
import time

import click
from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from crux.config import validate_environment
from crux.core.rls import registry
from crux.core.security import generate_invitation_token
from crux.database import Base, SessionLocal, engine, init_db
from crux.models import AuthUser, Profile, Tenant, UserInvitation, UserRole
from crux.services.provisioning import create_auth_user, find_pending_invitation, normalize_email

# Tables the policy engine never serves
UNPOLICED_TABLES = {"auth_users"}

MIGRATION_ATTEMPTS = 3


def split_statements(sql: str):
    """Split a migration file on ';', dropping comment-only lines."""
    lines = [line for line in sql.splitlines() if not line.strip().startswith("--")]
    return [statement.strip() for statement in "\n".join(lines).split(";") if statement.strip()]


def run_statement(statement: str, attempts: int = MIGRATION_ATTEMPTS, delay: float = 1.0) -> None:
    for attempt in range(1, attempts + 1):
        try:
            with engine.begin() as connection:
                connection.execute(text(statement))
            return
        except OperationalError:
            if attempt == attempts:
                raise
            click.echo(f"  ! attempt {attempt} failed, retrying")
            time.sleep(delay)


@click.group()
def cli():
    """Crux CLI tools."""
    pass


@cli.command("apply-migrations")
@click.option("--directory", default="migrations", show_default=True, help="Directory with *.sql files")
def apply_migrations(directory: str):
    """
    Create all tables, then apply SQL migrations in file name order.

    Each statement is retried up to 3 times on operational errors.

    Example:
        crux apply-migrations --directory migrations
    """
    init_db()
    click.echo("✓ Tables created from model metadata")

    files = sorted(Path(directory).glob("*.sql"))
    if not files:
        click.echo(f"No migration files in {directory}")
        return

    for path in files:
        statements = split_statements(path.read_text())
        try:
            for statement in statements:
                run_statement(statement)
        except SQLAlchemyError as e:
            click.echo(f"❌ {path.name}: {e}")
            sys.exit(1)
        click.echo(f"✓ {path.name} ({len(statements)} statements)")


@cli.command("validate-schema")
def validate_schema():
    """Check that every model table exists and every served table has policies."""
    existing = set(inspect(engine).get_table_names())
    expected = set(Base.metadata.tables)
    policed = set(registry.tables())

    missing = sorted(expected - existing)
    unpoliced = sorted(expected - policed - UNPOLICED_TABLES)

    for table in sorted(expected):
        marker = "✓" if table in existing else "❌"
        click.echo(f"{marker} {table}")

    if missing:
        click.echo(f"❌ Missing tables: {', '.join(missing)}")
    if unpoliced:
        click.echo(f"❌ Tables without policies: {', '.join(unpoliced)}")
    if missing or unpoliced:
        sys.exit(1)
    click.echo("✓ Schema is valid")


@cli.command("diagnose-user")
@click.argument("email")
def diagnose_user(email: str):
    """
    Show auth identity, profile, tenant and pending invitation for EMAIL.

    Exits 1 when the account is inconsistent (no profile, orphan, missing tenant).
    """
    email = normalize_email(email)
    db = SessionLocal()
    problems = []
    try:
        auth_user = db.query(AuthUser).filter(AuthUser.email == email).first()
        invitation = find_pending_invitation(db, email)

        if auth_user is None:
            click.echo(f"Auth user: none for {email}")
            if invitation is not None:
                click.echo(f"Pending invitation: {invitation.role} in tenant {invitation.tenant_id}")
            else:
                problems.append("no account and no pending invitation")
        else:
            click.echo(f"Auth user: {auth_user.id} (last sign in: {auth_user.last_sign_in_at or 'never'})")
            profile = db.query(Profile).filter(Profile.id == auth_user.id).first()
            if profile is None:
                problems.append("auth user has no profile")
            else:
                click.echo(f"Profile: role={profile.role} tenant={profile.tenant_id or '-'}")
                if profile.role != UserRole.SUPER_ADMIN.value:
                    if profile.tenant_id is None:
                        problems.append("orphan account (no tenant)")
                    else:
                        tenant = db.query(Tenant).filter(Tenant.id == profile.tenant_id).first()
                        if tenant is None:
                            problems.append(f"tenant {profile.tenant_id} does not exist")
                        else:
                            click.echo(f"Tenant: {tenant.name} ({tenant.status}, plan {tenant.plan_type})")
            if invitation is not None:
                click.echo(f"Unused invitation still pending: {invitation.id}")
    finally:
        db.close()

    for problem in problems:
        click.echo(f"❌ {problem}")
    if problems:
        sys.exit(1)
    click.echo("✓ No problems found")


@cli.command("smoke-test-invitations")
def smoke_test_invitations():
    """
    Invite, sign up and verify provisioning end to end.

    Runs in one transaction that is always rolled back.
    """
    db = SessionLocal()
    stamp = datetime.utcnow().strftime("%Y%m%d%H%M%S")
    email = f"smoke-{stamp}@example.com"
    failures = []
    try:
        tenant = Tenant(name=f"Smoke test {stamp}", slug=f"smoke-{stamp}")
        db.add(tenant)
        db.flush()

        invitation = UserInvitation(
            tenant_id=tenant.id,
            email=email,
            role=UserRole.TENANT_ADMIN.value,
            token=generate_invitation_token(),
            expires_at=datetime.utcnow() + timedelta(days=1),
        )
        db.add(invitation)
        db.flush()
        click.echo("✓ Tenant and invitation created")

        auth_user = create_auth_user(db, email, "smoke-test-password", require_invitation=True)
        profile = db.query(Profile).filter(Profile.id == auth_user.id).first()

        if profile is None:
            failures.append("no profile provisioned")
        else:
            if profile.role != UserRole.TENANT_ADMIN.value:
                failures.append(f"expected role tenant_admin, got {profile.role}")
            if profile.tenant_id != tenant.id:
                failures.append("profile not assigned to the inviting tenant")
        db.refresh(invitation)
        if invitation.used_at is None:
            failures.append("invitation not marked used")
        if find_pending_invitation(db, email) is not None:
            failures.append("invitation still pending after signup")
    except Exception as e:
        failures.append(f"{type(e).__name__}: {e}")
    finally:
        db.rollback()
        db.close()

    for failure in failures:
        click.echo(f"❌ {failure}")
    if failures:
        sys.exit(1)
    click.echo("✓ Invitation provisioning works (changes rolled back)")


@cli.command("check-env")
def check_env():
    """Report required settings that are missing or still placeholders."""
    report = validate_environment()
    for name in report.missing:
        click.echo(f"❌ {name} is not set")
    for name in report.placeholders:
        click.echo(f"❌ {name} still holds a placeholder value")
    if not report.is_valid:
        sys.exit(1)
    click.echo("✓ Environment looks complete")


@cli.command("promote-super-admin")
@click.argument("email")
def promote_super_admin(email: str):
    """
    Make EMAIL a super admin (detached from any tenant).

    Example:
        crux promote-super-admin admin@example.com
    """
    db = SessionLocal()
    try:
        profile = db.query(Profile).filter(Profile.email == normalize_email(email)).first()
        if profile is None:
            click.echo(f"❌ No profile for {email}")
            sys.exit(1)

        previous = profile.role
        profile.role = UserRole.SUPER_ADMIN.value
        profile.tenant_id = None
        db.commit()
        click.echo(f"✓ {email}: {previous} → super_admin")
    except SQLAlchemyError as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    cli()
