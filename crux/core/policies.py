"""
Row-Level Policy Engine

The single enforcement point for tenant isolation and role-based access.
Every read and write that a router or service performs on behalf of a
caller goes through a PolicySession, which applies the policies declared
for the table (see crux.core.rls).

Semantics follow PostgreSQL row-level security:
- Policies for the same command are OR-combined. No applicable policy = deny.
- SELECT / UPDATE / DELETE see only rows matching a USING predicate.
- INSERT and the new row of an UPDATE must satisfy a WITH CHECK predicate
  (a policy without one reuses its USING predicate).
- Hidden rows are filtered silently; failed checks raise.
- The service role bypasses every policy.
"""
from typing import Callable, Dict, Iterable, List, Optional, Type
import logging

from sqlalchemy import exists, false, or_, true
from sqlalchemy.orm import Query, Session
from sqlalchemy.sql.elements import ColumnElement

from crux.core.exceptions import PolicyViolationError, RecordNotFoundError
from crux.utils.logging import log_security_event

logger = logging.getLogger(__name__)

SELECT = "SELECT"
INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
ALL = "ALL"

ANON = "anon"
AUTHENTICATED = "authenticated"
SERVICE_ROLE = "service_role"

Predicate = Callable[["Caller"], ColumnElement]


class Caller:
    """
    The identity a request runs as.

    role and tenant_id are a snapshot of the caller's profile taken when
    the caller is resolved (crux.core.tenancy.resolve_caller). Policies
    compare rows against this snapshot, so a profile update inside the
    request cannot widen its own access.
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        role: Optional[str] = None,
        tenant_id: Optional[str] = None,
        email: Optional[str] = None,
        service: bool = False,
    ):
        self.user_id = user_id
        self.role = role
        self.tenant_id = tenant_id
        self.email = email
        self.service = service

    @classmethod
    def anonymous(cls) -> "Caller":
        return cls()

    @classmethod
    def service_role(cls) -> "Caller":
        return cls(service=True)

    @property
    def db_role(self) -> str:
        if self.service:
            return SERVICE_ROLE
        return AUTHENTICATED if self.user_id else ANON

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_super_admin(self) -> bool:
        return self.is_authenticated and self.role == "super_admin"

    @property
    def is_tenant_admin(self) -> bool:
        return self.is_authenticated and self.role == "tenant_admin" and self.tenant_id is not None

    def __repr__(self):
        return f"<Caller {self.db_role} user={self.user_id} role={self.role} tenant={self.tenant_id}>"


class Policy:
    """One named policy on one table."""

    def __init__(
        self,
        name: str,
        commands: Iterable[str] = (ALL,),
        roles: Iterable[str] = (ANON, AUTHENTICATED),
        using: Optional[Predicate] = None,
        with_check: Optional[Predicate] = None,
    ):
        self.name = name
        self.commands = frozenset(commands)
        self.roles = frozenset(roles)
        self.using = using
        self.with_check = with_check

    def applies_to(self, command: str, caller: Caller) -> bool:
        if ALL not in self.commands and command not in self.commands:
            return False
        return caller.db_role in self.roles

    def __repr__(self):
        return f"<Policy {self.name} {sorted(self.commands)}>"


class PolicyRegistry:
    """Maps table names to their policies."""

    def __init__(self):
        self._policies: Dict[str, List[Policy]] = {}

    def register(self, model, *policies: Policy) -> None:
        self._policies.setdefault(model.__tablename__, []).extend(policies)

    def policies_for(self, model) -> List[Policy]:
        return list(self._policies.get(model.__tablename__, []))

    def tables(self) -> List[str]:
        return sorted(self._policies)

    def using_clause(self, caller: Caller, model, command: str) -> ColumnElement:
        """Row visibility for SELECT / UPDATE / DELETE."""
        if caller.service:
            return true()
        predicates = [
            policy.using(caller)
            for policy in self._policies.get(model.__tablename__, [])
            if policy.using is not None and policy.applies_to(command, caller)
        ]
        return or_(*predicates) if predicates else false()

    def check_clause(self, caller: Caller, model, command: str) -> ColumnElement:
        """Acceptance of new row versions for INSERT / UPDATE."""
        if caller.service:
            return true()
        predicates = []
        for policy in self._policies.get(model.__tablename__, []):
            if not policy.applies_to(command, caller):
                continue
            predicate = policy.with_check or policy.using
            if predicate is not None:
                predicates.append(predicate(caller))
        return or_(*predicates) if predicates else false()


class PolicySession:
    """
    A SQLAlchemy session bound to a caller.

    Reads are filtered, writes are checked after flush. Transaction control
    (commit / rollback) stays with the service that owns the unit of work.
    """

    def __init__(self, session: Session, caller: Caller, registry: PolicyRegistry = None):
        if registry is None:
            from crux.core.rls import registry as default_registry
            registry = default_registry
        self.session = session
        self.caller = caller
        self.registry = registry

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def visible(self, model, command: str = SELECT) -> ColumnElement:
        """Filter clause for rows the caller may see; for aggregate queries."""
        return self.registry.using_clause(self.caller, model, command)

    def query(self, model: Type) -> Query:
        return self.session.query(model).filter(self.visible(model))

    def get(self, model: Type, ident: str):
        if ident is None:
            return None
        return self.query(model).filter(model.id == ident).first()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, obj):
        """Insert a row; raises PolicyViolationError if no INSERT check accepts it."""
        model = type(obj)
        self.session.add(obj)
        self.session.flush()
        self._verify(model, obj.id, self.registry.check_clause(self.caller, model, INSERT), INSERT)
        return obj

    def update(self, obj, values: dict):
        """Apply values to a visible row, then verify the new version."""
        model = type(obj)
        self.require_visible(model, obj.id, UPDATE)
        for field, value in values.items():
            setattr(obj, field, value)
        self.session.flush()
        self._verify(model, obj.id, self.registry.check_clause(self.caller, model, UPDATE), UPDATE)
        return obj

    def delete(self, obj) -> None:
        model = type(obj)
        self.require_visible(model, obj.id, DELETE)
        self.session.delete(obj)
        self.session.flush()

    def require_visible(self, model, ident: str, command: str) -> None:
        clause = self.registry.using_clause(self.caller, model, command)
        found = self.session.query(exists().where(model.id == ident, clause)).scalar()
        if not found:
            raise RecordNotFoundError(model.__name__, ident)

    def _verify(self, model, ident: str, clause: ColumnElement, command: str) -> None:
        accepted = self.session.query(exists().where(model.id == ident, clause)).scalar()
        if accepted:
            return
        self.session.rollback()
        log_security_event(
            "policy_violation",
            {
                "table": model.__tablename__,
                "command": command,
                "user_id": self.caller.user_id,
                "tenant_id": self.caller.tenant_id,
                "role": self.caller.role,
            },
            logger,
        )
        raise PolicyViolationError(model.__tablename__, command)

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def elevated(self) -> "PolicySession":
        """
        Same transaction, service role. For security-definer style
        operations: provisioning, public lookups, audit writes.
        """
        return PolicySession(self.session, Caller.service_role(), self.registry)

    def flush(self) -> None:
        self.session.flush()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def refresh(self, obj) -> None:
        self.session.refresh(obj)
