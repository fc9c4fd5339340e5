"""
Service base

Every public service method returns a ServiceResponse and never raises
across its boundary. Domain errors (CruxError) and database errors are
caught by @service_method, the unit of work is rolled back, and the
error is reduced to a message plus an HTTP status hint.
"""
from dataclasses import dataclass, field
from typing import Generic, Optional, TypeVar
import functools
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from crux.core.exceptions import CruxError
from crux.core.policies import PolicySession

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class ServiceResponse(Generic[T]):
    data: Optional[T] = None
    error: Optional[str] = None
    success: bool = True
    status_code: int = field(default=200, repr=False)

    @classmethod
    def ok(cls, data: T = None, status_code: int = 200) -> "ServiceResponse[T]":
        return cls(data=data, error=None, success=True, status_code=status_code)

    @classmethod
    def fail(cls, error: str, status_code: int = 400) -> "ServiceResponse[T]":
        return cls(data=None, error=error, success=False, status_code=status_code)

    def to_dict(self) -> dict:
        """Public envelope; the status hint is not part of it."""
        return {"data": self.data, "error": self.error, "success": self.success}


def service_method(context: str):
    """
    Wrap a service method so that it returns a ServiceResponse on failure.

    The wrapped method may return a ServiceResponse or a bare value, which
    is wrapped with ServiceResponse.ok().
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                result = func(self, *args, **kwargs)
            except CruxError as exc:
                self.db.rollback()
                logger.info(f"[{context}] {type(exc).__name__}: {exc.message}")
                return ServiceResponse.fail(exc.message, exc.status_code)
            except IntegrityError as exc:
                self.db.rollback()
                logger.warning(f"[{context}] Integrity error: {exc.orig}")
                return ServiceResponse.fail(f"Database constraint violation: {exc.orig}", 409)
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.error(f"[{context}] Database error: {exc}", exc_info=True)
                return ServiceResponse.fail(str(exc), 500)
            if isinstance(result, ServiceResponse):
                return result
            return ServiceResponse.ok(result)
        return wrapper
    return decorator


class BaseService:
    """Holds the caller-bound session shared by all service methods."""

    def __init__(self, db: PolicySession):
        self.db = db
        self.caller = db.caller
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @staticmethod
    def validate_id(value: Optional[str]) -> bool:
        return isinstance(value, str) and len(value) > 0

    @staticmethod
    def paginate(page: int = 1, limit: int = 20):
        """Clamp page/limit like the list endpoints expect; returns (offset, limit)."""
        page = max(1, page or 1)
        limit = min(100, max(1, limit or 20))
        return (page - 1) * limit, limit
