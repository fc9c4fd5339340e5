"""ServiceResponse envelope and the service_method wrapper."""

from sqlalchemy.exc import IntegrityError, OperationalError

from crux.core.exceptions import PolicyViolationError, RecordNotFoundError
from crux.core.policies import Caller, PolicySession
from crux.services.base import BaseService, ServiceResponse, service_method


class FakeSession:
    def __init__(self):
        self.caller = Caller.anonymous()
        self.rollbacks = 0

    def rollback(self):
        self.rollbacks += 1


class SampleService(BaseService):

    @service_method("SampleService.value")
    def value(self):
        return 42

    @service_method("SampleService.envelope")
    def envelope(self):
        return ServiceResponse.fail("custom", 418)

    @service_method("SampleService.missing")
    def missing(self):
        raise RecordNotFoundError("Thing", "t-1")

    @service_method("SampleService.denied")
    def denied(self):
        raise PolicyViolationError("reviews")

    @service_method("SampleService.conflict")
    def conflict(self):
        raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

    @service_method("SampleService.database")
    def database(self):
        raise OperationalError("SELECT", {}, Exception("disk I/O error"))


def test_envelope_shape():
    assert ServiceResponse.ok([1]).to_dict() == {"data": [1], "error": None, "success": True}
    assert ServiceResponse.fail("nope").to_dict() == {"data": None, "error": "nope", "success": False}


def test_fail_defaults_to_bad_request():
    assert ServiceResponse.fail("nope").status_code == 400


def test_bare_value_is_wrapped():
    result = SampleService(FakeSession()).value()
    assert result.success
    assert result.data == 42


def test_returned_envelope_passes_through():
    result = SampleService(FakeSession()).envelope()
    assert (result.error, result.status_code) == ("custom", 418)


def test_domain_errors_become_failures():
    session = FakeSession()
    service = SampleService(session)

    missing = service.missing()
    assert missing.status_code == 404
    assert missing.error == "Thing not found: t-1"

    denied = service.denied()
    assert denied.status_code == 403
    assert denied.error == 'new row violates row-level security policy for table "reviews"'
    assert session.rollbacks == 2


def test_integrity_error_is_conflict():
    result = SampleService(FakeSession()).conflict()
    assert result.status_code == 409
    assert "UNIQUE constraint failed" in result.error


def test_database_error_is_500():
    session = FakeSession()
    result = SampleService(session).database()
    assert result.status_code == 500
    assert not result.success
    assert session.rollbacks == 1


def test_paginate_clamps():
    assert BaseService.paginate(1, 20) == (0, 20)
    assert BaseService.paginate(3, 10) == (20, 10)
    assert BaseService.paginate(0, 500) == (0, 100)
    assert BaseService.paginate(None, None) == (0, 20)


def test_base_service_uses_session_caller(db):
    caller = Caller(user_id="u1", role="user", tenant_id="t1")
    service = BaseService(PolicySession(db, caller))
    assert service.caller is caller
