import pytest
from sqlalchemy import select

from branchstock.core.audit import (
    AuditAction, AuditEntry, AuditSink, DatabaseAuditSink, safe_append
)
from branchstock.core.rate_limit import MovingWindowLimiter, RateLimiter, RateLimitExceeded
from branchstock.modules.requisitions.service import RequisitionService
from branchstock.shared.database.models import AuditLog
from tests.conftest import auth_headers, make_create


class RecordingLimiter(RateLimiter):
    def __init__(self):
        self.calls = []

    def check(self, key, role=None):
        self.calls.append((key, role))


class ExplodingSink(AuditSink):
    def append(self, entry):
        raise RuntimeError("audit store down")


def _entry(action=AuditAction.REQUISITION_CREATED):
    return AuditEntry(action=action, actor_id="u-1", actor_email="a@test.io",
                      entity_type="requisition", entity_id="1", requisition_number="REQ-202601-0001")


# ===== RATE LIMIT =====

def test_moving_window_budget_per_role():
    limiter = MovingWindowLimiter(
        role_limits={"public": 1, "requester": 2, "approver": 3, "admin": 3},
        window_seconds=60,
    )

    limiter.check("u-1", "requester")
    limiter.check("u-1", "requester")
    with pytest.raises(RateLimitExceeded) as exc:
        limiter.check("u-1", "requester")
    assert exc.value.limit == 2

    limiter.check("10.0.0.1", None)
    with pytest.raises(RateLimitExceeded):
        limiter.check("10.0.0.1", None)

    # otra identidad tiene su propio presupuesto
    limiter.check("u-2", "requester")

    limiter.reset()
    limiter.check("u-1", "requester")


def test_default_budgets():
    limiter = MovingWindowLimiter()

    assert limiter.limit_for(None) == 50
    assert limiter.limit_for("requester") == 100
    assert limiter.limit_for("approver") == 200
    assert limiter.limit_for("admin") == 200
    assert limiter.window_seconds == 60


def test_rate_limit_key_uses_route_template(client, approver):
    """
    GIVEN
    - dos GET sobre requisiciones distintas

    THEN
    - ambos comparten la misma clave (la ruta declarada, no el id)
    """
    recorder = RecordingLimiter()
    client.app.state.rate_limiter = recorder

    for requisition_id in (1, 2):
        client.get(f"/api/v1/requisitions/{requisition_id}", headers=auth_headers(approver))

    keys = [key for key, _ in recorder.calls]
    assert keys == ["u-app:GET:/api/v1/requisitions/{requisition_id}"] * 2
    assert {role for _, role in recorder.calls} == {"approver"}


def test_public_endpoints_are_limited_by_client_ip(client):
    recorder = RecordingLimiter()
    client.app.state.rate_limiter = recorder

    assert client.get("/api/v1/health").status_code == 200

    assert recorder.calls == [("testclient:GET:/api/v1/health", None)]


def test_rate_limit_never_blocks_requests(client, requester):
    client.app.state.rate_limiter = MovingWindowLimiter(
        role_limits={"public": 1, "requester": 1, "approver": 1, "admin": 1}
    )

    first = client.get("/api/v1/requisitions", headers=auth_headers(requester))
    second = client.get("/api/v1/requisitions", headers=auth_headers(requester))

    assert first.status_code == 200
    assert second.status_code == 200


def test_broken_rate_limiter_is_ignored(client, requester):
    class BrokenLimiter:
        def check(self, key, role=None):
            raise ConnectionError("redis down")

    client.app.state.rate_limiter = BrokenLimiter()

    assert client.get("/api/v1/requisitions", headers=auth_headers(requester)).status_code == 200


# ===== AUDIT =====

def test_safe_append_swallows_sink_errors():
    safe_append(ExplodingSink(), _entry())
    safe_append(None, _entry())


def test_failing_audit_does_not_break_mutation(db_session, requester):
    service = RequisitionService(db_session, audit_sink=ExplodingSink())

    created = service.create_requisition(make_create("branch-a", [(1, "A", 1)]), requester)

    assert service.get_requisition(created.id, requester).id == created.id


def test_database_sink_persists_entries(session_factory, db_session):
    sink = DatabaseAuditSink(session_factory)

    sink.append(_entry())
    sink.append(_entry(AuditAction.STOCK_TRANSFER))

    rows = db_session.execute(select(AuditLog).order_by(AuditLog.id)).scalars().all()
    assert [r.action for r in rows] == [AuditAction.REQUISITION_CREATED, AuditAction.STOCK_TRANSFER]
    assert rows[0].requisition_number == "REQ-202601-0001"


def test_database_sink_logs_and_continues_on_error():
    def broken_factory():
        raise RuntimeError("no database")

    sink = DatabaseAuditSink(broken_factory)

    safe_append(sink, _entry())


def test_database_sink_writes_alongside_service_session(session_factory, db_session, requester, approver):
    """
    GIVEN
    - el servicio audita con DatabaseAuditSink, que abre su propia sesión

    THEN
    - las entradas de create y approve quedan persistidas
    """
    service = RequisitionService(db_session, audit_sink=DatabaseAuditSink(session_factory))

    created = service.create_requisition(make_create("branch-a", [(1, "A", 2)]), requester)
    service.approve(created.id, approver)
    db_session.rollback()

    rows = db_session.execute(select(AuditLog).order_by(AuditLog.id)).scalars().all()
    assert [r.action for r in rows] == [AuditAction.REQUISITION_CREATED, AuditAction.REQUISITION_APPROVE]
    assert {r.requisition_number for r in rows} == {created.requisition_number}
