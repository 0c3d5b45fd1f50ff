import re

import pytest
from sqlalchemy import func, select

from branchstock.core.audit import AuditAction
from branchstock.core.auth import Principal, Role
from branchstock.core.exceptions import AuthorizationError, ValidationError
from branchstock.modules.requisitions.schemas import Priority, RequisitionStatus
from branchstock.shared.database.models import Requisition
from tests.conftest import make_create


def _count(db_session):
    return db_session.execute(select(func.count(Requisition.id))).scalar_one()


def test_create_requisition_for_requester_branch(service, requester, audit_sink):
    """
    GIVEN
    - un solicitante de Branch-B pidiendo stock a " Branch-A "

    THEN
    - destino = sucursal del solicitante, sucursales normalizadas
    - estado pending, sin cantidades aprobadas
    """
    created = service.create_requisition(
        make_create(" Branch-A ", [(1, "Shoe", 3), (2, "Sock", 10)], notes="weekend restock"),
        requester,
    )

    assert created.status == RequisitionStatus.PENDING
    assert created.priority == Priority.NORMAL
    assert created.source_branch == "branch-a"
    assert created.destination_branch == "branch-b"
    assert created.requested_by.email == requester.email
    assert created.requested_by.branch == "branch-b"
    assert created.notes == "weekend restock"
    assert re.fullmatch(r"REQ-\d{6}-\d{4}", created.requisition_number)
    assert [(i.product_id, i.requested_qty, i.approved_qty) for i in created.items] == [(1, 3, None), (2, 10, None)]
    assert created.stock_transfer is None
    assert len(created.history) == 1

    assert audit_sink.actions() == [AuditAction.REQUISITION_CREATED]
    assert audit_sink.entries[0].requisition_number == created.requisition_number


def test_admin_can_create(service, admin):
    created = service.create_requisition(make_create("branch-b", [(1, "Shoe", 1)]), admin)

    assert created.destination_branch == "branch-a"


def test_approver_cannot_create(service, approver, db_session):
    with pytest.raises(AuthorizationError):
        service.create_requisition(make_create("branch-a", [(1, "Shoe", 1)]), approver)

    assert _count(db_session) == 0


@pytest.mark.parametrize("items,message", [
    ([], "Items are required"),
    ([(i, f"P{i}", 1) for i in range(51)], "Maximum 50 items per requisition"),
    ([(1, "Shoe", 0)], "Quantity must be between 1 and 10000"),
    ([(1, "Shoe", 10001)], "Quantity must be between 1 and 10000"),
    ([(1, "   ", 1)], "Each item must have product_id, product_name, and requested_qty"),
])
def test_invalid_items_are_rejected(service, requester, db_session, items, message):
    with pytest.raises(ValidationError) as exc:
        service.create_requisition(make_create("branch-a", items), requester)

    assert exc.value.message == message
    assert _count(db_session) == 0


def test_item_bounds_are_inclusive(service, requester):
    items = [(i, f"P{i}", 10000 if i == 0 else 1) for i in range(50)]

    created = service.create_requisition(make_create("branch-a", items), requester)

    assert len(created.items) == 50
    assert created.items[0].requested_qty == 10000


def test_source_branch_is_required(service, requester):
    with pytest.raises(ValidationError) as exc:
        service.create_requisition(make_create("  ", [(1, "Shoe", 1)]), requester)

    assert exc.value.message == "Source branch is required"


def test_source_must_differ_from_destination(service, requester, db_session):
    with pytest.raises(ValidationError):
        service.create_requisition(make_create("BRANCH-B", [(1, "Shoe", 1)]), requester)

    assert _count(db_session) == 0


def test_requester_without_branch_cannot_create(service):
    nobody = Principal(user_id="u-x", email="x@test.io", role=Role.REQUESTER)

    with pytest.raises(ValidationError):
        service.create_requisition(make_create("branch-a", [(1, "Shoe", 1)]), nobody)
