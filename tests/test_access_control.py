import pytest

from branchstock.core.audit import AuditAction
from branchstock.core.exceptions import (
    AuthorizationError, NotFoundError, StateConflictError
)
from branchstock.modules.requisitions.schemas import TransitionAction
from tests.conftest import make_create


@pytest.fixture
def two_branches(service, requester, other_requester):
    ours = service.create_requisition(make_create("branch-a", [(1, "A", 1)]), requester)
    theirs = service.create_requisition(make_create("branch-a", [(2, "B", 1)]), other_requester)
    return ours, theirs


def test_requester_only_lists_own_branch(service, requester, two_branches):
    ours, _ = two_branches

    listing = service.list_requisitions(requester, branch="branch-c")

    assert listing.total == 1
    assert [r.id for r in listing.requisitions] == [ours.id]


def test_approver_lists_everything_or_filters(service, approver, two_branches):
    ours, theirs = two_branches

    everything = service.list_requisitions(approver)
    filtered = service.list_requisitions(approver, branch=" Branch-C ")

    assert {r.id for r in everything.requisitions} == {ours.id, theirs.id}
    assert [r.id for r in filtered.requisitions] == [theirs.id]


def test_list_filters_by_status_and_limit(service, approver, two_branches):
    ours, theirs = two_branches
    service.approve(ours.id, approver)

    assert [r.id for r in service.list_requisitions(approver, status="approved").requisitions] == [ours.id]
    assert [r.id for r in service.list_requisitions(approver, limit=1).requisitions] == [theirs.id]


def test_requester_cannot_view_other_branch(service, requester, two_branches):
    _, theirs = two_branches

    with pytest.raises(AuthorizationError):
        service.get_requisition(theirs.id, requester)

    with pytest.raises(NotFoundError):
        service.get_by_number(theirs.requisition_number + "-x", requester)


def test_get_by_number_is_scoped_for_requesters(service, requester, approver, two_branches):
    ours, theirs = two_branches

    assert service.get_by_number(ours.requisition_number, requester).id == ours.id
    assert service.get_by_number(theirs.requisition_number, approver).id == theirs.id
    if theirs.requisition_number != ours.requisition_number:
        with pytest.raises(NotFoundError):
            service.get_by_number(theirs.requisition_number, requester)


def test_missing_requisition(service, approver):
    with pytest.raises(NotFoundError):
        service.get_requisition(424242, approver)


def test_allowed_actions_depend_on_role(service, requester, approver, two_branches):
    ours, _ = two_branches

    as_requester = service.get_requisition(ours.id, requester)
    as_approver = service.get_requisition(ours.id, approver)

    assert as_requester.allowed_actions == []
    assert as_requester.can_delete is False
    assert as_approver.allowed_actions == [TransitionAction.APPROVE, TransitionAction.REJECT]
    assert as_approver.can_delete is True


def test_delete_pending_only(service, requester, approver, admin, two_branches, audit_sink):
    ours, theirs = two_branches

    with pytest.raises(AuthorizationError):
        service.delete_if_pending(ours.id, requester)

    service.approve(theirs.id, approver)
    with pytest.raises(StateConflictError):
        service.delete_if_pending(theirs.id, admin)

    assert service.delete_if_pending(ours.id, admin) == {"message": "Requisition deleted successfully"}
    assert audit_sink.actions()[-1] == AuditAction.REQUISITION_DELETED
    with pytest.raises(NotFoundError):
        service.get_requisition(ours.id, approver)
