from typing import Optional

from branchstock.core.auth.schemas import Principal, CREATOR_ROLES, APPROVER_ROLES, Role
from branchstock.core.exceptions import AuthorizationError
from branchstock.shared.database.models import Requisition


def is_approver(principal: Principal) -> bool:
    return principal.role.value in APPROVER_ROLES


def ensure_can_create(principal: Principal) -> None:
    if principal.role.value not in CREATOR_ROLES:
        raise AuthorizationError("Only requesters and admins can create requisitions")


def ensure_can_manage(principal: Principal, action: str) -> None:
    """approve/reject/mark-in-transit/mark-received/delete"""
    if not is_approver(principal):
        raise AuthorizationError(f"Only approvers and admins can {action} requisitions")


def scoped_branch(principal: Principal, requested_branch: Optional[str]) -> Optional[str]:
    """
    Sucursal efectiva para listar.

    El solicitante solo ve su propia sucursal (el filtro que mande se
    ignora); aprobador/admin ven todo o filtran.
    """
    if principal.role == Role.REQUESTER:
        return principal.normalized_branch or ""
    if requested_branch and requested_branch.strip():
        return requested_branch.strip().lower()
    return None


def can_view(principal: Principal, requisition: Requisition) -> bool:
    if is_approver(principal):
        return True
    return requisition.destination_branch == principal.normalized_branch


def ensure_can_view(principal: Principal, requisition: Requisition) -> None:
    if not can_view(principal, requisition):
        raise AuthorizationError("Not authorized to view this requisition")
