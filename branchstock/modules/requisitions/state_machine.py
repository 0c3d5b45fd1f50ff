"""
Máquina de estados de la requisición.

    pending ──approve──▶ approved ──mark-in-transit──▶ in-transit ──mark-received──▶ received
       │
       └──reject──▶ rejected

No hay otras aristas ni camino de cancelación. rejected y received son
terminales. Eliminar solo es posible en pending.
"""
from typing import Dict, List, Tuple

from branchstock.core.exceptions import StateConflictError
from branchstock.modules.requisitions.schemas import RequisitionStatus, TransitionAction

TRANSITIONS: Dict[TransitionAction, Tuple[RequisitionStatus, RequisitionStatus]] = {
    TransitionAction.APPROVE: (RequisitionStatus.PENDING, RequisitionStatus.APPROVED),
    TransitionAction.REJECT: (RequisitionStatus.PENDING, RequisitionStatus.REJECTED),
    TransitionAction.MARK_IN_TRANSIT: (RequisitionStatus.APPROVED, RequisitionStatus.IN_TRANSIT),
    TransitionAction.MARK_RECEIVED: (RequisitionStatus.IN_TRANSIT, RequisitionStatus.RECEIVED),
}

TERMINAL_STATUSES = {RequisitionStatus.REJECTED, RequisitionStatus.RECEIVED}

DELETABLE_STATUS = RequisitionStatus.PENDING


def required_status(action: TransitionAction) -> RequisitionStatus:
    return TRANSITIONS[action][0]


def allowed_actions(current: str) -> List[TransitionAction]:
    return [action for action, (source, _) in TRANSITIONS.items() if source.value == current]


def ensure_transition(action: TransitionAction, current: str) -> RequisitionStatus:
    """Validar la arista; devuelve el estado destino o lanza StateConflictError"""
    source, target = TRANSITIONS[action]
    if current != source.value:
        raise StateConflictError(current, source.value, action.value)
    return target


def ensure_deletable(current: str) -> None:
    if current != DELETABLE_STATUS.value:
        raise StateConflictError(current, DELETABLE_STATUS.value, "delete")
