from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from branchstock.config.database import get_db
from branchstock.config.settings import settings
from branchstock.core.audit import AuditSink, get_audit_sink
from branchstock.core.auth.dependencies import require_roles
from branchstock.core.auth.schemas import Principal, CREATOR_ROLES, APPROVER_ROLES
from branchstock.core.exceptions import PayloadTooLargeError
from branchstock.core.rate_limit import enforce_rate_limit
from branchstock.modules.requisitions.service import RequisitionService
from branchstock.modules.requisitions.schemas import (
    RequisitionCreate, TransitionRequest, RequisitionResponse, RequisitionListResponse,
    RequisitionCreatedResponse, TransitionResponse, MessageResponse, RequisitionStatus
)

router = APIRouter(prefix="/requisitions", tags=["Requisitions"])

ALL_ROLES = sorted(set(CREATOR_ROLES) | set(APPROVER_ROLES))


async def limit_body_size(request: Request) -> None:
    """Rechazar cuerpos mayores al máximo configurado"""
    max_size = settings.max_request_body_size
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit():
        size = int(content_length)
    else:
        size = len(await request.body())
    if size > max_size:
        raise PayloadTooLargeError(
            f"Request body too large: {size} bytes (max {max_size})",
            details={"max_bytes": max_size},
        )


def get_service(db: Session = Depends(get_db),
                audit_sink: AuditSink = Depends(get_audit_sink)) -> RequisitionService:
    return RequisitionService(db, audit_sink=audit_sink)


# ===== CONSULTAS =====

@router.get("", response_model=RequisitionListResponse)
async def list_requisitions(
    status_filter: Optional[RequisitionStatus] = Query(None, alias="status", description="Filtrar por estado"),
    branch: Optional[str] = Query(None, description="Sucursal destino (ignorado para solicitantes)"),
    limit: int = Query(settings.default_list_limit, ge=1, le=settings.max_list_limit),
    current_user: Principal = Depends(require_roles(ALL_ROLES)),
    _rate: Principal = Depends(enforce_rate_limit),
    service: RequisitionService = Depends(get_service)
):
    """
    Listar requisiciones, más recientes primero

    - Solicitante: solo las de su sucursal
    - Aprobador/admin: todas, con filtro opcional por sucursal
    """
    return service.list_requisitions(
        current_user,
        status=status_filter.value if status_filter else None,
        branch=branch,
        limit=limit,
    )


@router.get("/by-number/{requisition_number}", response_model=RequisitionResponse)
async def get_requisition_by_number(
    requisition_number: str,
    current_user: Principal = Depends(require_roles(ALL_ROLES)),
    _rate: Principal = Depends(enforce_rate_limit),
    service: RequisitionService = Depends(get_service)
):
    """Buscar por número legible (REQ-YYYYMM-NNNN); devuelve la más reciente"""
    return service.get_by_number(requisition_number, current_user)


@router.get("/{requisition_id}", response_model=RequisitionResponse)
async def get_requisition(
    requisition_id: int,
    current_user: Principal = Depends(require_roles(ALL_ROLES)),
    _rate: Principal = Depends(enforce_rate_limit),
    service: RequisitionService = Depends(get_service)
):
    return service.get_requisition(requisition_id, current_user)


# ===== MUTACIONES =====

@router.post("", response_model=RequisitionCreatedResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(limit_body_size)])
async def create_requisition(
    requisition_data: RequisitionCreate,
    current_user: Principal = Depends(require_roles(CREATOR_ROLES)),
    _rate: Principal = Depends(enforce_rate_limit),
    service: RequisitionService = Depends(get_service)
):
    """
    Crear requisición

    **Reglas:**
    - La sucursal destino es siempre la del solicitante
    - Entre 1 y 50 items, cantidades entre 1 y 10000
    - Queda en estado pending
    """
    requisition = service.create_requisition(requisition_data, current_user)
    return RequisitionCreatedResponse(message="Requisition created successfully", requisition=requisition)


@router.patch("/{requisition_id}", response_model=TransitionResponse,
              dependencies=[Depends(limit_body_size)])
async def transition_requisition(
    requisition_id: int,
    transition: TransitionRequest,
    current_user: Principal = Depends(require_roles(APPROVER_ROLES)),
    _rate: Principal = Depends(enforce_rate_limit),
    service: RequisitionService = Depends(get_service)
):
    """
    Cambiar estado de la requisición

    **Acciones:**
    - approve: pending → approved (approved_quantities por índice, opcional)
    - reject: pending → rejected
    - mark-in-transit: approved → in-transit
    - mark-received: in-transit → received, mueve el stock aprobado
    """
    return service.transition(requisition_id, transition, current_user)


@router.delete("/{requisition_id}", response_model=MessageResponse)
async def delete_requisition(
    requisition_id: int,
    current_user: Principal = Depends(require_roles(APPROVER_ROLES)),
    _rate: Principal = Depends(enforce_rate_limit),
    service: RequisitionService = Depends(get_service)
):
    """Eliminar requisición (solo en estado pending)"""
    return service.delete_if_pending(requisition_id, current_user)
