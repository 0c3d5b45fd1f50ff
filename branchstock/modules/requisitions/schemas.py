from datetime import datetime
from typing import Optional, List, Any
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum

from branchstock.modules.inventory.schemas import StockTransferReport

# ===== ENUMS =====

class RequisitionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_TRANSIT = "in-transit"
    RECEIVED = "received"

class TransitionAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    MARK_IN_TRANSIT = "mark-in-transit"
    MARK_RECEIVED = "mark-received"

class Priority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

# ===== REQUEST SCHEMAS =====

class RequisitionItemCreate(BaseModel):
    """Item solicitado; los límites de cantidad se validan en el servicio"""
    product_id: int = Field(..., description="ID del producto")
    product_name: str = Field(..., description="Nombre del producto")
    requested_qty: int = Field(..., description="Cantidad solicitada")
    options: Optional[Any] = Field(None, description="Variantes (talla, color, etc.)")
    image: Optional[str] = Field(None, max_length=255)

class RequisitionCreate(BaseModel):
    """
    Schema para crear requisición.

    No existe destination_branch: siempre es la sucursal del solicitante.
    """
    items: List[RequisitionItemCreate] = Field(default_factory=list)
    source_branch: str = Field(..., description="Sucursal que entrega el stock")
    notes: Optional[str] = Field(None, max_length=2000)
    priority: Optional[Priority] = None

class TransitionRequest(BaseModel):
    """Schema para cambiar el estado de una requisición"""
    action: TransitionAction
    approved_quantities: Optional[List[Optional[int]]] = Field(
        None, description="Cantidad aprobada por índice de item (null = cantidad solicitada)"
    )
    delivery_date: Optional[datetime] = None
    rejection_reason: Optional[str] = Field(None, max_length=500)

# ===== RESPONSE SCHEMAS =====

class RequesterInfo(BaseModel):
    user_id: str
    name: Optional[str] = None
    email: str
    branch: str

class RequisitionItemResponse(BaseModel):
    product_id: int
    product_name: str
    requested_qty: int
    approved_qty: Optional[int] = None
    options: Optional[Any] = None
    image: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class StatusHistoryEntry(BaseModel):
    from_status: Optional[RequisitionStatus] = None
    to_status: RequisitionStatus
    actor_email: str
    note: Optional[str] = None
    changed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class RequisitionResponse(BaseModel):
    """Response completo de requisición"""
    id: int
    requisition_number: str
    requested_by: RequesterInfo
    items: List[RequisitionItemResponse]
    source_branch: str
    destination_branch: str
    status: RequisitionStatus
    priority: Priority
    notes: str = ""

    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    delivery_date: Optional[datetime] = None
    received_at: Optional[datetime] = None

    stock_transfer: Optional[StockTransferReport] = None
    history: List[StatusHistoryEntry] = Field(default_factory=list)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Acciones disponibles para el usuario actual
    allowed_actions: List[TransitionAction] = Field(default_factory=list)
    can_delete: bool = False

class RequisitionListResponse(BaseModel):
    requisitions: List[RequisitionResponse]
    total: int

class RequisitionCreatedResponse(BaseModel):
    message: str
    requisition: RequisitionResponse

class TransitionResponse(BaseModel):
    message: str
    requisition: RequisitionResponse
    stock_transfer: Optional[StockTransferReport] = None

class MessageResponse(BaseModel):
    message: str
