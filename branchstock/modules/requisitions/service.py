import logging
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any, Callable

from sqlalchemy.orm import Session

from branchstock.config.settings import settings
from branchstock.core.audit import AuditAction, AuditEntry, AuditSink, safe_append
from branchstock.core.auth.schemas import Principal
from branchstock.core.exceptions import (
    ValidationError, NotFoundError, StateConflictError, TransferFailedError
)
from branchstock.modules.inventory.repository import ProductInventoryRepository, normalize_branch
from branchstock.modules.inventory.schemas import StockTransferReport
from branchstock.modules.inventory.transfer import (
    StockTransferExecutor, TransferContext, TransferLine
)
from branchstock.modules.requisitions import permissions, state_machine
from branchstock.modules.requisitions.numbering import generate_requisition_number
from branchstock.modules.requisitions.repository import RequisitionRepository
from branchstock.modules.requisitions.schemas import (
    RequisitionCreate, TransitionRequest, RequisitionResponse, RequisitionListResponse,
    RequisitionItemResponse, RequesterInfo, StatusHistoryEntry, TransitionResponse,
    TransitionAction, RequisitionStatus, Priority
)
from branchstock.shared.database.models import Requisition

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "No reason provided"

ACTION_PAST_TENSE = {
    TransitionAction.APPROVE: "approved",
    TransitionAction.REJECT: "rejected",
    TransitionAction.MARK_IN_TRANSIT: "marked in transit",
    TransitionAction.MARK_RECEIVED: "marked received",
}


class RequisitionService:

    def __init__(self, db: Session, audit_sink: Optional[AuditSink] = None,
                 number_generator: Callable[[], str] = generate_requisition_number):
        self.db = db
        self.repository = RequisitionRepository(db)
        self.inventory = ProductInventoryRepository(db)
        self.audit_sink = audit_sink
        self.number_generator = number_generator

    # ===== CONSULTAS =====

    def list_requisitions(self, principal: Principal, status: Optional[str] = None,
                          branch: Optional[str] = None,
                          limit: Optional[int] = None) -> RequisitionListResponse:
        """Listado con alcance por rol"""
        limit = min(max(limit or settings.default_list_limit, 1), settings.max_list_limit)
        requisitions = self.repository.list_requisitions(
            status=status,
            destination_branch=permissions.scoped_branch(principal, branch),
            limit=limit,
        )
        responses = [self._build_response(r, principal) for r in requisitions]
        return RequisitionListResponse(requisitions=responses, total=len(responses))

    def get_requisition(self, requisition_id: int, principal: Principal) -> RequisitionResponse:
        requisition = self._get_or_404(requisition_id)
        permissions.ensure_can_view(principal, requisition)
        return self._build_response(requisition, principal)

    def get_by_number(self, requisition_number: str, principal: Principal) -> RequisitionResponse:
        branch = None if permissions.is_approver(principal) else (principal.normalized_branch or "")
        requisition = self.repository.get_by_number(requisition_number.strip().upper(), branch)
        if not requisition:
            raise NotFoundError(f"Requisition {requisition_number} not found")
        return self._build_response(requisition, principal)

    # ===== CREACIÓN =====

    def create_requisition(self, data: RequisitionCreate, principal: Principal) -> RequisitionResponse:
        """Crear requisición en pending para la sucursal del solicitante"""
        permissions.ensure_can_create(principal)
        self._validate_items(data)

        if not data.source_branch or not data.source_branch.strip():
            raise ValidationError("Source branch is required")

        destination_branch = principal.normalized_branch
        if not destination_branch:
            raise ValidationError("Requester has no branch assigned")

        source_branch = normalize_branch(data.source_branch)
        if source_branch == destination_branch:
            raise ValidationError(
                "Source branch must differ from destination branch",
                details={"source_branch": source_branch, "destination_branch": destination_branch},
            )

        requisition_data = {
            "requisition_number": self.number_generator(),
            "requested_by_user_id": principal.user_id,
            "requested_by_name": principal.display_name,
            "requested_by_email": principal.email,
            "requested_by_branch": destination_branch,
            "source_branch": source_branch,
            "destination_branch": destination_branch,
            "status": RequisitionStatus.PENDING.value,
            "priority": (data.priority or Priority.NORMAL).value,
            "notes": data.notes or "",
        }
        items_data = [
            {
                "product_id": item.product_id,
                "product_name": item.product_name.strip(),
                "requested_qty": item.requested_qty,
                "approved_qty": None,
                "options": item.options,
                "image": item.image,
            }
            for item in data.items
        ]

        try:
            requisition = self.repository.create_requisition(requisition_data, items_data, principal.email)
            requisition_id = requisition.id
            requisition_number = requisition.requisition_number
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"📝 Requisition {requisition_number} created by {principal.email}: "
            f"{source_branch} → {destination_branch} ({len(items_data)} items)"
        )
        self._audit(
            AuditAction.REQUISITION_CREATED, principal, requisition_id, requisition_number,
            {"item_count": len(items_data), "source_branch": source_branch,
             "destination_branch": destination_branch},
        )
        return self.get_requisition(requisition_id, principal)

    # ===== TRANSICIONES =====

    def transition(self, requisition_id: int, request: TransitionRequest,
                   principal: Principal) -> TransitionResponse:
        """Despachar la acción pedida y construir el mensaje de respuesta"""
        if request.action == TransitionAction.APPROVE:
            requisition = self.approve(
                requisition_id, principal, request.approved_quantities, request.delivery_date
            )
        elif request.action == TransitionAction.REJECT:
            requisition = self.reject(requisition_id, principal, request.rejection_reason)
        elif request.action == TransitionAction.MARK_IN_TRANSIT:
            requisition = self.mark_in_transit(requisition_id, principal)
        else:
            requisition = self.mark_received(requisition_id, principal)

        message = f"Requisition {ACTION_PAST_TENSE[request.action]} successfully"
        stock_transfer = None
        if request.action == TransitionAction.MARK_RECEIVED:
            stock_transfer = requisition.stock_transfer
            message += (
                f". Stock transferred: {len(stock_transfer.successful)} successful, "
                f"{len(stock_transfer.failed)} failed."
            )

        return TransitionResponse(message=message, requisition=requisition, stock_transfer=stock_transfer)

    def approve(self, requisition_id: int, principal: Principal,
                approved_quantities: Optional[List[Optional[int]]] = None,
                delivery_date: Optional[datetime] = None) -> RequisitionResponse:
        """pending → approved, con cantidades aprobadas por índice"""
        action = TransitionAction.APPROVE
        permissions.ensure_can_manage(principal, action.value)
        requisition = self._get_or_404(requisition_id)
        target = state_machine.ensure_transition(action, requisition.status)
        requisition_number = requisition.requisition_number

        approved = self._resolve_approved_quantities(requisition, approved_quantities)

        values: Dict[str, Any] = {
            "approved_by": principal.email,
            "approved_at": _now(),
        }
        if delivery_date:
            values["delivery_date"] = delivery_date

        try:
            self._claim(requisition_id, action, target, principal, **values)
            self.repository.set_approved_quantities(requisition_id, approved)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self._audit(
            AuditAction.REQUISITION_APPROVE, principal, requisition_id, requisition_number,
            {"approved_quantities": [approved[i] for i in sorted(approved)]},
        )
        return self.get_requisition(requisition_id, principal)

    def reject(self, requisition_id: int, principal: Principal,
               reason: Optional[str] = None) -> RequisitionResponse:
        """pending → rejected (terminal)"""
        action = TransitionAction.REJECT
        permissions.ensure_can_manage(principal, action.value)
        requisition = self._get_or_404(requisition_id)
        target = state_machine.ensure_transition(action, requisition.status)
        requisition_number = requisition.requisition_number

        reason = reason.strip() if reason and reason.strip() else DEFAULT_REJECTION_REASON

        try:
            self._claim(
                requisition_id, action, target, principal, note=reason,
                rejected_by=principal.email, rejected_at=_now(), rejection_reason=reason,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self._audit(
            AuditAction.REQUISITION_REJECT, principal, requisition_id, requisition_number,
            {"reason": reason},
        )
        return self.get_requisition(requisition_id, principal)

    def mark_in_transit(self, requisition_id: int, principal: Principal) -> RequisitionResponse:
        """approved → in-transit"""
        action = TransitionAction.MARK_IN_TRANSIT
        permissions.ensure_can_manage(principal, action.value)
        requisition = self._get_or_404(requisition_id)
        target = state_machine.ensure_transition(action, requisition.status)
        requisition_number = requisition.requisition_number

        try:
            self._claim(requisition_id, action, target, principal)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self._audit(
            AuditAction.REQUISITION_MARK_IN_TRANSIT, principal, requisition_id, requisition_number, {},
        )
        return self.get_requisition(requisition_id, principal)

    def mark_received(self, requisition_id: int, principal: Principal) -> RequisitionResponse:
        """
        in-transit → received, moviendo el stock aprobado.

        Reclamo de estado, transferencia por item y reporte van en una sola
        transacción. Si ningún item se transfiere se revierte todo y la
        requisición queda en tránsito para reintentar.
        """
        action = TransitionAction.MARK_RECEIVED
        permissions.ensure_can_manage(principal, action.value)
        requisition = self._get_or_404(requisition_id)
        target = state_machine.ensure_transition(action, requisition.status)
        requisition_number = requisition.requisition_number

        lines = [
            TransferLine(product_id=item.product_id, product_name=item.product_name,
                         quantity=item.approved_qty)
            for item in requisition.items
            if item.approved_qty is not None and item.approved_qty > 0
        ]
        if not lines:
            raise ValidationError("No items with approved quantities to transfer")

        context = TransferContext(
            requisition_id=requisition.id,
            requisition_number=requisition_number,
            source_branch=requisition.source_branch,
            destination_branch=requisition.destination_branch,
            actor=principal,
        )

        try:
            self._claim(requisition_id, action, target, principal, received_at=_now())

            executor = StockTransferExecutor(self.inventory)
            report, transfer_audit = executor.execute(lines, context)

            if not report.any_succeeded:
                self.db.rollback()
                logger.error(
                    f"❌ Requisition {requisition_number}: stock transfer failed for all items"
                )
                raise TransferFailedError([f.model_dump() for f in report.failed])

            self.repository.attach_stock_transfer(requisition_id, report.to_json())
            self.db.commit()
        except TransferFailedError:
            raise
        except Exception:
            self.db.rollback()
            raise

        for entry in transfer_audit:
            safe_append(self.audit_sink, entry)
        self._audit(
            AuditAction.REQUISITION_MARK_RECEIVED, principal, requisition_id, requisition_number,
            {"successful": len(report.successful), "failed": len(report.failed)},
        )
        return self.get_requisition(requisition_id, principal)

    # ===== ELIMINACIÓN =====

    def delete_if_pending(self, requisition_id: int, principal: Principal) -> Dict[str, Any]:
        permissions.ensure_can_manage(principal, "delete")
        requisition = self._get_or_404(requisition_id)
        state_machine.ensure_deletable(requisition.status)
        requisition_number = requisition.requisition_number

        try:
            deleted = self.repository.delete_if_status(requisition_id, state_machine.DELETABLE_STATUS.value)
            if not deleted:
                self.db.rollback()
                self._raise_conflict(requisition_id, state_machine.DELETABLE_STATUS.value, "delete")
            self.db.commit()
        except StateConflictError:
            raise
        except Exception:
            self.db.rollback()
            raise

        self.db.expunge_all()
        logger.info(f"🗑️ Requisition {requisition_number} deleted by {principal.email}")
        self._audit(AuditAction.REQUISITION_DELETED, principal, requisition_id, requisition_number, {})
        return {"message": "Requisition deleted successfully"}

    # ===== HELPER METHODS =====

    def _get_or_404(self, requisition_id: int) -> Requisition:
        requisition = self.repository.get_by_id(requisition_id)
        if not requisition:
            raise NotFoundError(f"Requisition {requisition_id} not found")
        return requisition

    def _claim(self, requisition_id: int, action: TransitionAction, target: RequisitionStatus,
               principal: Principal, note: Optional[str] = None, **values: Any) -> None:
        """Transición condicionada; si otro llamador ganó, StateConflictError"""
        expected = state_machine.required_status(action).value
        claimed = self.repository.transition_status(
            requisition_id, expected, target.value, principal.email, note=note, **values
        )
        if not claimed:
            self.db.rollback()
            self._raise_conflict(requisition_id, expected, action.value)

    def _raise_conflict(self, requisition_id: int, expected: str, action: str) -> None:
        current = self.repository.get_current_status(requisition_id)
        if current is None:
            raise NotFoundError(f"Requisition {requisition_id} not found")
        logger.warning(f"⚠️ Concurrent {action} on requisition {requisition_id}: status is {current}")
        raise StateConflictError(current, expected, action)

    def _validate_items(self, data: RequisitionCreate) -> None:
        max_items = settings.max_items_per_requisition
        max_qty = settings.max_item_quantity

        if not data.items:
            raise ValidationError("Items are required")
        if len(data.items) > max_items:
            raise ValidationError(f"Maximum {max_items} items per requisition")

        for index, item in enumerate(data.items):
            if not item.product_name or not item.product_name.strip():
                raise ValidationError(
                    "Each item must have product_id, product_name, and requested_qty",
                    details={"item_index": index},
                )
            if item.requested_qty < 1 or item.requested_qty > max_qty:
                raise ValidationError(
                    f"Quantity must be between 1 and {max_qty}",
                    details={"item_index": index, "requested_qty": item.requested_qty},
                )

    def _resolve_approved_quantities(self, requisition: Requisition,
                                     approved_quantities: Optional[List[Optional[int]]]) -> Dict[int, int]:
        """Cantidad aprobada por posición; sin valor → cantidad solicitada"""
        supplied = approved_quantities or []
        if len(supplied) > len(requisition.items):
            raise ValidationError(
                f"Received {len(supplied)} approved quantities for {len(requisition.items)} items"
            )

        max_qty = settings.max_item_quantity
        approved: Dict[int, int] = {}
        for item in requisition.items:
            value = supplied[item.position] if item.position < len(supplied) else None
            if value is None:
                approved[item.position] = item.requested_qty
                continue
            if value < 0 or value > max_qty:
                raise ValidationError(
                    f"Approved quantity must be between 0 and {max_qty}",
                    details={"item_index": item.position, "approved_qty": value},
                )
            approved[item.position] = value
        return approved

    def _audit(self, action: str, principal: Principal, requisition_id: int,
               requisition_number: str, details: Dict[str, Any]) -> None:
        safe_append(self.audit_sink, AuditEntry(
            action=action,
            actor_id=principal.user_id,
            actor_email=principal.email,
            entity_type="requisition",
            entity_id=str(requisition_id),
            requisition_number=requisition_number,
            details=details,
        ))

    def _build_response(self, requisition: Requisition, principal: Principal) -> RequisitionResponse:
        """Construir respuesta con las acciones permitidas para el usuario"""
        stock_transfer = None
        if requisition.stock_transfer:
            stock_transfer = StockTransferReport.model_validate(requisition.stock_transfer)

        is_manager = permissions.is_approver(principal)
        allowed = state_machine.allowed_actions(requisition.status) if is_manager else []

        return RequisitionResponse(
            id=requisition.id,
            requisition_number=requisition.requisition_number,
            requested_by=RequesterInfo(
                user_id=requisition.requested_by_user_id,
                name=requisition.requested_by_name,
                email=requisition.requested_by_email,
                branch=requisition.requested_by_branch,
            ),
            items=[RequisitionItemResponse.model_validate(item) for item in requisition.items],
            source_branch=requisition.source_branch,
            destination_branch=requisition.destination_branch,
            status=RequisitionStatus(requisition.status),
            priority=Priority(requisition.priority),
            notes=requisition.notes or "",
            approved_by=requisition.approved_by,
            approved_at=requisition.approved_at,
            rejected_by=requisition.rejected_by,
            rejected_at=requisition.rejected_at,
            rejection_reason=requisition.rejection_reason,
            delivery_date=requisition.delivery_date,
            received_at=requisition.received_at,
            stock_transfer=stock_transfer,
            history=[StatusHistoryEntry.model_validate(h) for h in requisition.history],
            created_at=requisition.created_at,
            updated_at=requisition.updated_at,
            allowed_actions=allowed,
            can_delete=is_manager and requisition.status == state_machine.DELETABLE_STATUS.value,
        )


def _now() -> datetime:
    return datetime.now(timezone.utc)
