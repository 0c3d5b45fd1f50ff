"""
Stock Transfer Executor.

Mueve las cantidades aprobadas de una requisición entre los contadores de
dos sucursales. Cada item se procesa en su propio SAVEPOINT, en orden: un
item que falla no aborta a los demás y queda registrado en el reporte.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from branchstock.core.audit import AuditAction, AuditEntry
from branchstock.core.auth.schemas import Principal
from branchstock.core.exceptions import (
    ItemTransferError, ProductNotFoundError, InsufficientStockError
)
from branchstock.modules.inventory.repository import ProductInventoryRepository, normalize_branch
from branchstock.modules.inventory.schemas import (
    StockChange, StockTransferReport, TransferFailure, TransferSuccess
)

logger = logging.getLogger(__name__)

PERSISTENCE_FAILURE_REASON = "Failed to update stock"


@dataclass(frozen=True)
class TransferLine:
    product_id: int
    product_name: str
    quantity: int


@dataclass(frozen=True)
class ItemTransferResult:
    """Resultado de un item: exactamente uno de success/failure"""
    line: TransferLine
    success: Optional[TransferSuccess] = None
    failure: Optional[TransferFailure] = None
    audit_entry: Optional[AuditEntry] = None

    @property
    def ok(self) -> bool:
        return self.success is not None

    @classmethod
    def failed(cls, line: TransferLine, reason: str) -> "ItemTransferResult":
        return cls(
            line=line,
            failure=TransferFailure(
                product_id=line.product_id,
                product_name=line.product_name,
                error=reason,
            ),
        )


def fold_results(results: Iterable[ItemTransferResult],
                 completed_at: Optional[datetime] = None) -> StockTransferReport:
    """Plegar resultados por item en {successful, failed}, conservando el orden"""
    report = StockTransferReport(completed_at=completed_at or datetime.now(timezone.utc))
    for result in results:
        if result.ok:
            report.successful.append(result.success)
        else:
            report.failed.append(result.failure)
    return report


@dataclass(frozen=True)
class TransferContext:
    requisition_id: int
    requisition_number: str
    source_branch: str
    destination_branch: str
    actor: Principal


class StockTransferExecutor:

    def __init__(self, inventory: ProductInventoryRepository):
        self.inventory = inventory
        self.db = inventory.db

    def execute(self, lines: List[TransferLine],
                context: TransferContext) -> Tuple[StockTransferReport, List[AuditEntry]]:
        """
        Ejecutar la transferencia item por item.

        No hace commit: el llamador decide si confirmar o revertir la
        transacción completa. Devuelve el reporte y las entradas de
        auditoría a emitir después del commit.
        """
        logger.info(
            f"🔄 Stock transfer {context.requisition_number}: "
            f"{context.source_branch} → {context.destination_branch} ({len(lines)} items)"
        )

        results = [self._transfer_item(line, context) for line in lines]
        report = fold_results(results)

        logger.info(
            f"📊 Transfer summary {context.requisition_number}: "
            f"{len(report.successful)} successful, {len(report.failed)} failed"
        )

        audit_entries = [r.audit_entry for r in results if r.audit_entry is not None]
        return report, audit_entries

    def _transfer_item(self, line: TransferLine, context: TransferContext) -> ItemTransferResult:
        source = normalize_branch(context.source_branch)
        destination = normalize_branch(context.destination_branch)

        try:
            with self.db.begin_nested():
                product = self.inventory.get_product(line.product_id)
                if not product:
                    raise ProductNotFoundError(line.product_id)

                moved = self.inventory.move_stock(line.product_id, source, destination, line.quantity)
                if moved is None:
                    available = self.inventory.get_counter(line.product_id, source)
                    raise InsufficientStockError(source, available, line.quantity)

                self.inventory.touch_product(line.product_id, context.actor.email)
        except ItemTransferError as e:
            logger.warning(f"❌ Item {line.product_id} ({line.product_name}): {e.reason}")
            return ItemTransferResult.failed(line, e.reason)
        except SQLAlchemyError as e:
            logger.error(f"❌ Error updating stock for product {line.product_id}: {e}")
            return ItemTransferResult.failed(line, PERSISTENCE_FAILURE_REASON)

        new_source, new_destination = moved
        source_stock = StockChange(before=new_source + line.quantity, after=new_source)
        destination_stock = StockChange(before=new_destination - line.quantity, after=new_destination)

        logger.info(
            f"✅ {line.product_name} x{line.quantity}: "
            f"{source} {source_stock.before}→{source_stock.after}, "
            f"{destination} {destination_stock.before}→{destination_stock.after}"
        )

        success = TransferSuccess(
            product_id=line.product_id,
            product_name=line.product_name,
            transferred_qty=line.quantity,
            source_stock=source_stock,
            destination_stock=destination_stock,
        )
        audit_entry = AuditEntry(
            action=AuditAction.STOCK_TRANSFER,
            actor_id=context.actor.user_id,
            actor_email=context.actor.email,
            entity_type="product",
            entity_id=str(line.product_id),
            requisition_number=context.requisition_number,
            details={
                "requisition_id": context.requisition_id,
                "product_id": line.product_id,
                "product_name": line.product_name,
                "quantity": line.quantity,
                "source_branch": source,
                "destination_branch": destination,
                "before": {source: source_stock.before, destination: destination_stock.before},
                "after": {source: source_stock.after, destination: destination_stock.after},
            },
        )
        return ItemTransferResult(line=line, success=success, audit_entry=audit_entry)
