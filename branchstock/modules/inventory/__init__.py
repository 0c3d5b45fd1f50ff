"""
Módulo de Inventario - contadores de stock por sucursal

- repository.py: Product Inventory Store (lecturas y decremento atómico acotado)
- transfer.py: Stock Transfer Executor (movimiento item por item con aislamiento de fallos)
- schemas.py: Reporte de transferencia
"""

from .repository import ProductInventoryRepository
from .transfer import StockTransferExecutor, TransferLine, TransferContext, fold_results
from .schemas import StockTransferReport

__all__ = [
    "ProductInventoryRepository",
    "StockTransferExecutor",
    "TransferLine",
    "TransferContext",
    "fold_results",
    "StockTransferReport",
]
