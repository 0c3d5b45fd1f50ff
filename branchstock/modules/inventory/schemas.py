from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field

# ===== RESULTADOS DE TRANSFERENCIA =====

class StockChange(BaseModel):
    """Valor de un contador antes y después del movimiento"""
    before: int
    after: int

class TransferSuccess(BaseModel):
    product_id: int
    product_name: str
    transferred_qty: int
    source_stock: StockChange
    destination_stock: StockChange

class TransferFailure(BaseModel):
    product_id: int
    product_name: str
    error: str

class StockTransferReport(BaseModel):
    """Reporte mixto éxito/fallo adjunto a la requisición recibida"""
    successful: List[TransferSuccess] = Field(default_factory=list)
    failed: List[TransferFailure] = Field(default_factory=list)
    completed_at: Optional[datetime] = None

    @property
    def any_succeeded(self) -> bool:
        return len(self.successful) > 0

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
