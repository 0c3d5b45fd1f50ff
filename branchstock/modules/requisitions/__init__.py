"""
Módulo de Requisiciones - solicitudes de stock entre sucursales

Flujo: el solicitante pide stock para su sucursal, un aprobador aprueba o
rechaza, despacha y confirma la recepción; al recibir se mueven los
contadores de inventario de la sucursal origen a la destino.

Arquitectura:
- router.py: Endpoints FastAPI
- service.py: Lógica de negocio (Requisition Service)
- repository.py: Acceso a datos (Requisition Store)
- state_machine.py: Transiciones permitidas
- permissions.py: Reglas de acceso por rol y sucursal
- numbering.py: Números REQ-YYYYMM-NNNN
- schemas.py: Modelos Pydantic de request/response
"""

from .router import router as requisitions_router
from .service import RequisitionService
from .repository import RequisitionRepository

__all__ = [
    "requisitions_router",
    "RequisitionService",
    "RequisitionRepository"
]
