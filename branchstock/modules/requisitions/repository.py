from datetime import datetime, timezone
from typing import List, Optional, Dict, Any

from sqlalchemy import select, update, delete, desc
from sqlalchemy.orm import Session, selectinload

from branchstock.shared.database.models import (
    Requisition, RequisitionItem, RequisitionStatusHistory
)


class RequisitionRepository:
    """
    Requisition Store.

    Solo hace flush: el servicio decide cuándo confirmar o revertir, para que
    una transición y sus efectos viajen en la misma transacción.
    """

    def __init__(self, db: Session):
        self.db = db

    # ===== CRUD BÁSICO =====

    def create_requisition(self, requisition_data: dict, items_data: List[dict],
                           actor_email: str) -> Requisition:
        """Crear requisición en pending con sus items y la primera fila de historial"""
        requisition = Requisition(**requisition_data)
        requisition.items = [
            RequisitionItem(position=position, **item)
            for position, item in enumerate(items_data)
        ]
        requisition.history = [
            RequisitionStatusHistory(
                from_status=None,
                to_status=requisition_data["status"],
                actor_email=actor_email,
                changed_at=_now(),
            )
        ]
        self.db.add(requisition)
        self.db.flush()
        return requisition

    def get_by_id(self, requisition_id: int) -> Optional[Requisition]:
        """Obtener requisición por ID con items e historial"""
        return self.db.execute(
            select(Requisition)
            .options(selectinload(Requisition.items), selectinload(Requisition.history))
            .where(Requisition.id == requisition_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_by_number(self, requisition_number: str,
                      destination_branch: Optional[str] = None) -> Optional[Requisition]:
        """El número no es único: devuelve la coincidencia más reciente"""
        query = (
            select(Requisition)
            .options(selectinload(Requisition.items), selectinload(Requisition.history))
            .where(Requisition.requisition_number == requisition_number)
        )
        if destination_branch is not None:
            query = query.where(Requisition.destination_branch == destination_branch)

        return self.db.execute(
            query.order_by(desc(Requisition.created_at), desc(Requisition.id)).limit(1)
        ).scalars().first()

    def list_requisitions(self, status: Optional[str] = None,
                          destination_branch: Optional[str] = None,
                          limit: int = 50) -> List[Requisition]:
        """Listado más reciente primero"""
        query = select(Requisition).options(
            selectinload(Requisition.items), selectinload(Requisition.history)
        )
        if destination_branch is not None:
            query = query.where(Requisition.destination_branch == destination_branch)
        if status:
            query = query.where(Requisition.status == status)

        return list(self.db.execute(
            query.order_by(desc(Requisition.created_at), desc(Requisition.id)).limit(limit)
        ).scalars().all())

    def get_current_status(self, requisition_id: int) -> Optional[str]:
        return self.db.execute(
            select(Requisition.status).where(Requisition.id == requisition_id)
        ).scalar_one_or_none()

    # ===== TRANSICIONES =====

    def transition_status(self, requisition_id: int, expected_status: str, new_status: str,
                          actor_email: str, note: Optional[str] = None,
                          **values: Any) -> bool:
        """
        UPDATE condicionado al estado esperado.

        Si otro llamador ya movió la requisición no se actualiza ninguna fila
        y se devuelve False.
        """
        update_data: Dict[str, Any] = {"status": new_status, "updated_at": _now()}
        update_data.update(values)

        result = self.db.execute(
            update(Requisition)
            .where(Requisition.id == requisition_id, Requisition.status == expected_status)
            .values(**update_data)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False

        self.db.add(RequisitionStatusHistory(
            requisition_id=requisition_id,
            from_status=expected_status,
            to_status=new_status,
            actor_email=actor_email,
            note=note,
            changed_at=_now(),
        ))
        self.db.flush()
        return True

    def set_approved_quantities(self, requisition_id: int, approved: Dict[int, int]) -> None:
        """approved: posición del item -> cantidad aprobada"""
        for position, qty in approved.items():
            self.db.execute(
                update(RequisitionItem)
                .where(
                    RequisitionItem.requisition_id == requisition_id,
                    RequisitionItem.position == position,
                )
                .values(approved_qty=qty)
                .execution_options(synchronize_session=False)
            )

    def attach_stock_transfer(self, requisition_id: int, report: dict) -> None:
        self.db.execute(
            update(Requisition)
            .where(Requisition.id == requisition_id)
            .values(stock_transfer=report, updated_at=_now())
            .execution_options(synchronize_session=False)
        )

    def delete_if_status(self, requisition_id: int, expected_status: str) -> bool:
        """DELETE condicionado al estado esperado (items e historial en cascada)"""
        result = self.db.execute(
            delete(Requisition)
            .where(Requisition.id == requisition_id, Requisition.status == expected_status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0


def _now() -> datetime:
    return datetime.now(timezone.utc)
