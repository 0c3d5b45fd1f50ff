from typing import Dict, Optional, Tuple

from sqlalchemy import select, update, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from branchstock.shared.database.models import Product, ProductStock


def normalize_branch(branch: str) -> str:
    return branch.strip().lower()


class ProductInventoryRepository:
    """
    Product Inventory Store: contadores de stock por producto y sucursal.

    Ninguna operación hace commit; el llamador controla la transacción.
    """

    def __init__(self, db: Session):
        self.db = db

    # ===== LECTURA =====

    def get_product(self, product_id: int) -> Optional[Product]:
        """Producto activo por ID"""
        return self.db.execute(
            select(Product).where(Product.id == product_id, Product.is_active.is_(True))
        ).scalar_one_or_none()

    def get_counters(self, product_id: int) -> Dict[str, int]:
        """Mapa sucursal -> cantidad (sucursales sin fila no aparecen)"""
        rows = self.db.execute(
            select(ProductStock.branch, ProductStock.quantity)
            .where(ProductStock.product_id == product_id)
            .order_by(ProductStock.branch)
        ).all()
        return {branch: int(qty) for branch, qty in rows}

    def get_counter(self, product_id: int, branch: str) -> int:
        qty = self.db.execute(
            select(ProductStock.quantity).where(
                ProductStock.product_id == product_id,
                ProductStock.branch == normalize_branch(branch),
            )
        ).scalar_one_or_none()
        return int(qty or 0)

    # ===== ESCRITURA =====

    def set_counters(self, product_id: int, patch: Dict[str, int], updated_by: Optional[str] = None) -> bool:
        """Fijar contadores absolutos para varias sucursales; False si falla"""
        if any(qty < 0 for qty in patch.values()):
            return False
        try:
            with self.db.begin_nested():
                product = self.db.get(Product, product_id)
                if not product:
                    return False
                for branch, qty in patch.items():
                    self._upsert(product_id, normalize_branch(branch), qty)
                if updated_by:
                    product.updated_by = updated_by
            return True
        except SQLAlchemyError:
            return False

    def decrement_if_available(self, product_id: int, branch: str, quantity: int) -> Optional[int]:
        """
        Decremento atómico acotado.

        Solo descuenta si hay stock suficiente; devuelve la cantidad
        resultante o None si no alcanzaba (o no existe la fila).
        """
        result = self.db.execute(
            update(ProductStock)
            .where(
                ProductStock.product_id == product_id,
                ProductStock.branch == normalize_branch(branch),
                ProductStock.quantity >= quantity,
            )
            .values(quantity=ProductStock.quantity - quantity)
            .returning(ProductStock.quantity)
            .execution_options(synchronize_session=False)
        ).scalar_one_or_none()
        return None if result is None else int(result)

    def increment(self, product_id: int, branch: str, quantity: int) -> int:
        """Suma cantidad al contador (lo crea si no existe); devuelve el nuevo valor"""
        branch = normalize_branch(branch)
        result = self.db.execute(
            update(ProductStock)
            .where(ProductStock.product_id == product_id, ProductStock.branch == branch)
            .values(quantity=ProductStock.quantity + quantity)
            .returning(ProductStock.quantity)
            .execution_options(synchronize_session=False)
        ).scalar_one_or_none()
        if result is not None:
            return int(result)

        self.db.execute(
            insert(ProductStock).values(product_id=product_id, branch=branch, quantity=quantity)
        )
        return quantity

    def move_stock(self, product_id: int, source_branch: str, destination_branch: str,
                   quantity: int) -> Optional[Tuple[int, int]]:
        """Mover cantidad entre sucursales; (nuevo_origen, nuevo_destino) o None si no alcanza"""
        new_source = self.decrement_if_available(product_id, source_branch, quantity)
        if new_source is None:
            return None
        new_destination = self.increment(product_id, destination_branch, quantity)
        return new_source, new_destination

    def touch_product(self, product_id: int, updated_by: Optional[str]) -> None:
        self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(updated_by=updated_by)
            .execution_options(synchronize_session=False)
        )

    def _upsert(self, product_id: int, branch: str, quantity: int) -> None:
        row = self.db.execute(
            select(ProductStock)
            .where(ProductStock.product_id == product_id, ProductStock.branch == branch)
            .with_for_update()
        ).scalar_one_or_none()
        if row:
            row.quantity = quantity
        else:
            self.db.add(ProductStock(product_id=product_id, branch=branch, quantity=quantity))
        self.db.flush()
