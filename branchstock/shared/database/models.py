from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, ForeignKey, JSON,
    UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from branchstock.config.database import Base

class TimestampMixin:
    """Mixin para timestamps automáticos"""
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

# ===== PRODUCTOS E INVENTARIO =====

class Product(Base, TimestampMixin):
    """Producto del catálogo; el stock por sucursal vive en ProductStock"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(64), unique=True)
    image_url = Column(String(255))
    is_active = Column(Boolean, default=True, nullable=False)
    updated_by = Column(String(255))

    # Relationships
    stocks = relationship("ProductStock", back_populates="product", cascade="all, delete-orphan")

class ProductStock(Base):
    """Contador de stock de un producto en una sucursal (ausente = 0)"""
    __tablename__ = "product_stocks"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    branch = Column(String(100), nullable=False)
    quantity = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("product_id", "branch", name="uq_product_stock_branch"),
        CheckConstraint("quantity >= 0", name="ck_product_stock_nonneg"),
    )

    # Relationships
    product = relationship("Product", back_populates="stocks")

# ===== REQUISICIONES =====

class Requisition(Base, TimestampMixin):
    """Solicitud de stock de una sucursal a otra"""
    __tablename__ = "requisitions"

    id = Column(Integer, primary_key=True, index=True)
    # Sin UNIQUE: el número se genera al azar y puede colisionar
    requisition_number = Column(String(32), nullable=False, index=True)

    requested_by_user_id = Column(String(64), nullable=False)
    requested_by_name = Column(String(255))
    requested_by_email = Column(String(255), nullable=False)
    requested_by_branch = Column(String(100), nullable=False)

    source_branch = Column(String(100), nullable=False, index=True)
    destination_branch = Column(String(100), nullable=False, index=True)
    status = Column(String(20), default="pending", nullable=False, index=True)
    priority = Column(String(20), default="normal", nullable=False)
    notes = Column(Text, default="", nullable=False)

    approved_by = Column(String(255))
    approved_at = Column(DateTime(timezone=True))
    rejected_by = Column(String(255))
    rejected_at = Column(DateTime(timezone=True))
    rejection_reason = Column(Text)
    delivery_date = Column(DateTime(timezone=True))
    received_at = Column(DateTime(timezone=True))

    stock_transfer = Column(JSON)

    # Relationships
    items = relationship(
        "RequisitionItem",
        back_populates="requisition",
        order_by="RequisitionItem.position",
        cascade="all, delete-orphan",
    )
    history = relationship(
        "RequisitionStatusHistory",
        back_populates="requisition",
        order_by="RequisitionStatusHistory.id",
        cascade="all, delete-orphan",
    )

class RequisitionItem(Base):
    """Línea de una requisición"""
    __tablename__ = "requisition_items"

    id = Column(Integer, primary_key=True, index=True)
    requisition_id = Column(Integer, ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    product_id = Column(Integer, nullable=False)
    product_name = Column(String(255), nullable=False)
    requested_qty = Column(Integer, nullable=False)
    approved_qty = Column(Integer)
    options = Column(JSON)
    image = Column(String(255))

    __table_args__ = (
        UniqueConstraint("requisition_id", "position", name="uq_requisition_item_position"),
        CheckConstraint("requested_qty > 0", name="ck_requisition_item_requested_pos"),
    )

    # Relationships
    requisition = relationship("Requisition", back_populates="items")

class RequisitionStatusHistory(Base):
    """Historial de cambios de estado de una requisición"""
    __tablename__ = "requisition_status_history"

    id = Column(Integer, primary_key=True, index=True)
    requisition_id = Column(Integer, ForeignKey("requisitions.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(String(20))
    to_status = Column(String(20), nullable=False)
    actor_email = Column(String(255), nullable=False)
    note = Column(Text)
    changed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    requisition = relationship("Requisition", back_populates="history")

# ===== AUDITORÍA =====

class AuditLog(Base):
    """Registro append-only de mutaciones"""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(64), nullable=False, index=True)
    actor_id = Column(String(64))
    actor_email = Column(String(255))
    entity_type = Column(String(64), nullable=False)
    entity_id = Column(String(64), nullable=False)
    requisition_number = Column(String(32))
    details = Column(JSON)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_audit_logs_entity", "entity_type", "entity_id"),)
