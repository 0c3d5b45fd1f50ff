"""
Audit sink: registro append-only de mutaciones.

Best-effort: un fallo al escribir auditoría se loguea y nunca se propaga a la
operación de negocio que lo originó.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from branchstock.shared.database.models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    REQUISITION_CREATED = "REQUISITION_CREATED"
    REQUISITION_APPROVE = "REQUISITION_APPROVE"
    REQUISITION_REJECT = "REQUISITION_REJECT"
    REQUISITION_MARK_IN_TRANSIT = "REQUISITION_MARK_IN_TRANSIT"
    REQUISITION_MARK_RECEIVED = "REQUISITION_MARK_RECEIVED"
    REQUISITION_DELETED = "REQUISITION_DELETED"
    STOCK_TRANSFER = "STOCK_TRANSFER"


@dataclass(frozen=True)
class AuditEntry:
    action: str
    actor_id: Optional[str]
    actor_email: Optional[str]
    entity_type: str
    entity_id: str
    requisition_number: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AuditSink:
    """Interfaz del sink; las implementaciones no deben lanzar excepciones"""

    def append(self, entry: AuditEntry) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class DatabaseAuditSink(AuditSink):
    """Escribe cada entrada en audit_logs usando su propia sesión"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def append(self, entry: AuditEntry) -> None:
        db = self.session_factory()
        try:
            db.add(AuditLog(
                action=entry.action,
                actor_id=entry.actor_id,
                actor_email=entry.actor_email,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                requisition_number=entry.requisition_number,
                details=entry.details,
                created_at=entry.timestamp,
            ))
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Audit log error ({entry.action} {entry.entity_type}:{entry.entity_id}): {e}")
        finally:
            db.close()


class LoggingAuditSink(AuditSink):
    """Sink mínimo: solo deja la entrada en el log de la aplicación"""

    def append(self, entry: AuditEntry) -> None:
        logger.info(
            f"AUDIT {entry.action} {entry.entity_type}:{entry.entity_id} "
            f"by {entry.actor_email} {entry.details}"
        )


def safe_append(sink: Optional[AuditSink], entry: AuditEntry) -> None:
    """Fire-and-forget: ningún error de auditoría llega al llamador"""
    if sink is None:
        return
    try:
        sink.append(entry)
    except Exception as e:
        logger.error(f"❌ Audit sink {type(sink).__name__} failed for {entry.action}: {e}")


def get_audit_sink(request: Request) -> AuditSink:
    """Dependency: sink creado en el lifespan de la app"""
    sink = getattr(request.app.state, "audit_sink", None)
    return sink or LoggingAuditSink()
