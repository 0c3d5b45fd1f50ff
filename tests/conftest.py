from typing import Dict, List, NamedTuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from branchstock.config.database import Base, build_engine, get_db
from branchstock.core.audit import AuditEntry, AuditSink, get_audit_sink
from branchstock.core.auth import Principal, Role, create_access_token
from branchstock.core.rate_limit import MovingWindowLimiter
from branchstock.main import create_app
from branchstock.modules.inventory.repository import ProductInventoryRepository
from branchstock.modules.requisitions.schemas import RequisitionCreate, RequisitionItemCreate
from branchstock.modules.requisitions.service import RequisitionService
from branchstock.shared.database.models import Product


class RecordingAuditSink(AuditSink):
    """Sink en memoria para inspeccionar auditoría en los tests"""

    def __init__(self):
        self.entries: List[AuditEntry] = []

    def append(self, entry: AuditEntry) -> None:
        self.entries.append(entry)

    def actions(self) -> List[str]:
        return [e.action for e in self.entries]


@pytest.fixture(scope="function")
def engine(tmp_path):
    """Base SQLite aislada por test (archivo temporal)"""
    engine = build_engine(f"sqlite:///{tmp_path / 'branchstock-test.db'}", busy_timeout=10)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def audit_sink():
    return RecordingAuditSink()


@pytest.fixture
def service(db_session, audit_sink):
    return RequisitionService(db_session, audit_sink=audit_sink)


# ===== PRINCIPALS =====

@pytest.fixture
def requester():
    return Principal(user_id="u-req", email="req@branch-b.test", role=Role.REQUESTER,
                     branch="Branch-B", name="Requester B")


@pytest.fixture
def other_requester():
    return Principal(user_id="u-req-c", email="req@branch-c.test", role=Role.REQUESTER,
                     branch="branch-c", name="Requester C")


@pytest.fixture
def approver():
    return Principal(user_id="u-app", email="approver@hq.test", role=Role.APPROVER, name="Approver")


@pytest.fixture
def admin():
    return Principal(user_id="u-adm", email="admin@hq.test", role=Role.ADMIN,
                     branch="branch-a", name="Admin")


# ===== HELPERS =====

class SeededProduct(NamedTuple):
    id: int
    name: str


@pytest.fixture
def seed_product(db_session):
    """Crear producto con contadores iniciales por sucursal

    Devuelve una tupla y no la instancia ORM: leerla tras el commit abriría
    una transacción que retiene el lock de escritura de SQLite.
    """

    def _seed(name: str, counters: Dict[str, int], is_active: bool = True) -> SeededProduct:
        product = Product(name=name, sku=f"SKU-{name}", is_active=is_active)
        db_session.add(product)
        db_session.flush()
        assert ProductInventoryRepository(db_session).set_counters(product.id, counters)
        seeded = SeededProduct(id=product.id, name=product.name)
        db_session.commit()
        return seeded

    return _seed


@pytest.fixture
def counters(db_session):
    def _counters(product_id: int) -> Dict[str, int]:
        db_session.expire_all()
        try:
            return ProductInventoryRepository(db_session).get_counters(product_id)
        finally:
            db_session.rollback()

    return _counters


def make_create(source_branch: str, items, notes: str = None) -> RequisitionCreate:
    """items: lista de (product_id, product_name, requested_qty)"""
    return RequisitionCreate(
        source_branch=source_branch,
        notes=notes,
        items=[
            RequisitionItemCreate(product_id=pid, product_name=name, requested_qty=qty)
            for pid, name, qty in items
        ],
    )


# ===== API =====

@pytest.fixture
def client(session_factory, audit_sink):
    app = create_app()
    app.state.rate_limiter = MovingWindowLimiter()

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_audit_sink] = lambda: audit_sink
    return TestClient(app)


def auth_headers(principal: Principal) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(principal)}"}


def move_to_in_transit(service: RequisitionService, requisition_id: int, approver: Principal,
                       approved_quantities=None):
    service.approve(requisition_id, approver, approved_quantities)
    return service.mark_in_transit(requisition_id, approver)
