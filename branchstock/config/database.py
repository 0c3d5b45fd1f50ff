from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .settings import settings


def _configure_sqlite(engine: Engine) -> None:
    """
    pysqlite no emite BEGIN por sí mismo; sin esto los SAVEPOINT no aíslan nada.

    BEGIN IMMEDIATE toma el lock de escritura al abrir la transacción: un
    segundo escritor espera (busy timeout) en lugar de fallar con
    "database is locked" al intentar el UPDATE condicionado.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str, echo: bool = False,
                 busy_timeout: float = settings.sqlite_busy_timeout_seconds) -> Engine:
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
            echo=echo,
        )
        _configure_sqlite(engine)
        return engine

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=300,
        echo=echo,
    )


# Create engine
engine = build_engine(settings.database_url, echo=settings.debug)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()

# Database dependency
def get_db():
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
