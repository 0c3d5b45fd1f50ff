import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from branchstock.config.settings import settings
from branchstock.config.database import Base, SessionLocal, engine
from branchstock.core.audit import DatabaseAuditSink
from branchstock.core.exceptions import setup_exception_handlers
from branchstock.core.logging import setup_logging
from branchstock.core.middleware import setup_middleware
from branchstock.core.rate_limit import MovingWindowLimiter
from branchstock.api.v1.router import api_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    logger.info(f"🚀 {settings.app_name} Starting...")
    logger.info(f"📍 Version: {settings.version}")
    logger.info(f"🌍 Environment: {'Development' if settings.debug else 'Production'}")

    Base.metadata.create_all(bind=engine)
    app.state.rate_limiter = MovingWindowLimiter()
    app.state.audit_sink = DatabaseAuditSink(SessionLocal)

    yield

    # Shutdown
    app.state.rate_limiter.close()
    app.state.audit_sink.close()
    logger.info(f"🛑 {settings.app_name} Shutting down...")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        description="Requisiciones y transferencias de stock entre sucursales",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan
    )

    setup_middleware(app)
    setup_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/")
    async def root():
        return {
            "message": f"🚀 {settings.app_name}",
            "version": settings.version,
            "status": "running",
            "docs": "/docs" if settings.debug else "Disabled in production",
            "api": "/api/v1"
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "branchstock.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
