from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from branchstock.config.settings import settings
import time
import uuid
import logging

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def setup_middleware(app: FastAPI):
    """CORS y log de requests con request id y usuario autenticado"""

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
        max_age=3600
    )

    @app.middleware("http")
    async def log_requests(request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        start_time = time.time()

        response = await call_next(request)

        # get_current_user deja el principal en request.state
        principal = getattr(request.state, "principal", None)
        actor = f"{principal.email} ({principal.role.value})" if principal else "anonymous"
        logger.info(
            f"[{request_id}] {request.method} {request.url.path} - "
            f"User: {actor} - "
            f"Status: {response.status_code} - "
            f"Time: {time.time() - start_time:.4f}s"
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
