"""
Errores de dominio y su traducción a respuestas HTTP.

Los servicios lanzan subclases de AppError; la categoría es el contrato con
el cliente, el status code es convención.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from branchstock.config.settings import settings

logger = logging.getLogger(__name__)


class ErrorCategory:
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not-found"
    CONFLICT = "conflict"
    INTERNAL = "internal"


class AppError(Exception):
    category = ErrorCategory.INTERNAL
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "category": self.category,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(AppError):
    category = ErrorCategory.VALIDATION
    status_code = status.HTTP_400_BAD_REQUEST


class PayloadTooLargeError(ValidationError):
    status_code = 413


class AuthenticationError(AppError):
    category = ErrorCategory.AUTHENTICATION
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(AppError):
    category = ErrorCategory.AUTHORIZATION
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    category = ErrorCategory.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND


class StateConflictError(AppError):
    category = ErrorCategory.CONFLICT
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current_status: str, required_status: str, action: str):
        super().__init__(
            f"Cannot {action} requisition: current status is '{current_status}', "
            f"required status is '{required_status}'",
            details={"current_status": current_status, "required_status": required_status},
        )
        self.current_status = current_status
        self.required_status = required_status


class ItemTransferError(Exception):
    """Fallo aislado de un item; nunca sale del ejecutor de transferencias"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ProductNotFoundError(ItemTransferError):
    def __init__(self, product_id: int):
        super().__init__("Product not found")
        self.product_id = product_id


class InsufficientStockError(ItemTransferError):
    def __init__(self, branch: str, available: int, required: int):
        super().__init__(
            f"Insufficient stock at {branch}. Available: {available}, Required: {required}"
        )
        self.branch = branch
        self.available = available
        self.required = required


class TransferFailedError(AppError):
    """Todos los items fallaron: la requisición sigue en tránsito"""
    category = ErrorCategory.INTERNAL
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, failed: List[Dict[str, Any]]):
        super().__init__("Stock transfer failed for all items", details=failed)


# ===== HANDLERS =====

async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.category}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    body = {
        "error": {
            "category": ErrorCategory.VALIDATION,
            "message": "Invalid request payload",
            "details": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg")}
                for err in exc.errors()
            ],
        }
    }
    return JSONResponse(status_code=422, content=body)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"🚨 API Error in {request.method} {request.url.path}")
    body = {
        "error": {
            "category": ErrorCategory.INTERNAL,
            "message": str(exc) if settings.debug else "Internal server error",
            "details": None,
        }
    }
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)


def setup_exception_handlers(app: FastAPI):
    """Registrar los handlers de errores de la aplicación"""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
