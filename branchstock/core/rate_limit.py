"""
Rate limiter inyectable (best-effort).

Vive en app.state y su ciclo de vida lo maneja el lifespan de la app. Los
fallos, incluido un límite excedido, solo se loguean: nunca abortan la
operación principal.
"""
import logging
from typing import Dict, Optional

from fastapi import Depends, Request
from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import Storage, storage_from_string
from limits.strategies import MovingWindowRateLimiter

from branchstock.config.settings import settings
from branchstock.core.auth.dependencies import get_current_user
from branchstock.core.auth.schemas import Principal, Role

logger = logging.getLogger(__name__)

PUBLIC = "public"


class RateLimitExceeded(Exception):
    def __init__(self, key: str, limit: int, window_seconds: int):
        super().__init__(f"Rate limit exceeded for {key}: {limit} requests / {window_seconds}s")
        self.key = key
        self.limit = limit
        self.window_seconds = window_seconds


class RateLimiter:
    """Interfaz: check() lanza RateLimitExceeded si se excede el presupuesto"""

    def check(self, key: str, role: Optional[str] = None) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


def default_role_limits() -> Dict[str, int]:
    return {
        PUBLIC: settings.rate_limit_public,
        Role.REQUESTER.value: settings.rate_limit_requester,
        Role.APPROVER.value: settings.rate_limit_approver,
        Role.ADMIN.value: settings.rate_limit_admin,
    }


class MovingWindowLimiter(RateLimiter):
    """
    Presupuesto por rol con ventana móvil de la librería limits.

    El storage sale de settings.rate_limit_storage_uri ("memory://" por
    defecto, "redis://..." para compartirlo entre procesos). Las claves
    vencidas las limpia el propio storage.
    """

    def __init__(self, role_limits: Optional[Dict[str, int]] = None,
                 window_seconds: Optional[int] = None,
                 storage: Optional[Storage] = None):
        self.role_limits = role_limits or default_role_limits()
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds
        self.storage = storage or storage_from_string(settings.rate_limit_storage_uri)
        self.strategy = MovingWindowRateLimiter(self.storage)
        self._items: Dict[str, RateLimitItem] = {
            role: RateLimitItemPerSecond(limit, self.window_seconds)
            for role, limit in self.role_limits.items()
        }

    def item_for(self, role: Optional[str]) -> RateLimitItem:
        return self._items.get(role or PUBLIC, self._items[PUBLIC])

    def limit_for(self, role: Optional[str]) -> int:
        return self.item_for(role).amount

    def check(self, key: str, role: Optional[str] = None) -> None:
        item = self.item_for(role)
        if not self.strategy.hit(item, role or PUBLIC, key):
            raise RateLimitExceeded(key, item.amount, self.window_seconds)

    def reset(self) -> None:
        self.storage.reset()

    def close(self) -> None:
        self.reset()


def get_rate_limiter(request: Request) -> Optional[RateLimiter]:
    return getattr(request.app.state, "rate_limiter", None)


def rate_limit_key(request: Request, identity: str) -> str:
    """Clave por identidad y ruta declarada (/requisitions/{requisition_id}, no el id concreto)"""
    route = request.scope.get("route")
    path = getattr(route, "path", None) or request.url.path
    return f"{identity}:{request.method}:{path}"


def _apply(limiter: Optional[RateLimiter], key: str, role: Optional[str]) -> None:
    if limiter is None:
        return
    try:
        limiter.check(key, role)
    except RateLimitExceeded as e:
        logger.warning(f"⚠️ Rate limit check failed: {e}")
    except Exception as e:
        logger.warning(f"⚠️ Rate limiter error ({type(limiter).__name__}): {e}")


def enforce_rate_limit(
    request: Request,
    current_user: Principal = Depends(get_current_user),
    limiter: Optional[RateLimiter] = Depends(get_rate_limiter)
) -> Principal:
    """Dependency: aplica el límite por usuario, sin bloquear nunca el request"""
    _apply(limiter, rate_limit_key(request, current_user.user_id), current_user.role.value)
    return current_user


def enforce_public_rate_limit(
    request: Request,
    limiter: Optional[RateLimiter] = Depends(get_rate_limiter)
) -> None:
    """Dependency para endpoints sin autenticación: clave por IP del cliente"""
    client_host = request.client.host if request.client else "unknown"
    _apply(limiter, rate_limit_key(request, client_host), None)
