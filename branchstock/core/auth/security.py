from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import ValidationError as PydanticValidationError

from branchstock.config.settings import settings
from branchstock.core.auth.schemas import Principal
from branchstock.core.exceptions import AuthenticationError


def create_access_token(principal: Principal, expires_minutes: Optional[int] = None,
                        secret_key: Optional[str] = None, algorithm: Optional[str] = None) -> str:
    """Emitir un JWT para un principal (usado por herramientas internas y tests)"""
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes
    )
    payload = {
        "sub": principal.user_id,
        "email": principal.email,
        "role": principal.role.value,
        "branch": principal.branch,
        "name": principal.name,
        "exp": expire,
    }
    return jwt.encode(payload, secret_key or settings.secret_key, algorithm=algorithm or settings.algorithm)


def decode_access_token(token: str, secret_key: Optional[str] = None,
                        algorithm: Optional[str] = None) -> Principal:
    """Verificar un JWT y construir el Principal"""
    try:
        payload = jwt.decode(
            token,
            secret_key or settings.secret_key,
            algorithms=[algorithm or settings.algorithm],
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    try:
        return Principal(
            user_id=str(payload.get("sub") or ""),
            email=payload.get("email") or "",
            role=payload.get("role"),
            branch=payload.get("branch"),
            name=payload.get("name"),
        )
    except PydanticValidationError:
        raise AuthenticationError("Invalid token claims")
