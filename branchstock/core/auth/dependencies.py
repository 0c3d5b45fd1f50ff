from typing import List

from fastapi import Depends, Request

from branchstock.config.settings import settings
from branchstock.core.auth.schemas import Principal
from branchstock.core.auth.security import decode_access_token
from branchstock.core.exceptions import AuthenticationError, AuthorizationError


class JWTIdentityProvider:
    """Proveedor de identidad: autentica un request con un Bearer JWT"""

    def __init__(self, secret_key: str, algorithm: str):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def authenticate(self, request: Request) -> Principal:
        authorization = request.headers.get("Authorization")
        if not authorization:
            raise AuthenticationError("Missing Authorization header")

        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthenticationError("Authorization header must be 'Bearer <token>'")

        return decode_access_token(token.strip(), self.secret_key, self.algorithm)


def get_identity_provider() -> JWTIdentityProvider:
    return JWTIdentityProvider(settings.secret_key, settings.algorithm)


def get_current_user(
    request: Request,
    provider: JWTIdentityProvider = Depends(get_identity_provider)
) -> Principal:
    """Dependency: principal verificado del request"""
    principal = provider.authenticate(request)
    request.state.principal = principal
    return principal


def require_roles(roles: List[str]):
    """Dependency factory: exige que el usuario tenga uno de los roles"""

    def _check_roles(current_user: Principal = Depends(get_current_user)) -> Principal:
        if current_user.role.value not in roles:
            raise AuthorizationError(
                f"Role '{current_user.role.value}' is not allowed to perform this action",
                details={"allowed_roles": roles},
            )
        return current_user

    return _check_roles
