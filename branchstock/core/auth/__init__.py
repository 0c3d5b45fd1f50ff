from .schemas import Principal, Role, CREATOR_ROLES, APPROVER_ROLES
from .dependencies import JWTIdentityProvider, get_current_user, require_roles
from .security import create_access_token, decode_access_token

__all__ = [
    "Principal",
    "Role",
    "CREATOR_ROLES",
    "APPROVER_ROLES",
    "JWTIdentityProvider",
    "get_current_user",
    "require_roles",
    "create_access_token",
    "decode_access_token",
]
