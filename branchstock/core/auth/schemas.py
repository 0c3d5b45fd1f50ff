from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class Role(str, Enum):
    REQUESTER = "requester"
    APPROVER = "approver"
    ADMIN = "admin"


# Roles que pueden crear requisiciones (siempre para su propia sucursal)
CREATOR_ROLES = [Role.REQUESTER.value, Role.ADMIN.value]

# Roles que pueden aprobar, rechazar, despachar, recibir y eliminar
APPROVER_ROLES = [Role.APPROVER.value, Role.ADMIN.value]


class Principal(BaseModel):
    """Usuario autenticado tal como lo entrega el proveedor de identidad"""
    user_id: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    role: Role
    branch: Optional[str] = None
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email

    @property
    def normalized_branch(self) -> Optional[str]:
        if not self.branch or not self.branch.strip():
            return None
        return self.branch.strip().lower()
