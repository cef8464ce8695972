from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass
class Principal:
    id: str
    email: str
    name: str
    role: Role
    active: bool

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")
        return principal

    return _dep


def assert_owner_or_admin(principal: Principal, owner_id: str | None) -> None:
    if principal.is_admin:
        return
    if owner_id is None or principal.id != owner_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")
