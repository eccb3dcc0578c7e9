"""Request dependencies: resolve the principal issued by the upstream auth layer."""

from fastapi import Depends, Header, HTTPException

from ordering.principal import Principal, Role
from ordering.utils.logging import add_context


async def get_principal(
    x_user_id: str | None = Header(default=None),
    x_user_role: str = Header(default=Role.CUSTOMER.value),
) -> Principal:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    try:
        role = Role(x_user_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown role: {x_user_role}") from None

    add_context(user_id=x_user_id, role=role.value)
    return Principal(user_id=x_user_id, role=role)


async def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return principal


async def require_operator(principal: Principal = Depends(get_principal)) -> Principal:
    """Admins and scheduled system jobs."""
    if principal.role not in (Role.ADMIN, Role.SYSTEM):
        raise HTTPException(status_code=403, detail="Admin or system access required")
    return principal
