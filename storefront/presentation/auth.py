from fastapi import Depends, Header, HTTPException, status

from storefront.database import get_session_factory
from storefront.domain.models import User, UserRole
from storefront.infrastructure.unit_of_work import UnitOfWork


async def get_current_user(
    x_user_id: str = Header(default=""),
    session_factory=Depends(get_session_factory)
) -> User:
    """Пользователь запроса по заголовку X-User-Id. Токены выдает не этот сервис."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, no user")
    async with UnitOfWork(session_factory)() as uow:
        user = await uow.users.get_by_id(x_user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def require_roles(*roles: UserRole):
    async def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(r.value for r in roles)}"
            )
        return user
    return dependency
