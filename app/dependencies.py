from fastapi import Depends, HTTPException, status
from app.models.user import User
from app.routers.auth import get_current_user
from app.utils.validation import is_admin_user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Verifica si el usuario es administrador. Si no lo es, lanza una excepción."""
    if not is_admin_user(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tienes permisos para realizar esta acción.",
        )
    return user
