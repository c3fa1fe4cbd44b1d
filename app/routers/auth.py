"""
Autenticación de usuarios del panel:
- Registro (/auth/registro) → el primer usuario registrado queda como admin.
- Inicio de sesión (/auth/login) → verifica credenciales y devuelve un token JWT.
- Perfil (/auth/perfil) → datos del usuario autenticado.
Los movimientos de stock se firman con el usuario que devuelve `get_current_user`.
"""

import logging
from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from sqlmodel import Session, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from app.models.database import get_db
from app.models.user import User
from app.schemas.user import UserCreate, UserResponse
from app.utils.authentication import (
    ACCESS_TOKEN_DURATION,
    hash_password,
    verify_password,
    create_access_token,
    decode_access_token,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Autenticación"])

oauth2 = OAuth2PasswordBearer(tokenUrl="/auth/login")


@router.post(
    "/registro", response_model=UserResponse, status_code=status.HTTP_201_CREATED
)
def register(user_data: UserCreate, db: Session = Depends(get_db)):
    """Registra un nuevo usuario con contraseña encriptada."""
    try:
        existing_user = db.exec(select(User).where(User.email == user_data.email)).first()
        total_users = db.exec(select(func.count()).select_from(User)).first() or 0
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error de conexión con la base de datos",
        )

    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="El correo ya está registrado.",
        )

    new_user = User(
        name=user_data.name,
        email=user_data.email,
        password_hash=hash_password(user_data.password),
        role="admin" if total_users == 0 else "staff",
    )

    try:
        db.add(new_user)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Error de integridad en la base de datos.",
        )
    except SQLAlchemyError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error interno del servidor al registrar el usuario.",
        )

    db.refresh(new_user)
    logger.info("Usuario %s registrado con rol %s", new_user.id, new_user.role)
    return new_user  # `UserResponse` filtra el hash de la contraseña


@router.post("/login")
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    """Autentica al usuario y genera un token JWT."""
    try:
        # OAuth2PasswordRequestForm espera username y password, nuestro "username" es el email.
        user = db.exec(select(User).where(User.email == form_data.username)).first()
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error de conexión con la base de datos",
        )

    if not user or not verify_password(form_data.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenciales incorrectas"
        )
    if not user.active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="El usuario está inactivo. Contacta al administrador para activarlo.",
        )

    access_token = create_access_token(
        {"sub": str(user.id), "role": user.role},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_DURATION),
    )
    return {"access_token": access_token, "token_type": "bearer"}


def get_current_user(token: str = Depends(oauth2), db: Session = Depends(get_db)) -> User:
    """Obtiene el usuario actual a partir del token JWT."""
    payload = decode_access_token(token)

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido"
        )

    try:
        user = db.get(User, int(user_id))
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error de conexión con la base de datos",
        )

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Usuario no encontrado o eliminado",
        )
    if not user.active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="El usuario está inactivo. Contacta al administrador para activarlo.",
        )

    return user


@router.get("/perfil", response_model=UserResponse)
def get_profile(user: User = Depends(get_current_user)):
    """Retorna los datos del usuario autenticado."""
    return user
