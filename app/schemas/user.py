from pydantic import BaseModel, EmailStr, Field


class UserBase(BaseModel):
    """
    Esquema base para usuarios.
    - `EmailStr` valida que el correo tenga formato correcto.
    """

    name: str = Field(..., min_length=3, max_length=100, description="Nombre del usuario")
    email: EmailStr = Field(..., max_length=100, description="Correo electrónico válido")


class UserCreate(UserBase):
    """Esquema para registrar usuarios. Se exige una contraseña de 8 caracteres o más."""

    password: str = Field(..., min_length=8, max_length=255)


class UserResponse(UserBase):
    id: int
    role: str
    active: bool

    class Config:
        from_attributes = True
