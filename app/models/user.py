from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """Usuario del panel. Solo se usa para firmar movimientos y proteger el catálogo."""

    __tablename__ = "usuario"

    id: int = Field(default=None, primary_key=True, nullable=False)
    name: str = Field(nullable=False)
    email: str = Field(unique=True, nullable=False, index=True)
    password_hash: str = Field(nullable=False)
    role: str = Field(default="staff", nullable=False)  # "admin" o "staff"
    active: bool = Field(default=True, nullable=False)
