from typing import Optional
import unicodedata

from app.models.user import User


def is_admin_user(user: User) -> bool:
    """Devuelve True si el usuario es administrador, False en caso contrario."""
    return user.role.lower() == "admin"


def normalize_category(category: Optional[str]) -> Optional[str]:
    """Normaliza el nombre de la categoría para que el filtro exacto funcione:
    - Elimina tildes
    - Capitaliza la primera letra
    - Elimina espacios extra
    Una categoría vacía se guarda como None.
    """
    if category is None:
        return None
    category = " ".join(category.split())
    if not category:
        return None
    category = "".join(
        c for c in unicodedata.normalize("NFD", category) if unicodedata.category(c) != "Mn"
    )  # NFD separa la tilde de la letra base y "Mn" la descarta
    return category.capitalize()


def like_pattern(search: str) -> str:
    """Patrón LIKE en minúsculas para buscar `search` como texto literal.
    Escapa `%` y `_` para que no actúen como comodines (se usa con escape="\\")."""
    text = search.strip().lower()
    text = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{text}%"
