from decimal import Decimal, InvalidOperation
from dotenv import (
    load_dotenv,
)  # Para cargar variables de entorno desde un archivo .env.
import os  # Para acceder a variables de entorno.

load_dotenv()


def get_required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise Exception(f"Env var {name} is required but not found.")
    return value


def get_decimal_env(name: str, default: str) -> Decimal:
    """Lee una variable de entorno numérica como `Decimal`."""
    value = os.getenv(name, default)
    try:
        return Decimal(value)
    except InvalidOperation:
        raise Exception(f"Env var {name} must be numeric, got {value!r}.")
