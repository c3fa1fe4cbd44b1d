"""
Cantidades de stock según la unidad de medida del producto.
- `unidad`: siempre enteras.
- `kg`: hasta 3 decimales.
Todo se maneja con `Decimal` para que el ledger sume sin errores de redondeo.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from app.services.errors import MovementValidationError, QuantityNotIntegral

UNITS = ("unidad", "kg")

KG_STEP = Decimal("0.001")
UNIT_STEP = Decimal("1")
# Límite de las columnas Numeric(12, 3)
MAX_QUANTITY = Decimal("999999999.999")

UNIT_SUFFIX = {"unidad": "un.", "kg": "kg"}

RawQuantity = Union[Decimal, int, float, str]


@dataclass(frozen=True)
class Quantity:
    """Cantidad normalizada y asociada a su unidad."""

    value: Decimal
    unit: str

    def __str__(self):
        return format_quantity(self.value, self.unit)


def _to_decimal(raw: RawQuantity) -> Decimal:
    """Convierte la entrada en `Decimal` o lanza `MovementValidationError`."""
    if raw is None or isinstance(raw, bool):
        raise MovementValidationError("La cantidad es obligatoria.")
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, int):
        value = Decimal(raw)
    elif isinstance(raw, float):
        # str() evita arrastrar la representación binaria (0.1 -> 0.1000000000000000055...)
        value = Decimal(str(raw))
    elif isinstance(raw, str):
        text = raw.strip().replace(",", ".")  # El panel acepta coma decimal
        if not text:
            raise MovementValidationError("La cantidad es obligatoria.")
        try:
            value = Decimal(text)
        except InvalidOperation:
            raise MovementValidationError(f"Cantidad inválida: {raw!r}.")
    else:
        raise MovementValidationError(f"Cantidad inválida: {raw!r}.")

    if not value.is_finite():
        raise MovementValidationError(f"Cantidad inválida: {raw!r}.")
    return value


def normalize(raw: RawQuantity, unit: str) -> Quantity:
    """Valida una cantidad cruda y la ajusta a la precisión de la unidad.

    Conserva el signo: los ajustes pueden ser negativos.
    """
    if unit not in UNITS:
        raise MovementValidationError(f"Unidad de medida desconocida: {unit!r}.")

    value = _to_decimal(raw)

    # quantize falla con más de 28 dígitos, se acota antes de redondear
    if abs(value) > MAX_QUANTITY:
        raise MovementValidationError("La cantidad supera el máximo permitido.")

    if unit == "unidad":
        if value != value.to_integral_value():
            raise QuantityNotIntegral()
        value = value.quantize(UNIT_STEP)
    else:
        value = value.quantize(KG_STEP, rounding=ROUND_HALF_UP)

    if abs(value) > MAX_QUANTITY:
        raise MovementValidationError("La cantidad supera el máximo permitido.")

    return Quantity(value=value, unit=unit)


def format_quantity(value: RawQuantity, unit: str = "unidad") -> str:
    """Formatea una cantidad para mostrarla.

    >>> format_quantity(Decimal("2.500"), "kg")
    '2.5'
    >>> format_quantity(3, "unidad")
    '3'
    """
    try:
        number = _to_decimal(value)
    except MovementValidationError:
        return "—"

    if abs(number) > MAX_QUANTITY:
        return "—"

    if unit == "kg":
        text = format(number.quantize(KG_STEP, rounding=ROUND_HALF_UP), "f")
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return "0" if text in ("", "-0") else text

    return str(int(number.quantize(UNIT_STEP, rounding=ROUND_HALF_UP)))


def format_with_unit(value: RawQuantity, unit: str = "unidad") -> str:
    """Cantidad con sufijo de unidad, ej: "9 un.", "2.5 kg"."""
    return f"{format_quantity(value, unit)} {UNIT_SUFFIX.get(unit, 'un.')}"


def format_signed(delta: RawQuantity, unit: str = "unidad") -> str:
    """Cantidad de un movimiento con signo (+ / -)."""
    try:
        number = _to_decimal(delta)
    except MovementValidationError:
        return "—"

    formatted = format_quantity(abs(number), unit)
    if formatted == "—":
        return formatted
    if number > 0:
        return f"+{formatted}"
    if number < 0:
        return f"-{formatted}"
    return "0"
