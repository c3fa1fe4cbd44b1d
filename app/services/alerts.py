"""
Alertas de stock.

- `out`: sin stock (stock <= 0).
- `low`: bajo mínimo (0 < stock <= mínimo).
- `near`: cerca del mínimo (mínimo < stock <= mínimo * multiplicador).
Los productos con stock sano no tienen alerta y no aparecen en los listados.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, NamedTuple, Optional

from app.models.product import Product
from app.services.errors import MovementValidationError
from app.utils.getenv import get_decimal_env

# Margen por encima del mínimo que ya se considera "cerca de agotarse"
NEAR_THRESHOLD_MULTIPLIER = get_decimal_env("STOCK_NEAR_MULTIPLIER", "1.2")

ALERT_TYPES = ("out", "low", "near")


class AlertItem(NamedTuple):
    product: Product
    alert_type: str


@dataclass
class AlertSummary:
    counts: Dict[str, int] = field(default_factory=lambda: dict.fromkeys(ALERT_TYPES, 0))
    items: List[AlertItem] = field(default_factory=list)


def _dec(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value or 0))


def classify(stock, min_stock, multiplier=None) -> Optional[str]:
    """Devuelve la alerta que corresponde al stock, o None si está sano."""
    stock = _dec(stock)
    min_stock = _dec(min_stock)
    multiplier = NEAR_THRESHOLD_MULTIPLIER if multiplier is None else _dec(multiplier)

    if stock <= 0:
        return "out"
    if stock <= min_stock:
        return "low"
    if stock <= min_stock * multiplier:
        return "near"
    return None


def classify_product(product: Product, multiplier=None) -> Optional[str]:
    return classify(product.stock, product.min_stock, multiplier)


def summarize(
    products: Iterable[Product],
    search: Optional[str] = None,
    category: Optional[str] = None,
    alert_type: Optional[str] = None,
    multiplier=None,
) -> AlertSummary:
    """Arma el resumen de alertas de los productos activos.

    `search` y `category` filtran tanto los contadores como el listado;
    `alert_type` solo filtra el listado, así los contadores no cambian
    mientras se alterna entre tipos de alerta.
    """
    if alert_type in (None, "", "all"):
        wanted = None
    elif alert_type in ALERT_TYPES:
        wanted = alert_type
    else:
        raise MovementValidationError(f"Tipo de alerta desconocido: {alert_type!r}.")

    needle = search.strip().lower() if search else ""
    category = category.strip() if category else ""

    summary = AlertSummary()
    for product in products:
        if not product.active:
            continue
        if needle and needle not in product.name.lower() and needle not in product.code.lower():
            continue
        if category and product.category != category:
            continue

        tag = classify_product(product, multiplier)
        if tag is None:
            continue

        summary.counts[tag] += 1
        if wanted is None or tag == wanted:
            summary.items.append(AlertItem(product, tag))

    summary.items.sort(
        key=lambda item: (ALERT_TYPES.index(item.alert_type), item.product.name.lower())
    )
    return summary
