"""
Logique panier pure (pas de Stripe, pas de DB): montants, regroupement par vendeur.
Les prix viennent toujours de la table product, jamais du client.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import List, Dict, Any, Iterable
import logging

from marketplace.errors import EmptyCart, ValidationFailed

logger = logging.getLogger(__name__)

TWOPLACES = Decimal("0.01")


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int
    unit_price: Decimal
    vendor_id: str
    title: str = ""

    @property
    def line_cents(self) -> int:
        return to_cents(self.unit_price) * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": format_amount(self.unit_price),
        }


def money(v: Any) -> Decimal:
    if v is None or v == "":
        return Decimal("0.00")
    try:
        return Decimal(str(v)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return Decimal("0.00")


def to_cents(amount: Any) -> int:
    return int((money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(int(cents)) / 100).quantize(TWOPLACES)


def format_amount(amount: Any) -> str:
    """Montant en chaîne '20.00' (format attendu par les colonnes numeric)."""
    return f"{money(amount):.2f}"


def platform_fee_cents(amount_cents: int, fee_rate: Decimal) -> int:
    """round(amount × fee_rate) en centimes (ROUND_HALF_UP)."""
    return int((Decimal(int(amount_cents)) * Decimal(fee_rate)).to_integral_value(rounding=ROUND_HALF_UP))


def _to_int_qty(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationFailed("quantity doit être un entier")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailed("quantity doit être un entier")


def aggregate_quantities(items: List[Dict[str, Any]]) -> Dict[str, int]:
    """
    Agrège un panier brut [{product_id, quantity, ...}] en {product_id: quantité totale}.
    - Ignore les lignes sans product_id ou de quantité <= 0.
    - Les champs price / vendor_id éventuellement fournis par le client sont ignorés.
    - Soulève EmptyCart si aucune ligne valide.
    """
    quantities: Dict[str, int] = {}
    for it in items or []:
        product_id = str(it.get("product_id") or "").strip()
        qty = _to_int_qty(it.get("quantity") or 0)
        if not product_id or qty <= 0:
            continue
        quantities[product_id] = quantities.get(product_id, 0) + qty
    if not quantities:
        raise EmptyCart()
    return quantities


def line_from_product(product: Dict[str, Any], quantity: int) -> CartLine:
    return CartLine(
        product_id=str(product.get("id")),
        quantity=int(quantity),
        unit_price=money(product.get("price")),
        vendor_id=str(product.get("vendor_id") or ""),
        title=product.get("title") or "",
    )


def group_by_vendor(lines: Iterable[CartLine]) -> Dict[str, List[CartLine]]:
    """vendor_id -> lignes, dans l'ordre d'arrivée (l'ordre des vendeurs aussi)."""
    groups: Dict[str, List[CartLine]] = {}
    for line in lines:
        if not line.vendor_id:
            logger.warning("Produit sans vendeur ignoré product_id=%s", line.product_id)
            continue
        groups.setdefault(line.vendor_id, []).append(line)
    return groups


def group_amount_cents(lines: Iterable[CartLine]) -> int:
    return sum(line.line_cents for line in lines)
