"""
Cart Aggregator: panier d'un client -> lignes groupées par vendeur.

Lecture seule. Le prix et le vendeur de chaque ligne sont ceux de la table product
au moment de l'appel; les valeurs éventuellement envoyées par le client sont ignorées.
"""
from typing import Any, Dict, List, Optional
import logging

from supabase import Client

from marketplace.errors import NotAuthenticated, ValidationFailed, EmptyCart
from marketplace.payments.cart import CartLine, aggregate_quantities, line_from_product, group_by_vendor
from . import repository

logger = logging.getLogger(__name__)

VendorGroups = Dict[str, List[CartLine]]


def cart_lines(db: Client, customer_id: Optional[str]) -> List[CartLine]:
    if not customer_id:
        raise NotAuthenticated()
    lines: List[CartLine] = []
    for row in repository.fetch_cart_rows(db, customer_id):
        product = row.get("product")
        if not product:
            logger.warning("Ligne de panier orpheline ignorée customer_id=%s product_id=%s", customer_id, row.get("product_id"))
            continue
        qty = int(row.get("quantity") or 0)
        if qty <= 0:
            continue
        lines.append(line_from_product(product, qty))
    return lines


def aggregate_cart(db: Client, customer_id: Optional[str]) -> VendorGroups:
    """
    Panier persistant du client groupé par vendeur:
    {vendor_id: [CartLine(product_id, quantity, unit_price, ...)]}.
    Un panier vide retourne {} (c'est l'Intent Builder qui refuse un panier vide).
    """
    return group_by_vendor(cart_lines(db, customer_id))


def aggregate_items(db: Client, items: List[Dict[str, Any]]) -> VendorGroups:
    """
    Variante pour un panier transmis dans la requête ({product_id, quantity, vendor_id}).
    Les quantités sont cumulées par produit, puis prix et vendeur relus en base.
    """
    quantities = aggregate_quantities(items)
    products = repository.get_products_map(db, quantities.keys())
    missing = [pid for pid in quantities if pid not in products]
    if missing:
        raise ValidationFailed(f"Produit introuvable: {', '.join(missing)}")
    lines = [line_from_product(products[pid], qty) for pid, qty in quantities.items()]
    groups = group_by_vendor(lines)
    if not groups:
        raise EmptyCart()
    return groups


def serialize_groups(groups: VendorGroups) -> Dict[str, List[Dict[str, Any]]]:
    return {vendor_id: [line.to_dict() for line in lines] for vendor_id, lines in groups.items()}


def add_item(db: Client, customer_id: str, product_id: str, quantity: int) -> Optional[dict]:
    if quantity <= 0:
        raise ValidationFailed("quantity doit être > 0")
    if not repository.get_products_map(db, [product_id]):
        raise ValidationFailed("Produit introuvable")
    return repository.add_to_cart(db, customer_id, product_id, quantity)


def update_item(db: Client, customer_id: str, product_id: str, quantity: int) -> Optional[dict]:
    """Fixe la quantité; 0 (ou moins) retire la ligne."""
    if quantity <= 0:
        repository.delete_cart_items(db, customer_id, [product_id])
        return None
    return repository.set_cart_quantity(db, customer_id, product_id, quantity)


def remove_item(db: Client, customer_id: str, product_id: str) -> int:
    return repository.delete_cart_items(db, customer_id, [product_id])
