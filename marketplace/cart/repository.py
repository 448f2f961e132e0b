"""
Accès aux données pour le panier et le catalogue (tables cart_items, product).
Les lectures/écritures du checkout propagent les erreurs (DatastoreError):
un prix ou un panier illisible ne doit jamais être remplacé par une valeur neutre.
"""
from typing import Any, Dict, Iterable, List, Optional
import logging

from postgrest.exceptions import APIError
from supabase import Client

from marketplace.errors import DatastoreError

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS = "id, vendor_id, title, price, inventory_count"


def fetch_products_by_ids(db: Client, ids: Iterable[str]) -> List[dict]:
    ids = [str(i) for i in ids if i]
    if not ids:
        return []
    try:
        res = db.table("product").select(PRODUCT_COLUMNS).in_("id", ids).execute()
        return res.data or []
    except Exception as e:
        logger.exception("cart.repository.fetch_products_by_ids failed ids=%s", ids)
        raise DatastoreError("Lecture des produits impossible") from e


def get_products_map(db: Client, ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Retourne {id: produit} à partir d’une liste d’IDs."""
    return {str(p.get("id")): p for p in fetch_products_by_ids(db, ids)}


def fetch_cart_rows(db: Client, customer_id: str) -> List[dict]:
    """
    Lignes du panier avec la jointure produit (prix et vendeur courants).
    - Select: product_id, quantity, product(id, vendor_id, title, price, inventory_count)
    - Tri: created_at asc (ordre d'ajout)
    """
    try:
        res = (
            db.table("cart_items")
            .select(f"product_id, quantity, created_at, product({PRODUCT_COLUMNS})")
            .eq("customer_id", customer_id)
            .order("created_at", desc=False)
            .execute()
        )
        return res.data or []
    except Exception as e:
        logger.exception("cart.repository.fetch_cart_rows failed customer_id=%s", customer_id)
        raise DatastoreError("Lecture du panier impossible") from e


def add_to_cart(db: Client, customer_id: str, product_id: str, quantity: int) -> Optional[dict]:
    """Incrément atomique via la fonction SQL add_to_cart (upsert ON CONFLICT)."""
    try:
        res = db.rpc(
            "add_to_cart",
            {"p_customer_id": customer_id, "p_product_id": product_id, "p_quantity": quantity},
        ).execute()
    except APIError as e:
        logger.exception("cart.repository.add_to_cart failed customer_id=%s product_id=%s", customer_id, product_id)
        raise DatastoreError("Ajout au panier impossible") from e
    data = res.data
    if isinstance(data, list):
        return data[0] if data else None
    return data or None


def set_cart_quantity(db: Client, customer_id: str, product_id: str, quantity: int) -> Optional[dict]:
    try:
        res = (
            db.table("cart_items")
            .update({"quantity": quantity})
            .eq("customer_id", customer_id)
            .eq("product_id", product_id)
            .execute()
        )
    except Exception as e:
        logger.exception("cart.repository.set_cart_quantity failed customer_id=%s product_id=%s", customer_id, product_id)
        raise DatastoreError("Mise à jour du panier impossible") from e
    rows = res.data or []
    return rows[0] if rows else None


def delete_cart_items(db: Client, customer_id: str, product_ids: Optional[Iterable[str]] = None) -> int:
    """
    Supprime les lignes du panier d'un client.
    - product_ids fourni: seulement ces produits (règlement d'un groupe vendeur)
    - Idempotent: supprimer un panier déjà vide renvoie 0
    """
    query = db.table("cart_items").delete().eq("customer_id", customer_id)
    if product_ids is not None:
        ids = [str(p) for p in product_ids]
        if not ids:
            return 0
        query = query.in_("product_id", ids)
    try:
        res = query.execute()
    except Exception as e:
        logger.exception("cart.repository.delete_cart_items failed customer_id=%s", customer_id)
        raise DatastoreError("Suppression du panier impossible") from e
    return len(res.data or [])
