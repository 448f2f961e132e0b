from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Tuple
import logging

from postgrest.exceptions import APIError
from supabase import Client

from marketplace.errors import DatastoreError

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
ORDER_COLUMNS = (
    "id, customer_id, vendor_id, stripe_payment_intent_id, total_amount, platform_fee_amount, "
    "amount_charged, status, fee_transfer_id, fee_transferred_at, created_at"
)


def get_order_by_payment_intent(db: Client, payment_intent_id: str) -> Optional[dict]:
    try:
        res = (
            db.table("orders")
            .select(ORDER_COLUMNS)
            .eq("stripe_payment_intent_id", payment_intent_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.exception("orders.repository.get_order_by_payment_intent failed pi=%s", payment_intent_id)
        raise DatastoreError("Lecture de la commande impossible") from e
    rows = res.data or []
    return rows[0] if rows else None


def create_order_with_items(db: Client, order: Dict[str, Any], items: List[Dict[str, Any]]) -> Tuple[dict, bool]:
    """
    Insère la commande et ses lignes dans une seule transaction (fonction SQL
    create_order_with_items). Retourne (commande, created).
    created=False: une commande existait déjà pour ce PaymentIntent (redélivrance).
    """
    try:
        res = db.rpc("create_order_with_items", {"p_order": order, "p_items": items}).execute()
    except APIError as e:
        if getattr(e, "code", None) == UNIQUE_VIOLATION:
            existing = get_order_by_payment_intent(db, order["stripe_payment_intent_id"])
            if existing:
                return existing, False
        logger.exception("orders.repository.create_order_with_items failed pi=%s", order.get("stripe_payment_intent_id"))
        raise DatastoreError("Création de la commande impossible") from e
    except Exception as e:
        logger.exception("orders.repository.create_order_with_items failed pi=%s", order.get("stripe_payment_intent_id"))
        raise DatastoreError("Création de la commande impossible") from e

    data = res.data
    if isinstance(data, list):
        data = data[0] if data else None
    if not data or not data.get("order"):
        raise DatastoreError("Réponse inattendue de create_order_with_items")
    return data["order"], bool(data.get("created"))


def mark_fee_transferred(db: Client, order_id: str, transfer_id: Optional[str]) -> Optional[dict]:
    payload = {
        "fee_transfer_id": transfer_id,
        "fee_transferred_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        res = db.table("orders").update(payload).eq("id", order_id).execute()
    except Exception as e:
        logger.exception("orders.repository.mark_fee_transferred failed order_id=%s", order_id)
        raise DatastoreError("Enregistrement du virement de commission impossible") from e
    rows = res.data or []
    return rows[0] if rows else None


def list_orders_pending_fee(db: Client, limit: int = 100) -> List[dict]:
    """Commandes dont le virement de commission n'est pas encore enregistré (plus anciennes d'abord)."""
    try:
        res = (
            db.table("orders")
            .select(ORDER_COLUMNS)
            .is_("fee_transferred_at", "null")
            .order("created_at", desc=False)
            .limit(limit)
            .execute()
        )
        return res.data or []
    except Exception as e:
        logger.exception("orders.repository.list_orders_pending_fee failed")
        raise DatastoreError("Lecture des commissions en attente impossible") from e


def fetch_customer_orders(db: Client, customer_id: str, limit: int = 50) -> List[dict]:
    """
    Historique client, avec jointures order_items -> product.
    - Tri: created_at desc
    """
    try:
        res = (
            db.table("orders")
            .select("id, vendor_id, total_amount, status, created_at, order_items(product_id, title, quantity, unit_price, price_missing)")
            .eq("customer_id", customer_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("orders.repository.fetch_customer_orders failed customer_id=%s", customer_id)
        return []


def fetch_vendor_orders(db: Client, vendor_id: str, limit: int = 100) -> List[dict]:
    try:
        res = (
            db.table("orders")
            .select("id, customer_id, total_amount, platform_fee_amount, status, created_at, order_items(product_id, title, quantity, unit_price, price_missing)")
            .eq("vendor_id", vendor_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("orders.repository.fetch_vendor_orders failed vendor_id=%s", vendor_id)
        return []
