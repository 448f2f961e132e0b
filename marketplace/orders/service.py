"""Couche service des commandes.
- Historique client / vendeur (lecture seule).
- Reprise des virements de commission: une commande créée dont le virement a échoué
  (Stripe indisponible, compte plateforme mal configuré...) est rejouée ici,
  indépendamment de la création de la commande.
"""
from typing import Dict, Any, List
import logging

from supabase import Client

from marketplace.errors import MarketplaceError
from marketplace.payments.settlement import transfer_platform_fee
from . import repository

logger = logging.getLogger(__name__)


def customer_orders(db: Client, customer_id: str) -> List[dict]:
    return repository.fetch_customer_orders(db, customer_id)


def vendor_orders(db: Client, vendor_id: str) -> List[dict]:
    return repository.fetch_vendor_orders(db, vendor_id)


def retry_pending_fee_transfers(db: Client, limit: int = 100) -> Dict[str, Any]:
    """
    Rejoue le virement de commission des commandes sans fee_transferred_at.
    La clé d'idempotence Stripe (platform-fee-<order_id>) empêche un double virement
    si le webhook rejoue la même commande en parallèle.
    Retour: {"pending": n, "transferred": [order_id...], "failed": [{order_id, detail}...]}
    """
    pending = repository.list_orders_pending_fee(db, limit=limit)
    transferred: List[str] = []
    failed: List[Dict[str, str]] = []
    for order in pending:
        order_id = str(order.get("id"))
        try:
            transfer_platform_fee(db, order)
            transferred.append(order_id)
        except MarketplaceError as e:
            logger.warning("orders.fee_retry failed order_id=%s detail=%s", order_id, e.detail)
            failed.append({"order_id": order_id, "detail": e.detail})
    logger.info("orders.fee_retry pending=%s transferred=%s failed=%s", len(pending), len(transferred), len(failed))
    return {"pending": len(pending), "transferred": transferred, "failed": failed}
