"""
Sérialisation/désérialisation des métadonnées Stripe d'un PaymentIntent.
Seuls les identifiants et quantités sont transportés; le prix est relu en base au règlement.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List

from marketplace.errors import ValidationFailed
from .cart import CartLine

# Limite Stripe: 500 caractères par valeur de metadata
MAX_METADATA_VALUE = 500


@dataclass
class IntentMetadata:
    vendor_id: str | None
    customer_id: str | None
    items: List[Dict[str, Any]] = field(default_factory=list)
    platform_fee_amount: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.vendor_id and self.customer_id)


def make_intent_metadata(vendor_id: str, customer_id: str, lines: List[CartLine], platform_fee_amount: str) -> Dict[str, str]:
    items = json.dumps([{"product_id": l.product_id, "quantity": l.quantity} for l in lines], separators=(",", ":"))
    if len(items) > MAX_METADATA_VALUE:
        # Pas de troncature: des items tronqués ne seraient plus réglables
        raise ValidationFailed(f"Trop d'articles pour le vendeur {vendor_id} dans un seul paiement")
    return {
        "vendor_id": vendor_id,
        "customer_id": customer_id,
        "items": items,
        "platform_fee_amount": platform_fee_amount,
    }


def extract_intent_metadata(intent: Dict[str, Any]) -> IntentMetadata:
    """
    Extrait les métadonnées d'un PaymentIntent (objet d'un event webhook).
    - items est un JSON sérialisé [{"product_id": "...", "quantity": <int>}]
    - Tolérant: items illisibles -> liste vide (la commande sera créée sans lignes et signalée)
    """
    meta = (intent or {}).get("metadata") or {}
    try:
        items = json.loads(meta.get("items") or "[]")
    except (TypeError, ValueError):
        items = []
    if not isinstance(items, list):
        items = []
    return IntentMetadata(
        vendor_id=meta.get("vendor_id"),
        customer_id=meta.get("customer_id"),
        items=[i for i in items if isinstance(i, dict)],
        platform_fee_amount=meta.get("platform_fee_amount"),
    )
