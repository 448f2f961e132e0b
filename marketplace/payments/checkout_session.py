"""
Checkout Session: file explicite des PaymentIntents à confirmer, un vendeur à la fois.

La file est conservée dans la session Starlette (cookie signé, SessionMiddleware) sous
la clé "checkout". Chaque entrée porte son statut:
  pending -> succeeded | processing | failed | requires_action
Seul "succeeded" fait avancer la file et retire les lignes du panier. Un intent
"processing" reste actif: il est relu chez Stripe au prochain appel, et le panier
est vidé par le webhook de règlement. Un intent en échec reste actif et peut être
reconfirmé sans être recréé.
"""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
import logging

from supabase import Client

from marketplace.errors import ValidationFailed, ProcessorError, MarketplaceError
from marketplace.cart import repository as cart_repo
from . import stripe_client
from .intents import IntentBatch

logger = logging.getLogger(__name__)

SESSION_KEY = "checkout"

PENDING = "pending"
REQUIRES_ACTION = "requires_action"
PROCESSING = "processing"
SUCCEEDED = "succeeded"
FAILED = "failed"

# Paiement soumis mais pas encore encaissé
_STRIPE_PENDING = ("processing", "requires_capture")


@dataclass
class PendingIntent:
    vendor_id: str
    payment_intent_id: str
    client_secret: str
    amount: float
    product_ids: List[str] = field(default_factory=list)
    status: str = PENDING
    confirmation_id: Optional[str] = None
    error: Optional[str] = None
    next_action_url: Optional[str] = None
    attempts: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingIntent":
        known = {k: data.get(k) for k in cls.__dataclass_fields__ if k in data}
        return cls(**known)


class CheckoutQueue:
    def __init__(self, customer_id: str, intents: List[PendingIntent]):
        self.customer_id = customer_id
        self.intents = intents

    @classmethod
    def from_batch(cls, customer_id: str, batch: IntentBatch) -> "CheckoutQueue":
        return cls(customer_id, [
            PendingIntent(
                vendor_id=vi.vendor_id,
                payment_intent_id=vi.payment_intent_id,
                client_secret=vi.client_secret,
                amount=vi.to_response()["amount"],
                product_ids=list(vi.product_ids),
            )
            for vi in batch.intents
        ])

    @classmethod
    def load(cls, session: Dict[str, Any], customer_id: str) -> Optional["CheckoutQueue"]:
        """File de la session si elle appartient à ce client, sinon None."""
        raw = session.get(SESSION_KEY) or {}
        if not raw or raw.get("customer_id") != customer_id:
            return None
        return cls(customer_id, [PendingIntent.from_dict(i) for i in raw.get("intents") or []])

    def save(self, session: Dict[str, Any]) -> None:
        session[SESSION_KEY] = {
            "customer_id": self.customer_id,
            "intents": [asdict(i) for i in self.intents],
        }

    def active(self) -> Optional[PendingIntent]:
        for intent in self.intents:
            if intent.status != SUCCEEDED:
                return intent
        return None

    @property
    def complete(self) -> bool:
        return self.active() is None

    def to_dict(self) -> Dict[str, Any]:
        current = self.active()
        return {
            "active": current.payment_intent_id if current else None,
            "complete": self.complete,
            # client_secret uniquement pour l'intent actif
            "intents": [
                {
                    "vendor_id": i.vendor_id,
                    "paymentIntentId": i.payment_intent_id,
                    "amount": i.amount,
                    "status": i.status,
                    "confirmation_id": i.confirmation_id,
                    "error": i.error,
                    "next_action_url": i.next_action_url,
                    "attempts": i.attempts,
                    **({"clientSecret": i.client_secret} if i is current else {}),
                }
                for i in self.intents
            ],
        }


def clear_session(session: Dict[str, Any]) -> None:
    session.pop(SESSION_KEY, None)


def confirm_active(db: Client, queue: CheckoutQueue, payment_method: Optional[str], return_url: str) -> PendingIntent:
    """
    Confirme l'intent actif (un seul aller-retour Stripe, pas de polling).
    - succès: enregistre l'ID de confirmation (charge) et retire les lignes du vendeur du panier
    - processing: l'intent reste actif; l'appel suivant relit son statut au lieu de reconfirmer
    - échec: conserve le message Stripe destiné à l'utilisateur; l'intent reste réessayable
    """
    current = queue.active()
    if current is None:
        raise ValidationFailed("Aucun paiement en attente")
    refresh = current.status == PROCESSING
    if not refresh and not payment_method:
        raise ValidationFailed("payment_method manquant")

    current.attempts += 1
    try:
        if refresh:
            intent = stripe_client.retrieve_payment_intent(current.payment_intent_id)
        else:
            intent = stripe_client.confirm_payment_intent(
                current.payment_intent_id,
                payment_method=payment_method,
                return_url=return_url,
            )
    except ProcessorError as e:
        if refresh:
            # statut inconnu: l'intent reste en cours, rien n'est reconfirmé
            current.error = e.detail
            logger.warning("checkout.refresh failed pi=%s", current.payment_intent_id)
            return current
        current.status = FAILED
        current.error = e.detail
        logger.info("checkout.confirm failed pi=%s attempt=%s", current.payment_intent_id, current.attempts)
        return current

    status = intent.get("status")
    if status == "succeeded":
        current.status = SUCCEEDED
        current.error = None
        current.next_action_url = None
        current.confirmation_id = intent.get("latest_charge") or intent.get("id")
        try:
            cart_repo.delete_cart_items(db, queue.customer_id, current.product_ids)
        except MarketplaceError:
            # le webhook de règlement videra ces lignes
            logger.warning("checkout.confirm: nettoyage du panier différé pi=%s", current.payment_intent_id)
    elif status in _STRIPE_PENDING:
        # panier conservé jusqu'au webhook payment_intent.succeeded
        current.status = PROCESSING
        current.error = None
        current.next_action_url = None
    elif status == "requires_action":
        current.status = REQUIRES_ACTION
        redirect = ((intent.get("next_action") or {}).get("redirect_to_url") or {})
        current.next_action_url = redirect.get("url")
    else:
        current.status = FAILED
        current.error = (intent.get("last_payment_error") or {}).get("message") or "Paiement refusé"
    logger.info("checkout.confirm pi=%s status=%s", current.payment_intent_id, current.status)
    return current
