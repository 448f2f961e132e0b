import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from supabase import Client

from marketplace import config
from marketplace.errors import Forbidden, InvalidSignature, ValidationFailed
from marketplace.infra.supabase_client import get_db
from marketplace.utils.security import require_user
from marketplace.utils.rate_limit import optional_rate_limit
from marketplace.cart import service as cart_service
from marketplace.payments import stripe_client
from marketplace.payments import intents as payments_intents
from marketplace.payments import settlement as payments_settlement
from marketplace.payments.checkout_session import CheckoutQueue, confirm_active, clear_session

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])


class IntentItemIn(BaseModel):
    product_id: str
    quantity: int = 1
    vendor_id: Optional[str] = None


class CreateIntentsIn(BaseModel):
    items: Optional[List[IntentItemIn]] = None
    customer_id: Optional[str] = None


class ConfirmIn(BaseModel):
    # facultatif pour relire un paiement "processing"
    payment_method: Optional[str] = None
    return_url: Optional[str] = None


def _resolve_customer(user: Dict[str, Any], customer_id: Optional[str]) -> str:
    if customer_id and customer_id != user.get("id") and user.get("role") != "admin":
        raise Forbidden("customer_id ne correspond pas à l'utilisateur connecté")
    return customer_id or user["id"]


# module marketplace.payments.views
@router.post("/intents", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_payment_intents(
    payload: CreateIntentsIn,
    request: Request,
    user: Dict[str, Any] = Depends(require_user),
    db: Client = Depends(get_db),
):
    """
    Crée un PaymentIntent par vendeur pour le panier du client.
    - Entrée JSON: { "items": [ {product_id, quantity, vendor_id} ], "customer_id": "..." }
      items absent: le panier persistant (cart_items) est utilisé
    - Prix et vendeur relus en base; price/vendor_id du client ignorés
    - Sortie: { "paymentIntents": [{vendor_id, clientSecret, amount}], "errors": [...] }
    - Erreurs: un vendeur non configuré n'échoue que son groupe; si aucun groupe
      n'aboutit, la première erreur est renvoyée (400 ou 500)
    """
    customer_id = _resolve_customer(user, payload.customer_id)
    if payload.items is not None:
        groups = cart_service.aggregate_items(db, [i.model_dump() for i in payload.items])
    else:
        groups = cart_service.aggregate_cart(db, customer_id)

    batch = payments_intents.build_intents(db, customer_id, groups)
    if not batch.intents:
        raise batch.failures[0].error

    CheckoutQueue.from_batch(customer_id, batch).save(request.session)
    logger.info(
        "payments.intents customer_id=%s created=%s failed=%s",
        customer_id, len(batch.intents), len(batch.failures),
    )
    return {
        "paymentIntents": [vi.to_response() for vi in batch.intents],
        "errors": [f.to_response() for f in batch.failures],
    }


@router.get("/session")
def get_checkout_session(request: Request, user: Dict[str, Any] = Depends(require_user)):
    """File des paiements en attente; seul l'intent actif expose son clientSecret."""
    queue = CheckoutQueue.load(request.session, user["id"])
    if queue is None:
        return {"active": None, "complete": True, "intents": []}
    return queue.to_dict()


@router.post("/session/confirm", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def confirm_checkout_session(
    payload: ConfirmIn,
    request: Request,
    user: Dict[str, Any] = Depends(require_user),
    db: Client = Depends(get_db),
):
    """
    Confirme l'intent actif avec un moyen de paiement.
    - Succès: l'intent passe à 'succeeded', le suivant devient actif
    - Processing: l'intent reste actif, un nouvel appel relit son statut chez Stripe
    - Échec: message Stripe renvoyé, même intent reconfirmable
    """
    queue = CheckoutQueue.load(request.session, user["id"])
    if queue is None:
        raise ValidationFailed("Aucun paiement en attente")
    return_url = payload.return_url or f"{config.BASE_URL}{config.CHECKOUT_RETURN_PATH}"
    current = confirm_active(db, queue, payload.payment_method, return_url)
    queue.save(request.session)
    body = queue.to_dict()
    body["confirmed"] = current.payment_intent_id
    if queue.complete:
        clear_session(request.session)
    return body


@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request, db: Client = Depends(get_db)):
    """
    Webhook Stripe (payment_intent.succeeded) -> Settlement Handler.
    - Signature vérifiée sur le corps brut (Stripe-Signature + STRIPE_WEBHOOK_SECRET)
    - Réponses: 200 {"received": true, "status": settled|replayed|ignored}
    - 400 signature invalide (aucun traitement), 500 échec de règlement (Stripe redélivre)
    """
    try:
        event = await stripe_client.parse_event(request)
    except InvalidSignature as e:
        logger.warning("payments.webhook signature rejected: %s", e.detail)
        return JSONResponse(status_code=400, content={"error": e.code, "detail": e.detail})

    # supabase et stripe sont synchrones: exécutés hors de la boucle d'événements
    result = await run_in_threadpool(payments_settlement.handle_event, db, event)
    return {"received": True, "status": result.outcome, "order_id": result.order_id}
