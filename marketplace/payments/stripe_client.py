"""
Adaptateur Stripe: centralise la configuration et tous les appels au SDK.
Les erreurs du SDK sont converties en ProcessorError (message utilisateur conservé),
les erreurs de signature webhook en InvalidSignature.
"""
from typing import Any, Dict, Optional
import logging

import stripe
from fastapi import Request

from marketplace import config
from marketplace.errors import ProcessorError, InvalidSignature

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"


def configure_stripe() -> None:
    """Appelé une fois au démarrage (lifespan): clé, retries réseau, timeout par appel."""
    if config.STRIPE_SECRET_KEY:
        stripe.api_key = config.STRIPE_SECRET_KEY
    stripe.max_network_retries = config.STRIPE_MAX_NETWORK_RETRIES
    stripe.default_http_client = stripe.RequestsClient(timeout=config.EXTERNAL_CALL_TIMEOUT)


def require_stripe():
    if not config.STRIPE_SECRET_KEY:
        raise ProcessorError("STRIPE_SECRET_KEY manquant")
    if stripe.api_key != config.STRIPE_SECRET_KEY:
        stripe.api_key = config.STRIPE_SECRET_KEY
    return stripe


def _as_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def _processor_error(action: str, e: "stripe.StripeError") -> ProcessorError:
    logger.error("Stripe %s failed: %s", action, e)
    message = getattr(e, "user_message", None) or str(e) or f"Erreur Stripe ({action})"
    return ProcessorError(message)


def create_payment_intent(
    *,
    amount_cents: int,
    fee_cents: int,
    destination: str,
    metadata: Dict[str, str],
    currency: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Crée un PaymentIntent à destination du compte Connect du vendeur.
    - application_fee_amount: commission plateforme (centimes)
    - transfer_data.destination: compte Stripe du vendeur
    Retour: dict incluant "id", "client_secret", "amount".
    """
    require_stripe()
    try:
        intent = stripe.PaymentIntent.create(
            amount=amount_cents,
            currency=currency or config.STRIPE_CURRENCY,
            application_fee_amount=fee_cents,
            transfer_data={"destination": destination},
            automatic_payment_methods={"enabled": True},
            metadata=metadata,
        )
    except stripe.StripeError as e:
        raise _processor_error("PaymentIntent.create", e) from e
    return _as_dict(intent)


def confirm_payment_intent(payment_intent_id: str, *, payment_method: str, return_url: str) -> Dict[str, Any]:
    require_stripe()
    try:
        intent = stripe.PaymentIntent.confirm(
            payment_intent_id,
            payment_method=payment_method,
            return_url=return_url,
        )
    except stripe.StripeError as e:
        raise _processor_error("PaymentIntent.confirm", e) from e
    return _as_dict(intent)


def retrieve_payment_intent(payment_intent_id: str) -> Dict[str, Any]:
    require_stripe()
    try:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id)
    except stripe.StripeError as e:
        raise _processor_error("PaymentIntent.retrieve", e) from e
    return _as_dict(intent)


def create_fee_transfer(*, amount_cents: int, order_id: str, destination: Optional[str] = None) -> Dict[str, Any]:
    """
    Vire la commission plateforme vers le compte de la plateforme.
    transfer_group = order_<id> pour rapprochement; la clé d'idempotence dérivée de
    la commande garantit un seul virement même si deux livraisons du webhook se chevauchent.
    """
    require_stripe()
    destination = destination or config.PLATFORM_STRIPE_ACCOUNT_ID
    if not destination:
        raise ProcessorError("PLATFORM_STRIPE_ACCOUNT_ID manquant")
    try:
        transfer = stripe.Transfer.create(
            amount=amount_cents,
            currency=config.STRIPE_CURRENCY,
            destination=destination,
            transfer_group=f"order_{order_id}",
            idempotency_key=f"platform-fee-{order_id}",
        )
    except stripe.StripeError as e:
        raise _processor_error("Transfer.create", e) from e
    return _as_dict(transfer)


def create_express_account() -> Dict[str, Any]:
    require_stripe()
    try:
        account = stripe.Account.create(
            type="express",
            capabilities={
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            business_type="individual",
        )
    except stripe.StripeError as e:
        raise _processor_error("Account.create", e) from e
    return _as_dict(account)


def create_account_link(account_id: str, *, refresh_url: str, return_url: str) -> Dict[str, Any]:
    require_stripe()
    try:
        link = stripe.AccountLink.create(
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type="account_onboarding",
        )
    except stripe.StripeError as e:
        raise _processor_error("AccountLink.create", e) from e
    return _as_dict(link)


def retrieve_account(account_id: str) -> Dict[str, Any]:
    require_stripe()
    try:
        account = stripe.Account.retrieve(account_id)
    except stripe.StripeError as e:
        raise _processor_error("Account.retrieve", e) from e
    return _as_dict(account)


def construct_event(payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
    """
    Valide la signature Stripe sur le corps brut (jamais re-sérialisé).
    - Secret absent: ProcessorError (500) pour que Stripe redélivre une fois la config corrigée.
    - Signature/payload invalide: InvalidSignature (400).
    """
    if not config.STRIPE_WEBHOOK_SECRET:
        raise ProcessorError("STRIPE_WEBHOOK_SECRET manquant")
    if not sig_header:
        raise InvalidSignature("En-tête Stripe-Signature manquant")
    try:
        event = stripe.Webhook.construct_event(payload, sig_header, config.STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError) as e:
        raise InvalidSignature(f"Webhook Error: {e}") from e
    return _as_dict(event)


async def parse_event(request: Request) -> Dict[str, Any]:
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    return construct_event(payload, sig_header)
