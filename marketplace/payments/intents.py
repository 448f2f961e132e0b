"""
Intent Builder: un PaymentIntent Stripe par groupe vendeur.

Pour chaque vendeur:
  1) montant = Σ(prix courant × quantité), en centimes
  2) compte Connect du vendeur existant et charges_enabled, sinon VendorNotOnboarded
  3) commission = round(montant × taux) (1% par défaut)
  4) PaymentIntent avec destination = compte vendeur, application_fee_amount = commission,
     metadata {vendor_id, customer_id, items (ids + quantités), platform_fee_amount}

Une erreur (EmptyCart, VendorNotOnboarded, ProcessorError...) n'échoue que son groupe.
Pas de verrou ni de clé d'idempotence: deux appels concurrents pour le même panier
créent deux séries d'intents (seules celles confirmées sont débitées).
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from supabase import Client

from marketplace import config
from marketplace.errors import MarketplaceError, EmptyCart, ValidationFailed, VendorNotOnboarded
from marketplace.vendors import repository as vendors_repo
from . import stripe_client
from .cart import CartLine, group_amount_cents, platform_fee_cents, from_cents, format_amount
from .metadata import make_intent_metadata

logger = logging.getLogger(__name__)


@dataclass
class VendorIntent:
    vendor_id: str
    payment_intent_id: str
    client_secret: str
    amount_cents: int
    platform_fee_cents: int
    product_ids: List[str] = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "clientSecret": self.client_secret,
            "amount": float(from_cents(self.amount_cents)),
            "paymentIntentId": self.payment_intent_id,
        }


@dataclass
class VendorFailure:
    vendor_id: str
    error: MarketplaceError

    def to_response(self) -> Dict[str, Any]:
        return {"vendor_id": self.vendor_id, "error": self.error.code, "detail": self.error.detail}


@dataclass
class IntentBatch:
    intents: List[VendorIntent] = field(default_factory=list)
    failures: List[VendorFailure] = field(default_factory=list)


def require_onboarded_account(db: Client, vendor_id: str) -> dict:
    account = vendors_repo.get_vendor_account(db, vendor_id)
    if not account or not account.get("stripe_account_id") or not account.get("charges_enabled"):
        raise VendorNotOnboarded(vendor_id)
    return account


def build_vendor_intent(
    db: Client,
    vendor_id: str,
    customer_id: str,
    lines: List[CartLine],
    fee_rate: Optional[Decimal] = None,
) -> VendorIntent:
    if not lines:
        raise EmptyCart()
    amount_cents = group_amount_cents(lines)
    if amount_cents <= 0:
        raise ValidationFailed(f"Montant nul pour le vendeur {vendor_id}")

    account = require_onboarded_account(db, vendor_id)
    fee_cents = platform_fee_cents(amount_cents, fee_rate if fee_rate is not None else config.PLATFORM_FEE_RATE)
    metadata = make_intent_metadata(vendor_id, customer_id, lines, format_amount(from_cents(fee_cents)))

    intent = stripe_client.create_payment_intent(
        amount_cents=amount_cents,
        fee_cents=fee_cents,
        destination=account["stripe_account_id"],
        metadata=metadata,
    )
    logger.info(
        "payments.intent created pi=%s vendor_id=%s amount=%s fee=%s",
        intent.get("id"), vendor_id, amount_cents, fee_cents,
    )
    return VendorIntent(
        vendor_id=vendor_id,
        payment_intent_id=intent.get("id") or "",
        client_secret=intent.get("client_secret") or "",
        amount_cents=amount_cents,
        platform_fee_cents=fee_cents,
        product_ids=[line.product_id for line in lines],
    )


def build_intents(
    db: Client,
    customer_id: str,
    groups: Dict[str, List[CartLine]],
    fee_rate: Optional[Decimal] = None,
) -> IntentBatch:
    """Construit les intents dans l'ordre des groupes; les échecs sont collectés par vendeur."""
    if not groups:
        raise EmptyCart()
    batch = IntentBatch()
    for vendor_id, lines in groups.items():
        try:
            batch.intents.append(build_vendor_intent(db, vendor_id, customer_id, lines, fee_rate))
        except MarketplaceError as e:
            logger.warning("payments.intent failed vendor_id=%s code=%s detail=%s", vendor_id, e.code, e.detail)
            batch.failures.append(VendorFailure(vendor_id=vendor_id, error=e))
    return batch
