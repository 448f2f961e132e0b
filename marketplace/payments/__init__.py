"""
Module 'payments' (feature-first): point d'entrée public.
Réunit logique panier, metadata Stripe, client Stripe, Intent Builder,
file de checkout et Settlement Handler.
"""

from .cart import CartLine, aggregate_quantities, group_by_vendor, platform_fee_cents
from .metadata import IntentMetadata, make_intent_metadata, extract_intent_metadata
from .stripe_client import require_stripe, construct_event, parse_event
from .intents import VendorIntent, IntentBatch, build_vendor_intent, build_intents
from .checkout_session import CheckoutQueue, PendingIntent, confirm_active
from .settlement import SettlementState, SettlementResult, handle_event, transfer_platform_fee

__all__ = [
    # cart
    "CartLine",
    "aggregate_quantities",
    "group_by_vendor",
    "platform_fee_cents",
    # metadata
    "IntentMetadata",
    "make_intent_metadata",
    "extract_intent_metadata",
    # stripe
    "require_stripe",
    "construct_event",
    "parse_event",
    # intents
    "VendorIntent",
    "IntentBatch",
    "build_vendor_intent",
    "build_intents",
    # checkout
    "CheckoutQueue",
    "PendingIntent",
    "confirm_active",
    # settlement
    "SettlementState",
    "SettlementResult",
    "handle_event",
    "transfer_platform_fee",
]
