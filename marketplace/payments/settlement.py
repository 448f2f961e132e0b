"""
Settlement Handler: événement Stripe vérifié -> commande + lignes + commission + panier vidé.

États (dans l'ordre d'exécution):
  RECEIVED -> VERIFIED -> ITEMS_PRICED -> ORDER_CREATED -> ITEMS_INSERTED
  -> FEE_TRANSFERRED -> CART_CLEARED -> DONE, et FAILED depuis n'importe quel état.

Les prix sont relus avant l'insertion car commande et lignes sont écrites dans la même
transaction (fonction SQL create_order_with_items). Tout ce qui suit la vérification
de signature s'appuie uniquement sur le payload de l'événement.

Idempotence:
- stripe_payment_intent_id est UNIQUE: une redélivrance ne crée jamais de seconde commande
- commande existante avec fee_transferred_at renseigné: DONE sans effet de bord
- commande existante sans virement enregistré: seul le virement de commission est rejoué
  (clé d'idempotence Stripe dérivée de l'ID de commande), puis le panier est vidé
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4
import logging

from supabase import Client

from marketplace import config
from marketplace.errors import MarketplaceError, SettlementError, ValidationFailed
from marketplace.cart import repository as cart_repo
from marketplace.orders import repository as orders_repo
from . import stripe_client
from .cart import money, to_cents, from_cents, format_amount, platform_fee_cents, aggregate_quantities
from .metadata import extract_intent_metadata

logger = logging.getLogger(__name__)


class SettlementState(str, Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    ITEMS_PRICED = "items_priced"
    ORDER_CREATED = "order_created"
    ITEMS_INSERTED = "items_inserted"
    FEE_TRANSFERRED = "fee_transferred"
    CART_CLEARED = "cart_cleared"
    DONE = "done"
    FAILED = "failed"


# Issue d'un événement, renvoyée dans l'accusé de réception du webhook
SETTLED = "settled"
REPLAYED = "replayed"
IGNORED = "ignored"


@dataclass
class SettlementResult:
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    payment_intent_id: Optional[str] = None
    order_id: Optional[str] = None
    outcome: Optional[str] = None
    reason: Optional[str] = None
    states: List[SettlementState] = field(default_factory=lambda: [SettlementState.RECEIVED])

    @property
    def state(self) -> SettlementState:
        return self.states[-1]

    def advance(self, state: SettlementState) -> None:
        self.states.append(state)

    def finish(self, outcome: str) -> "SettlementResult":
        self.outcome = outcome
        self.advance(SettlementState.DONE)
        return self

    def fail(self, reason: str) -> None:
        self.reason = reason
        self.advance(SettlementState.FAILED)


@dataclass
class PricedItem:
    product_id: str
    quantity: int
    unit_price: Decimal
    title: str = ""
    price_missing: bool = False

    @property
    def line_cents(self) -> int:
        return to_cents(self.unit_price) * self.quantity

    def to_row(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "title": self.title,
            "quantity": self.quantity,
            "unit_price": format_amount(self.unit_price),
            "price_missing": self.price_missing,
        }


def price_items(db: Client, items: List[Dict[str, Any]]) -> List[PricedItem]:
    """
    Reprix des lignes depuis la table product (jamais depuis la metadata).
    Produit introuvable: prix 0 et price_missing=True, le règlement continue.
    """
    try:
        quantities = aggregate_quantities(items)
    except ValidationFailed:
        logger.warning("settlement: lignes de metadata inexploitables items=%s", items)
        return []
    products = cart_repo.get_products_map(db, quantities.keys())
    priced: List[PricedItem] = []
    for product_id, qty in quantities.items():
        product = products.get(product_id)
        if product is None:
            logger.warning("settlement: produit introuvable, prix 0 product_id=%s", product_id)
            priced.append(PricedItem(product_id=product_id, quantity=qty, unit_price=money(0), price_missing=True))
            continue
        priced.append(PricedItem(
            product_id=product_id,
            quantity=qty,
            unit_price=money(product.get("price")),
            title=product.get("title") or "",
        ))
    return priced


def transfer_platform_fee(db: Client, order: Dict[str, Any]) -> Optional[str]:
    """
    Vire platform_fee_amount vers le compte plateforme puis l'enregistre sur la commande.
    Commission nulle: rien à virer, la commande est marquée comme réglée.
    Retourne l'ID du transfert Stripe (None si commission nulle).
    """
    order_id = str(order["id"])
    fee_cents = to_cents(order.get("platform_fee_amount"))
    transfer_id = None
    if fee_cents > 0:
        transfer = stripe_client.create_fee_transfer(amount_cents=fee_cents, order_id=order_id)
        transfer_id = transfer.get("id")
    orders_repo.mark_fee_transferred(db, order_id, transfer_id)
    logger.info("settlement.fee order_id=%s amount=%s transfer=%s", order_id, fee_cents, transfer_id)
    return transfer_id


def clear_settled_cart(db: Client, customer_id: str, product_ids: List[str]) -> bool:
    """Vide les lignes réglées du panier; un échec est journalisé sans faire échouer l'événement."""
    try:
        cart_repo.delete_cart_items(db, customer_id, product_ids)
        return True
    except MarketplaceError:
        logger.warning("settlement: nettoyage du panier échoué customer_id=%s", customer_id, exc_info=True)
        return False


def _settle(db: Client, result: SettlementResult, intent: Dict[str, Any], fee_rate: Decimal) -> SettlementResult:
    meta = extract_intent_metadata(intent)
    if not meta.is_complete:
        logger.warning("settlement: metadata incomplète pi=%s", result.payment_intent_id)
        return result.finish(IGNORED)

    product_ids = [str(i.get("product_id")) for i in meta.items if i.get("product_id")]
    order = orders_repo.get_order_by_payment_intent(db, result.payment_intent_id)

    if order is None:
        priced = price_items(db, meta.items)
        if not priced:
            logger.warning("settlement: aucune ligne exploitable pi=%s", result.payment_intent_id)
        result.advance(SettlementState.ITEMS_PRICED)

        total_cents = sum(p.line_cents for p in priced)
        fee_cents = platform_fee_cents(total_cents, fee_rate)
        charged_cents = int(intent.get("amount") or 0)
        if charged_cents and charged_cents != total_cents:
            logger.warning(
                "settlement: écart de prix pi=%s charged=%s repriced=%s",
                result.payment_intent_id, charged_cents, total_cents,
            )
        order, created = orders_repo.create_order_with_items(
            db,
            {
                "id": str(uuid4()),
                "customer_id": meta.customer_id,
                "vendor_id": meta.vendor_id,
                "stripe_payment_intent_id": result.payment_intent_id,
                "total_amount": format_amount(from_cents(total_cents)),
                "platform_fee_amount": format_amount(from_cents(fee_cents)),
                "amount_charged": format_amount(from_cents(charged_cents)),
                "status": "completed",
            },
            [p.to_row() for p in priced],
        )
        if not created:
            logger.info("settlement: commande créée par une livraison concurrente pi=%s", result.payment_intent_id)
    result.order_id = str(order.get("id"))

    if order.get("fee_transferred_at"):
        return result.finish(REPLAYED)
    result.advance(SettlementState.ORDER_CREATED)
    result.advance(SettlementState.ITEMS_INSERTED)

    transfer_platform_fee(db, order)
    result.advance(SettlementState.FEE_TRANSFERRED)

    if clear_settled_cart(db, meta.customer_id, product_ids):
        result.advance(SettlementState.CART_CLEARED)
    return result.finish(SETTLED)


def handle_event(db: Client, event: Dict[str, Any], fee_rate: Optional[Decimal] = None) -> SettlementResult:
    """
    Traite un événement dont la signature a déjà été vérifiée (stripe_client.construct_event).
    - payment_intent.succeeded: règlement idempotent
    - autres types: acquittés (outcome=ignored)
    Soulève SettlementError (500, Stripe redélivre) si une étape après VERIFIED échoue.
    """
    result = SettlementResult(event_id=(event or {}).get("id"), event_type=(event or {}).get("type"))
    result.advance(SettlementState.VERIFIED)
    if result.event_type != stripe_client.PAYMENT_SUCCEEDED:
        return result.finish(IGNORED)

    intent = ((event.get("data") or {}).get("object")) or {}
    result.payment_intent_id = intent.get("id")
    if not result.payment_intent_id:
        logger.warning("settlement: PaymentIntent sans id event=%s", result.event_id)
        return result.finish(IGNORED)

    rate = fee_rate if fee_rate is not None else config.PLATFORM_FEE_RATE
    try:
        _settle(db, result, intent, rate)
    except MarketplaceError as e:
        result.fail(e.detail)
        logger.error("settlement failed pi=%s state=%s reason=%s", result.payment_intent_id, result.states[-2].value, e.detail)
        raise SettlementError(f"Règlement échoué pour {result.payment_intent_id}: {e.detail}") from e
    except Exception as e:
        result.fail(str(e))
        logger.exception("settlement failed pi=%s", result.payment_intent_id)
        raise SettlementError(f"Règlement échoué pour {result.payment_intent_id}") from e
    logger.info(
        "settlement done pi=%s order_id=%s outcome=%s",
        result.payment_intent_id, result.order_id, result.outcome,
    )
    return result
