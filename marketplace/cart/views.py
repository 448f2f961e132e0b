# module marketplace.cart.views

"""Endpoints du panier persistant (table cart_items).
- GET /api/v1/cart: lignes avec prix/vendeur courants, groupées par vendeur.
- POST /api/v1/cart/items: ajout (incrément atomique côté base).
- PATCH /api/v1/cart/items/{product_id}: fixe la quantité (0 retire la ligne).
- DELETE /api/v1/cart/items/{product_id}: retire la ligne.
"""
from typing import Dict, Any
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from supabase import Client

from marketplace.infra.supabase_client import get_db
from marketplace.utils.security import require_user
from marketplace.utils.rate_limit import optional_rate_limit
from marketplace.payments.cart import format_amount, group_amount_cents, from_cents
from . import service as cart_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/cart", tags=["Cart API"])


class CartItemIn(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int = Field(default=1, gt=0)


class CartQuantityIn(BaseModel):
    quantity: int = Field(ge=0)


@router.get("")
def get_cart(user: Dict[str, Any] = Depends(require_user), db: Client = Depends(get_db)):
    groups = cart_service.aggregate_cart(db, user.get("id"))
    return {
        "vendors": [
            {
                "vendor_id": vendor_id,
                "items": [line.to_dict() for line in lines],
                "amount": format_amount(from_cents(group_amount_cents(lines))),
            }
            for vendor_id, lines in groups.items()
        ]
    }


@router.post("/items", status_code=201, dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
def add_cart_item(payload: CartItemIn, user: Dict[str, Any] = Depends(require_user), db: Client = Depends(get_db)):
    row = cart_service.add_item(db, user["id"], payload.product_id, payload.quantity)
    logger.info("cart.add customer_id=%s product_id=%s qty=%s", user["id"], payload.product_id, payload.quantity)
    return {"item": row}


@router.patch("/items/{product_id}", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
def update_cart_item(product_id: str, payload: CartQuantityIn, user: Dict[str, Any] = Depends(require_user), db: Client = Depends(get_db)):
    row = cart_service.update_item(db, user["id"], product_id, payload.quantity)
    return {"item": row, "removed": row is None}


@router.delete("/items/{product_id}", dependencies=[Depends(optional_rate_limit(times=30, seconds=60))])
def delete_cart_item(product_id: str, user: Dict[str, Any] = Depends(require_user), db: Client = Depends(get_db)):
    removed = cart_service.remove_item(db, user["id"], product_id)
    return {"removed": removed}
