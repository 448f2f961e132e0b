# module marketplace.orders.views

"""Endpoints des commandes.
- /api/v1/orders/customer: commandes du client connecté (lignes incluses, plus récentes d'abord).
- /api/v1/orders/vendor: commandes reçues par le vendeur connecté.
- /api/v1/admin/fees/retry: reprise des virements de commission en attente (admin).
"""
from typing import Dict, Any
import logging

from fastapi import APIRouter, Depends, Query
from supabase import Client

from marketplace.infra.supabase_client import get_db
from marketplace.utils.security import require_user, require_vendor, require_admin
from . import service as orders_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/orders", tags=["Orders API"])
admin_router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.get("/customer")
def list_customer_orders(user: Dict[str, Any] = Depends(require_user), db: Client = Depends(get_db)):
    return {"orders": orders_service.customer_orders(db, user["id"])}


@router.get("/vendor")
def list_vendor_orders(
    vendor_id: str | None = Query(default=None),
    user: Dict[str, Any] = Depends(require_vendor),
    db: Client = Depends(get_db),
):
    # admin: vendor_id explicite; vendeur: toujours le sien
    target = vendor_id if user.get("role") == "admin" and vendor_id else user.get("vendor_id")
    return {"orders": orders_service.vendor_orders(db, target) if target else []}


@admin_router.post("/fees/retry")
def retry_fee_transfers(
    limit: int = Query(default=100, ge=1, le=500),
    user: Dict[str, Any] = Depends(require_admin),
    db: Client = Depends(get_db),
):
    return orders_service.retry_pending_fee_transfers(db, limit=limit)
