# module marketplace.vendors.views

"""Endpoints Stripe Connect des vendeurs.
- /stripe/connect: lien d'onboarding (compte Express créé au premier appel).
- /stripe/update-status: Status Reconciler, appelé au retour d'onboarding.
Sécurité:
- require_vendor: un vendeur n'agit que sur son propre compte (admin: tout vendeur).
"""
from typing import Dict, Any, Optional
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from supabase import Client

from marketplace.errors import Forbidden, ValidationFailed
from marketplace.infra.supabase_client import get_db
from marketplace.utils.security import require_vendor
from marketplace.utils.rate_limit import optional_rate_limit
from . import service as vendors_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/vendors", tags=["Vendors API"])


class VendorIn(BaseModel):
    vendor_id: Optional[str] = None


def _resolve_vendor(user: Dict[str, Any], vendor_id: Optional[str]) -> str:
    if user.get("role") == "admin":
        if not vendor_id:
            raise ValidationFailed("vendor_id requis")
        return vendor_id
    own = user.get("vendor_id")
    if vendor_id and vendor_id != own:
        raise Forbidden("Compte vendeur d'un autre utilisateur")
    return own


@router.post("/stripe/connect", dependencies=[Depends(optional_rate_limit(times=5, seconds=60))])
def stripe_connect(payload: VendorIn, user: Dict[str, Any] = Depends(require_vendor), db: Client = Depends(get_db)):
    vendor_id = _resolve_vendor(user, payload.vendor_id)
    return vendors_service.start_onboarding(db, vendor_id)


@router.post("/stripe/update-status")
def stripe_update_status(payload: VendorIn, user: Dict[str, Any] = Depends(require_vendor), db: Client = Depends(get_db)):
    """Relit l'état du compte chez Stripe -> {success, charges_enabled, payouts_enabled, details_submitted}."""
    vendor_id = _resolve_vendor(user, payload.vendor_id)
    return vendors_service.reconcile_account_status(db, vendor_id)
