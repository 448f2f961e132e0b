"""Couche service des comptes vendeurs Stripe Connect.
Rôles:
- Onboarding: réutiliser ou créer le compte Express du vendeur, puis générer le lien d'onboarding.
- Status Reconciler: au retour d'onboarding, relire les capacités du compte chez Stripe
  et les persister telles quelles (charges_enabled, payouts_enabled, details_submitted).
Déduplication côté serveur: un hash de l'état Stripe est stocké avec le compte; un état
inchangé ne déclenche aucune écriture.
"""
from typing import Dict, Any
import hashlib
import logging

from supabase import Client

from marketplace import config
from marketplace.errors import NotFound, DatastoreError
from marketplace.payments import stripe_client
from . import repository

logger = logging.getLogger(__name__)

STATUS_FLAGS = ("charges_enabled", "payouts_enabled", "details_submitted")


def account_status_hash(account_id: str, flags: Dict[str, Any]) -> str:
    raw = ":".join([account_id] + [str(bool(flags.get(k))).lower() for k in STATUS_FLAGS])
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


def start_onboarding(db: Client, vendor_id: str) -> Dict[str, Any]:
    """Retourne {"url", "account_id", "created"}; le compte est créé au premier appel seulement."""
    account = repository.get_vendor_account(db, vendor_id)
    created = False
    if account:
        account_id = account["stripe_account_id"]
    else:
        account_id = stripe_client.create_express_account()["id"]
        try:
            repository.insert_vendor_account(db, vendor_id, account_id)
            created = True
        except DatastoreError:
            # Onboarding concurrent: le premier compte enregistré fait foi
            existing = repository.get_vendor_account(db, vendor_id)
            if not existing:
                raise
            logger.warning("vendors.onboarding compte Stripe orphelin account=%s vendor_id=%s", account_id, vendor_id)
            account_id = existing["stripe_account_id"]

    link = stripe_client.create_account_link(
        account_id,
        refresh_url=f"{config.BASE_URL}{config.ONBOARDING_REFRESH_PATH}",
        return_url=f"{config.BASE_URL}{config.ONBOARDING_RETURN_PATH}",
    )
    logger.info("vendors.onboarding vendor_id=%s account=%s created=%s", vendor_id, account_id, created)
    return {"url": link.get("url"), "account_id": account_id, "created": created}


def reconcile_account_status(db: Client, vendor_id: str) -> Dict[str, Any]:
    """
    Status Reconciler.
    - NotFound si le vendeur n'a pas de compte Stripe enregistré
    - Flags recopiés tels quels depuis Stripe
    - changed=False quand l'état Stripe est identique au dernier état persisté
    """
    account = repository.get_vendor_account(db, vendor_id)
    if not account:
        raise NotFound("Stripe account not found")

    remote = stripe_client.retrieve_account(account["stripe_account_id"])
    account_id = remote.get("id") or account["stripe_account_id"]
    flags = {k: bool(remote.get(k)) for k in STATUS_FLAGS}
    status_hash = account_status_hash(account_id, flags)

    changed = status_hash != account.get("status_hash")
    if changed:
        repository.update_account_status(db, account_id, flags, status_hash)
        logger.info("vendors.reconcile vendor_id=%s flags=%s", vendor_id, flags)
    return {"success": True, "changed": changed, **flags}
