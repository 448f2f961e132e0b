"""Accès aux données des comptes Stripe Connect des vendeurs (table stripe_accounts)."""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from supabase import Client

from marketplace.errors import DatastoreError

logger = logging.getLogger(__name__)

ACCOUNT_COLUMNS = "vendor_id, stripe_account_id, charges_enabled, payouts_enabled, details_submitted, status_hash"


def get_vendor_account(db: Client, vendor_id: str) -> Optional[dict]:
    try:
        res = (
            db.table("stripe_accounts")
            .select(ACCOUNT_COLUMNS)
            .eq("vendor_id", vendor_id)
            .limit(1)
            .execute()
        )
    except Exception as e:
        logger.exception("vendors.repository.get_vendor_account failed vendor_id=%s", vendor_id)
        raise DatastoreError("Lecture du compte vendeur impossible") from e
    rows = res.data or []
    return rows[0] if rows else None


def insert_vendor_account(db: Client, vendor_id: str, stripe_account_id: str) -> dict:
    payload = {"vendor_id": vendor_id, "stripe_account_id": stripe_account_id}
    try:
        res = db.table("stripe_accounts").insert(payload).execute()
    except Exception as e:
        logger.exception("vendors.repository.insert_vendor_account failed vendor_id=%s", vendor_id)
        raise DatastoreError("Enregistrement du compte vendeur impossible") from e
    rows = res.data or []
    return rows[0] if rows else payload


def update_account_status(db: Client, stripe_account_id: str, flags: Dict[str, Any], status_hash: str) -> Optional[dict]:
    payload = {
        "charges_enabled": bool(flags.get("charges_enabled")),
        "payouts_enabled": bool(flags.get("payouts_enabled")),
        "details_submitted": bool(flags.get("details_submitted")),
        "status_hash": status_hash,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        res = (
            db.table("stripe_accounts")
            .update(payload)
            .eq("stripe_account_id", stripe_account_id)
            .execute()
        )
    except Exception as e:
        logger.exception("vendors.repository.update_account_status failed account=%s", stripe_account_id)
        raise DatastoreError("Mise à jour du statut Stripe impossible") from e
    rows = res.data or []
    return rows[0] if rows else None
