from typing import Dict, Any
import logging

from marketplace.config import SUPABASE_URL, STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET, PLATFORM_STRIPE_ACCOUNT_ID
from marketplace.infra.supabase_client import get_service_supabase

logger = logging.getLogger(__name__)

TABLES = ("product", "cart_items", "stripe_accounts", "orders", "order_items")


def health_supabase_info() -> Dict[str, Any]:
    """Vérifie l'accès aux tables du checkout (select id limit 1 par table)."""
    info: Dict[str, Any] = {"url_set": bool(SUPABASE_URL), "connect_ok": False, "tables": {}}
    try:
        client = get_service_supabase()
    except Exception as e:
        info["error"] = str(e)
        return info
    for table in TABLES:
        try:
            client.table(table).select("id" if table != "stripe_accounts" else "vendor_id").limit(1).execute()
            info["tables"][table] = True
        except Exception as e:
            logger.warning("health: table %s inaccessible: %s", table, e)
            info["tables"][table] = False
    info["connect_ok"] = all(info["tables"].values())
    return info


def health_stripe_info() -> Dict[str, Any]:
    return {
        "secret_key_set": bool(STRIPE_SECRET_KEY),
        "webhook_secret_set": bool(STRIPE_WEBHOOK_SECRET),
        "platform_account_set": bool(PLATFORM_STRIPE_ACCOUNT_ID),
    }
