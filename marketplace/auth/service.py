"""Résolution d'identité: token Supabase -> {id, email, role, vendor_id, token}.
Le rôle et l'identifiant vendeur viennent des app_metadata, modifiables uniquement
avec la clé service (les user_metadata sont écrites par l'utilisateur lui-même et
ne donnent jamais de droits).
"""
from typing import Optional, Dict, Any

from marketplace.config import ADMIN_EMAILS
from .repository import get_user_from_access_token as _repo_get_user_from_token

ROLES = ("admin", "vendor", "customer")


def determine_role(email: Optional[str], app_metadata: Dict[str, Any] | None) -> str:
    if email and email in ADMIN_EMAILS:
        return "admin"
    role_lower = str((app_metadata or {}).get("role", "")).lower()
    if role_lower in ROLES:
        return role_lower
    return "customer"


def get_user_from_token(access_token: str) -> Dict[str, Any]:
    raw = _repo_get_user_from_token(access_token)
    email = raw.get("email")
    app_metadata = raw.get("app_metadata") or {}
    uid = raw.get("id")
    role = determine_role(email, app_metadata)
    vendor_id = None
    if role == "vendor":
        # Un vendeur peut être rattaché à une fiche 'vendor' distincte de son compte auth
        vendor_id = str(app_metadata.get("vendor_id") or uid or "") or None
    return {
        "id": uid,
        "email": email,
        "metadata": raw.get("user_metadata") or {},
        "role": role,
        "vendor_id": vendor_id,
        "token": access_token,
    }
