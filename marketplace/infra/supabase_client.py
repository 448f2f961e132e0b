"""
Clients Supabase partagés par le process.

- get_service_supabase(): client service-role (bypass RLS) pour les écritures serveur,
  créé paresseusement puis réutilisé par toutes les requêtes.
- open_clients()/close_clients(): cycle de vie explicite, appelé par le lifespan.
- get_db(): dépendance FastAPI qui injecte le client ouvert au démarrage.
"""
from typing import Optional
import logging

from fastapi import Request
from supabase import create_client, Client
from supabase.client import ClientOptions

from marketplace.config import SUPABASE_URL, SUPABASE_ANON, SUPABASE_SERVICE_KEY, EXTERNAL_CALL_TIMEOUT
from marketplace.errors import DatastoreError

logger = logging.getLogger(__name__)

_supabase: Optional[Client] = None
_service_supabase: Optional[Client] = None


def _options() -> ClientOptions:
    return ClientOptions(postgrest_client_timeout=EXTERNAL_CALL_TIMEOUT)


def get_supabase() -> Client:
    """Client 'anon' (utilisé pour résoudre les tokens utilisateurs via Supabase Auth)."""
    global _supabase
    if _supabase is None:
        if not SUPABASE_URL or not SUPABASE_ANON:
            raise DatastoreError("SUPABASE_URL/SUPABASE_ANON_KEY manquants")
        _supabase = create_client(SUPABASE_URL, SUPABASE_ANON, options=_options())
    return _supabase


def get_service_supabase() -> Client:
    global _service_supabase
    if _service_supabase is None:
        if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
            raise DatastoreError("SUPABASE_SERVICE_KEY manquant pour get_service_supabase()")
        _service_supabase = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY, options=_options())
    return _service_supabase


def open_clients() -> Client:
    return get_service_supabase()


def close_clients() -> None:
    """Ferme les sessions HTTP PostgREST et oublie les clients (arrêt du process)."""
    global _supabase, _service_supabase
    for client in (_service_supabase, _supabase):
        if client is None:
            continue
        try:
            client.postgrest.session.close()
        except Exception:
            logger.warning("Fermeture du client Supabase incomplète", exc_info=True)
    _supabase = None
    _service_supabase = None


def get_db(request: Request) -> Client:
    client = getattr(request.app.state, "db", None)
    if client is None:
        client = get_service_supabase()
        request.app.state.db = client
    return client
