# marketplace.config
from decimal import Decimal
from pathlib import Path
import os
from dotenv import load_dotenv

# Charger le .env à la racine du projet de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)

"""
Configuration centrale du service marketplace.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe)
- Paramètres du checkout: devise, taux de commission plateforme, timeouts
- Sécurité cookies, CORS/hosts
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces, guillemets et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

# Supabase
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("NEXT_PUBLIC_SUPABASE_ANON_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Stripe
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
# Compte Stripe de la plateforme (destinataire des commissions)
PLATFORM_STRIPE_ACCOUNT_ID = _clean_env(
    os.getenv("PLATFORM_STRIPE_ACCOUNT_ID") or os.getenv("OWNER_STRIPE_ACCOUNT_ID") or ""
)
STRIPE_CURRENCY = _clean_env(os.getenv("STRIPE_CURRENCY") or "usd").lower()
STRIPE_MAX_NETWORK_RETRIES = int(os.getenv("STRIPE_MAX_NETWORK_RETRIES", "2"))

# Commission plateforme (1% par défaut), en Decimal pour éviter les arrondis flottants
PLATFORM_FEE_RATE = Decimal(_clean_env(os.getenv("PLATFORM_FEE_RATE") or "0.01"))

# Timeout par appel réseau (Stripe, Supabase)
EXTERNAL_CALL_TIMEOUT = float(os.getenv("EXTERNAL_CALL_TIMEOUT", "10"))

# URLs
BASE_URL = _clean_env(os.getenv("BASE_URL") or os.getenv("NEXT_PUBLIC_BASE_URL") or "http://localhost:8000").rstrip("/")
ONBOARDING_REFRESH_PATH = os.getenv("ONBOARDING_REFRESH_PATH", "/vendor/stripe/refresh")
ONBOARDING_RETURN_PATH = os.getenv("ONBOARDING_RETURN_PATH", "/vendor/stripe/return")
CHECKOUT_RETURN_PATH = os.getenv("CHECKOUT_RETURN_PATH", "/order-confirmation")

# Cookies / sessions
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
SESSION_SECRET_KEY = _clean_env(os.getenv("SESSION_SECRET_KEY") or "replace_me_with_a_long_random_secret")
ADMIN_EMAILS = [e.strip() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()]

# CORS
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]
