"""
Lifespan FastAPI: initialisation/arrêt des ressources partagées.
- Client Supabase service-role ouvert au démarrage (app.state.db), fermé à l'arrêt.
- SDK Stripe configuré une fois (clé, retries, timeout).
- FastAPILimiter (Redis) avec options de test (fakeredis).
- Variables d'environnement supportées:
  - DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: désactive complètement (tests)
  - USE_FAKE_REDIS_FOR_TESTS=1: utilise fakeredis (tests)
  - LOCAL_RATE_LIMIT_FALLBACK=1: active un fallback local si l'init échoue
"""
import os
import logging
import redis.asyncio as redis
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter

from marketplace.errors import DatastoreError
from marketplace.infra.supabase_client import open_clients, close_clients
from marketplace.payments.stripe_client import configure_stripe


async def _init_rate_limit(app: FastAPI, logger: logging.Logger) -> None:
    try:
        if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
            app.state.rate_limit_enabled = False
            logger.info("Rate limiting disabled by DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS")
            return

        if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
            from fakeredis.aioredis import FakeRedis
            r = FakeRedis(decode_responses=True)
        else:
            redis_url = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
            r = redis.from_url(redis_url, encoding="utf-8", decode_responses=True)

        await FastAPILimiter.init(r)
        app.state.rate_limit_enabled = True
        logger.info("Rate limiting enabled")
    except Exception as e:
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            app.state.rate_limit_enabled = True
            logger.warning(f"Rate limiting falling back to local in-memory due to init error: {e}")
        else:
            app.state.rate_limit_enabled = False
            logger.warning(f"Rate limiting disabled due to init error: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("uvicorn.error")
    configure_stripe()
    try:
        app.state.db = open_clients()
    except DatastoreError as e:
        # get_db retentera paresseusement; /health/supabase expose l'état
        app.state.db = None
        logger.warning(f"Supabase client not opened at startup: {e.detail}")
    await _init_rate_limit(app, logger)
    try:
        yield
    finally:
        close_clients()
        app.state.db = None
        logger.info("Shared clients closed")
