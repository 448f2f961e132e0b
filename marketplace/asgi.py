"""
ASGI entrypoint: expose `app` pour les process managers / déploiements
(ex: `uvicorn marketplace.asgi:app`, gunicorn avec workers uvicorn).
"""

from marketplace.app_setup.factory import create_app

app = create_app()
