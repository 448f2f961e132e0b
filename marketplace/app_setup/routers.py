"""
Registre central des routers.
- API v1: cart, payments, vendors, orders (+ admin)
- Health: health_router
"""
from fastapi import FastAPI
from marketplace.cart import views as cart_views
from marketplace.payments import views as payments_views
from marketplace.vendors import views as vendors_views
from marketplace.orders import views as orders_views
from marketplace.health.router import router as health_router


def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(cart_views.router)
    app.include_router(payments_views.router)
    app.include_router(vendors_views.router)
    app.include_router(orders_views.router)
    # Admin
    app.include_router(orders_views.admin_router)
    # Health & monitoring
    app.include_router(health_router)
