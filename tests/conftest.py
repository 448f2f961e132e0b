import os

# Pas de Redis ni de Supabase réels pendant les tests
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import pytest
from decimal import Decimal
from typing import Generator, Dict, Any, List, Optional
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from marketplace.app_setup.factory import create_app
from marketplace.infra.supabase_client import get_db
from marketplace.utils.security import get_current_user


# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)
        elif "tests/functional/" in nodeid:
            item.add_marker(pytest.mark.functional)


@pytest.fixture(scope="session")
def app():
    return create_app()


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def fake_db() -> MagicMock:
    return MagicMock(name="supabase")


# Utilisateur courant modifiable par test (role customer / vendor / admin)
@pytest.fixture()
def current_user() -> Dict[str, Any]:
    return {
        "id": "cust-1",
        "email": "customer@example.com",
        "role": "customer",
        "vendor_id": None,
        "metadata": {},
        "token": "fake-token",
    }


@pytest.fixture(autouse=True)
def _override_dependencies(app, current_user, fake_db, monkeypatch):
    monkeypatch.setattr("marketplace.app_setup.lifespan.open_clients", lambda: fake_db)
    monkeypatch.setattr("marketplace.app_setup.lifespan.close_clients", lambda: None)
    app.dependency_overrides[get_current_user] = lambda: current_user
    app.dependency_overrides[get_db] = lambda: fake_db
    try:
        yield
    finally:
        app.dependency_overrides.clear()


class FakeStore:
    """
    Remplace les repositories Supabase et l'adaptateur Stripe par un état en mémoire.
    Reproduit les garanties portées par la base: UNIQUE (customer, product) sur le panier,
    UNIQUE stripe_payment_intent_id sur les commandes, commande + lignes atomiques,
    et la clé d'idempotence Stripe des virements de commission.
    """

    def __init__(self):
        self.products: Dict[str, dict] = {}
        self.cart: Dict[tuple, int] = {}
        self.accounts: Dict[str, dict] = {}
        self.remote_accounts: Dict[str, dict] = {}
        self.orders: Dict[str, dict] = {}
        self.order_items: Dict[str, List[dict]] = {}
        self.intents: List[dict] = []
        self.transfers: Dict[str, dict] = {}
        self.transfer_calls = 0
        self.status_writes = 0
        self.confirm_results: List[Any] = []
        self.retrieve_results: List[str] = []
        self.retrieve_calls = 0
        self.fail_transfer = False
        self.fail_cart_delete = False

    # --- données de test
    def add_product(self, product_id, vendor_id, price, title=""):
        self.products[product_id] = {"id": product_id, "vendor_id": vendor_id, "price": str(price), "title": title or product_id}

    def add_account(self, vendor_id, account_id=None, charges_enabled=True):
        account_id = account_id or f"acct_{vendor_id}"
        self.accounts[vendor_id] = {
            "vendor_id": vendor_id,
            "stripe_account_id": account_id,
            "charges_enabled": charges_enabled,
            "payouts_enabled": charges_enabled,
            "details_submitted": charges_enabled,
            "status_hash": None,
        }

    def cart_rows(self, customer_id):
        return {pid: q for (cid, pid), q in self.cart.items() if cid == customer_id}

    # --- cart repository
    def get_products_map(self, db, ids):
        return {str(i): dict(self.products[str(i)]) for i in ids if str(i) in self.products}

    def fetch_cart_rows(self, db, customer_id):
        return [
            {"product_id": pid, "quantity": q, "product": self.products.get(pid)}
            for (cid, pid), q in self.cart.items()
            if cid == customer_id
        ]

    def add_to_cart(self, db, customer_id, product_id, quantity):
        key = (customer_id, product_id)
        self.cart[key] = self.cart.get(key, 0) + quantity
        return {"customer_id": customer_id, "product_id": product_id, "quantity": self.cart[key]}

    def set_cart_quantity(self, db, customer_id, product_id, quantity):
        key = (customer_id, product_id)
        if key not in self.cart:
            return None
        self.cart[key] = quantity
        return {"customer_id": customer_id, "product_id": product_id, "quantity": quantity}

    def delete_cart_items(self, db, customer_id, product_ids=None):
        from marketplace.errors import DatastoreError
        if self.fail_cart_delete:
            raise DatastoreError("cart delete down")
        keys = [k for k in self.cart if k[0] == customer_id and (product_ids is None or k[1] in set(product_ids))]
        for k in keys:
            del self.cart[k]
        return len(keys)

    # --- vendors repository
    def get_vendor_account(self, db, vendor_id):
        acc = self.accounts.get(vendor_id)
        return dict(acc) if acc else None

    def insert_vendor_account(self, db, vendor_id, stripe_account_id):
        self.accounts[vendor_id] = {
            "vendor_id": vendor_id, "stripe_account_id": stripe_account_id,
            "charges_enabled": False, "payouts_enabled": False, "details_submitted": False, "status_hash": None,
        }
        return dict(self.accounts[vendor_id])

    def update_account_status(self, db, stripe_account_id, flags, status_hash):
        self.status_writes += 1
        for acc in self.accounts.values():
            if acc["stripe_account_id"] == stripe_account_id:
                acc.update({k: bool(v) for k, v in flags.items()}, status_hash=status_hash)
                return dict(acc)
        return None

    # --- orders repository
    def get_order_by_payment_intent(self, db, payment_intent_id):
        order = self.orders.get(payment_intent_id)
        return dict(order) if order else None

    def create_order_with_items(self, db, order, items):
        pi = order["stripe_payment_intent_id"]
        if pi in self.orders:
            return dict(self.orders[pi]), False
        row = dict(order, fee_transfer_id=None, fee_transferred_at=None)
        self.orders[pi] = row
        self.order_items[row["id"]] = [dict(i, order_id=row["id"]) for i in items]
        return dict(row), True

    def mark_fee_transferred(self, db, order_id, transfer_id):
        for row in self.orders.values():
            if row["id"] == order_id:
                row["fee_transfer_id"] = transfer_id
                row["fee_transferred_at"] = "2024-01-01T00:00:00+00:00"
                return dict(row)
        return None

    def list_orders_pending_fee(self, db, limit=100):
        return [dict(o) for o in self.orders.values() if not o.get("fee_transferred_at")][:limit]

    def fetch_customer_orders(self, db, customer_id, limit=50):
        return [dict(o, order_items=self.order_items.get(o["id"], [])) for o in self.orders.values() if o["customer_id"] == customer_id]

    def fetch_vendor_orders(self, db, vendor_id, limit=100):
        return [dict(o, order_items=self.order_items.get(o["id"], [])) for o in self.orders.values() if o["vendor_id"] == vendor_id]

    # --- stripe adapter
    def create_payment_intent(self, *, amount_cents, fee_cents, destination, metadata, currency=None):
        n = len(self.intents) + 1
        intent = {
            "id": f"pi_{n}",
            "client_secret": f"pi_{n}_secret",
            "amount": amount_cents,
            "application_fee_amount": fee_cents,
            "transfer_data": {"destination": destination},
            "metadata": dict(metadata),
            "status": "requires_payment_method",
        }
        self.intents.append(intent)
        return dict(intent)

    def confirm_payment_intent(self, payment_intent_id, *, payment_method, return_url):
        from marketplace.errors import ProcessorError
        outcome = self.confirm_results.pop(0) if self.confirm_results else "succeeded"
        if isinstance(outcome, Exception):
            raise outcome
        if outcome == "card_declined":
            raise ProcessorError("Your card was declined.")
        return {"id": payment_intent_id, "status": outcome, "latest_charge": f"ch_{payment_intent_id}"}

    def retrieve_payment_intent(self, payment_intent_id):
        self.retrieve_calls += 1
        status = self.retrieve_results.pop(0) if self.retrieve_results else "succeeded"
        return {"id": payment_intent_id, "status": status, "latest_charge": f"ch_{payment_intent_id}"}

    def create_fee_transfer(self, *, amount_cents, order_id, destination=None):
        from marketplace.errors import ProcessorError
        self.transfer_calls += 1
        if self.fail_transfer:
            raise ProcessorError("Stripe indisponible")
        # clé d'idempotence platform-fee-<order_id>: même transfert renvoyé
        if order_id not in self.transfers:
            self.transfers[order_id] = {
                "id": f"tr_{len(self.transfers) + 1}",
                "amount": amount_cents,
                "destination": destination or "acct_platform",
                "transfer_group": f"order_{order_id}",
            }
        return dict(self.transfers[order_id])

    def create_express_account(self):
        account_id = f"acct_new_{len(self.remote_accounts) + 1}"
        self.remote_accounts[account_id] = {"id": account_id, "charges_enabled": False, "payouts_enabled": False, "details_submitted": False}
        return dict(self.remote_accounts[account_id])

    def create_account_link(self, account_id, *, refresh_url, return_url):
        return {"url": f"https://connect.stripe.test/setup/{account_id}", "refresh_url": refresh_url, "return_url": return_url}

    def retrieve_account(self, account_id):
        return dict(self.remote_accounts.get(account_id) or {"id": account_id})

    # --- helpers
    def succeeded_event(self, intent: dict, event_id: Optional[str] = None) -> dict:
        return {
            "id": event_id or f"evt_{intent['id']}",
            "type": "payment_intent.succeeded",
            "data": {"object": dict(intent, status="succeeded")},
        }


@pytest.fixture()
def store(monkeypatch) -> FakeStore:
    s = FakeStore()
    patches = {
        "marketplace.cart.repository": (
            "get_products_map", "fetch_cart_rows", "add_to_cart", "set_cart_quantity", "delete_cart_items",
        ),
        "marketplace.vendors.repository": (
            "get_vendor_account", "insert_vendor_account", "update_account_status",
        ),
        "marketplace.orders.repository": (
            "get_order_by_payment_intent", "create_order_with_items", "mark_fee_transferred",
            "list_orders_pending_fee", "fetch_customer_orders", "fetch_vendor_orders",
        ),
        "marketplace.payments.stripe_client": (
            "create_payment_intent", "confirm_payment_intent", "retrieve_payment_intent", "create_fee_transfer",
            "create_express_account", "create_account_link", "retrieve_account",
        ),
    }
    for module, names in patches.items():
        for name in names:
            monkeypatch.setattr(f"{module}.{name}", getattr(s, name))
    monkeypatch.setattr("marketplace.config.PLATFORM_FEE_RATE", Decimal("0.01"))
    return s
