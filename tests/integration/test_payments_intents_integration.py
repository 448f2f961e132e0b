import pytest

INTENTS = "/api/v1/payments/intents"


@pytest.fixture()
def catalog(store):
    store.add_product("p1", "v1", "10.00")
    store.add_product("p2", "v2", "4.00")
    store.add_account("v1")
    store.add_account("v2")
    return store


def test_intents_from_request_items(client, catalog):
    body = {
        "customer_id": "cust-1",
        "items": [
            {"product_id": "p1", "quantity": 2, "vendor_id": "v1", "price": 0.01},
            {"product_id": "p2", "quantity": 1, "vendor_id": "v2"},
        ],
    }
    r = client.post(INTENTS, json=body)
    assert r.status_code == 200
    data = r.json()
    assert [pi["vendor_id"] for pi in data["paymentIntents"]] == ["v1", "v2"]
    assert data["paymentIntents"][0]["amount"] == 20.0
    assert data["paymentIntents"][0]["clientSecret"] == "pi_1_secret"
    assert data["errors"] == []
    assert catalog.intents[0]["application_fee_amount"] == 20


def test_intents_from_persisted_cart_and_session_queue(client, catalog):
    catalog.add_to_cart(None, "cust-1", "p2", 3)
    r = client.post(INTENTS, json={})
    assert r.status_code == 200
    assert r.json()["paymentIntents"][0]["amount"] == 12.0

    session = client.get("/api/v1/payments/session").json()
    assert session["active"] == "pi_1"
    assert session["intents"][0]["status"] == "pending"


def test_all_groups_failing_returns_first_error(client, store):
    store.add_product("p1", "v9", "5.00")
    r = client.post(INTENTS, json={"items": [{"product_id": "p1", "quantity": 1}]})
    assert r.status_code == 400
    assert r.json()["error"] == "vendor_not_onboarded"
    assert store.intents == []


def test_partial_failure_is_reported(client, catalog):
    catalog.accounts["v2"]["charges_enabled"] = False
    r = client.post(INTENTS, json={"items": [{"product_id": "p1", "quantity": 1}, {"product_id": "p2", "quantity": 1}]})
    assert r.status_code == 200
    assert [pi["vendor_id"] for pi in r.json()["paymentIntents"]] == ["v1"]
    assert r.json()["errors"][0]["vendor_id"] == "v2"


def test_empty_cart_is_400(client, store):
    assert client.post(INTENTS, json={"items": []}).json()["error"] == "empty_cart"
    assert client.post(INTENTS, json={}).status_code == 400


def test_unknown_product_is_400(client, catalog):
    r = client.post(INTENTS, json={"items": [{"product_id": "nope", "quantity": 1}]})
    assert r.status_code == 400


def test_other_customer_is_forbidden(client, catalog):
    r = client.post(INTENTS, json={"customer_id": "someone-else", "items": [{"product_id": "p1", "quantity": 1}]})
    assert r.status_code == 403
    assert catalog.intents == []


def test_confirm_without_queue_is_400(client, store):
    r = client.post("/api/v1/payments/session/confirm", json={"payment_method": "pm_card_visa"})
    assert r.status_code == 400
