import json
from decimal import Decimal

import pytest

from marketplace.errors import ValidationFailed
from marketplace.payments.cart import CartLine
from marketplace.payments.metadata import make_intent_metadata, extract_intent_metadata


def _line(pid, qty=1):
    return CartLine(product_id=pid, quantity=qty, unit_price=Decimal("4.00"), vendor_id="v1")


def test_make_intent_metadata_carries_ids_and_quantities_only():
    meta = make_intent_metadata("v1", "c1", [_line("p1", 2), _line("p2")], "0.10")
    assert meta["vendor_id"] == "v1"
    assert meta["customer_id"] == "c1"
    assert meta["platform_fee_amount"] == "0.10"
    assert json.loads(meta["items"]) == [{"product_id": "p1", "quantity": 2}, {"product_id": "p2", "quantity": 1}]
    assert "price" not in meta["items"]


def test_make_intent_metadata_refuses_oversized_items():
    lines = [_line(f"product-{i:04d}-0000-0000-0000-000000000000") for i in range(20)]
    with pytest.raises(ValidationFailed):
        make_intent_metadata("v1", "c1", lines, "1.00")


def test_extract_intent_metadata_parses_event_object():
    intent = {"metadata": {"vendor_id": "v1", "customer_id": "c1", "items": '[{"product_id":"p1","quantity":2}]'}}
    meta = extract_intent_metadata(intent)
    assert meta.is_complete
    assert meta.items == [{"product_id": "p1", "quantity": 2}]


@pytest.mark.parametrize("raw", ["not-json", '{"a": 1}', None, "[1, 2]"])
def test_extract_intent_metadata_is_tolerant(raw):
    meta = extract_intent_metadata({"metadata": {"vendor_id": "v1", "items": raw}})
    assert meta.items == []
    assert not meta.is_complete
