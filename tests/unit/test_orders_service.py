from unittest.mock import MagicMock

import pytest

from marketplace.errors import SettlementError
from marketplace.orders import service as orders_service
from marketplace.orders import jobs
from marketplace.payments import intents
from marketplace.payments.cart import line_from_product, group_by_vendor
from marketplace.payments.settlement import handle_event


@pytest.fixture()
def unsettled_fee_order(store):
    store.add_product("p1", "v1", "30.00")
    store.add_account("v1")
    groups = group_by_vendor([line_from_product(store.products["p1"], 1)])
    intents.build_intents(MagicMock(), "c1", groups)
    store.fail_transfer = True
    with pytest.raises(SettlementError):
        handle_event(MagicMock(), store.succeeded_event(store.intents[0]))
    store.fail_transfer = False
    return store.orders["pi_1"]


def test_retry_pending_fee_transfers(store, unsettled_fee_order):
    summary = orders_service.retry_pending_fee_transfers(MagicMock())

    assert summary == {"pending": 1, "transferred": [unsettled_fee_order["id"]], "failed": []}
    assert store.transfers[unsettled_fee_order["id"]]["amount"] == 30
    assert store.orders["pi_1"]["fee_transferred_at"]
    # plus rien à rejouer
    assert orders_service.retry_pending_fee_transfers(MagicMock())["pending"] == 0


def test_retry_reports_failures(store, unsettled_fee_order):
    store.fail_transfer = True
    summary = orders_service.retry_pending_fee_transfers(MagicMock())
    assert summary["transferred"] == []
    assert summary["failed"][0]["order_id"] == unsettled_fee_order["id"]


def test_job_main_exit_code(store, unsettled_fee_order, monkeypatch):
    monkeypatch.setattr(jobs, "open_clients", lambda: MagicMock())
    monkeypatch.setattr(jobs, "close_clients", lambda: None)
    monkeypatch.setattr(jobs, "configure_stripe", lambda: None)
    assert jobs.main(["--limit", "10"]) == 0
    assert store.orders["pi_1"]["fee_transfer_id"] == "tr_1"
