from unittest.mock import MagicMock

import pytest

from marketplace.errors import NotFound
from marketplace.vendors import service as vendors_service


def test_reconcile_unknown_vendor_is_not_found(store):
    with pytest.raises(NotFound):
        vendors_service.reconcile_account_status(MagicMock(), "v404")


def test_reconcile_persists_flags_verbatim_and_dedups(store):
    store.add_account("v1", "acct_1", charges_enabled=False)
    store.remote_accounts["acct_1"] = {"id": "acct_1", "charges_enabled": True, "payouts_enabled": False, "details_submitted": True}

    first = vendors_service.reconcile_account_status(MagicMock(), "v1")
    assert first == {"success": True, "changed": True, "charges_enabled": True, "payouts_enabled": False, "details_submitted": True}
    assert store.accounts["v1"]["charges_enabled"] is True
    assert store.accounts["v1"]["payouts_enabled"] is False

    second = vendors_service.reconcile_account_status(MagicMock(), "v1")
    assert second["changed"] is False
    assert store.status_writes == 1


def test_status_hash_depends_on_every_flag():
    base = {"charges_enabled": True, "payouts_enabled": True, "details_submitted": True}
    h = vendors_service.account_status_hash("acct_1", base)
    assert h == vendors_service.account_status_hash("acct_1", dict(base))
    assert h != vendors_service.account_status_hash("acct_1", dict(base, payouts_enabled=False))
    assert h != vendors_service.account_status_hash("acct_2", base)
    assert len(h) == 16


def test_onboarding_creates_account_once(store):
    first = vendors_service.start_onboarding(MagicMock(), "v1")
    assert first["created"] is True
    assert first["url"].endswith(first["account_id"])
    assert store.accounts["v1"]["stripe_account_id"] == first["account_id"]

    second = vendors_service.start_onboarding(MagicMock(), "v1")
    assert second["created"] is False
    assert second["account_id"] == first["account_id"]
    assert len(store.remote_accounts) == 1
