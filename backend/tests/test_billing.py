"""
Billing summary: plan and quota are read from the account record, free-tier
defaults when the account is unknown.
"""
import asyncio
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from models import AccountSubscription
from services.billing_service import BillingService

ACCESS_KEY = "sa_billing"


@pytest.fixture
def billing(account_store):
    return BillingService(store=account_store)


def test_unknown_account_gets_free_defaults(billing):
    summary = asyncio.run(billing.get_billing_summary("sa_missing"))
    assert summary["plan"] == "free"
    assert summary["usage"] == {"monthlyLimit": 1000, "formsLimit": "unlimited"}
    assert summary["billing"]["amount"] == 0
    assert summary["billing"]["currency"] == "USD"


def test_no_access_key_gets_free_defaults(billing):
    summary = asyncio.run(billing.get_billing_summary(None))
    assert summary["plan"] == "free"


def test_paid_account(billing, memory_db):
    memory_db.users.docs[ACCESS_KEY] = {
        "accessKey": ACCESS_KEY,
        "subscriptionTier": "enterprise",
        "subscriptionStatus": "active",
        "maxSubmissions": 300000,
        "lastPaymentDate": datetime(2026, 2, 1, tzinfo=timezone.utc),
    }
    summary = asyncio.run(billing.get_billing_summary(ACCESS_KEY))
    assert summary["plan"] == "enterprise"
    assert summary["status"] == "active"
    assert summary["usage"]["monthlyLimit"] == 300000
    assert summary["billing"]["amount"] == 59.99
    assert summary["billing"]["lastPaymentDate"] == "2026-02-01T00:00:00+00:00"


def test_cancelled_account_reports_free(billing, memory_db):
    memory_db.users.docs[ACCESS_KEY] = {
        "accessKey": ACCESS_KEY,
        "subscriptionTier": "free",
        "subscriptionStatus": "cancelled",
        "maxSubmissions": 1000,
    }
    summary = asyncio.run(billing.get_billing_summary(ACCESS_KEY))
    assert summary["plan"] == "free"
    assert summary["status"] == "cancelled"
    assert summary["usage"]["monthlyLimit"] == 1000


def test_record_read_through_account_model(billing, memory_db):
    memory_db.users.docs[ACCESS_KEY] = {
        "accessKey": ACCESS_KEY,
        "subscriptionTier": "basic",
        "subscriptionStatus": "payment_failed",
        "maxSubmissions": 2500,
        "lastPaymentDate": "2026-04-15T12:00:00+00:00",
        "formsCount": 12,
    }
    account = asyncio.run(billing.get_account(ACCESS_KEY))
    assert isinstance(account, AccountSubscription)
    assert account.lastPaymentDate == datetime(2026, 4, 15, 12, tzinfo=timezone.utc)
    assert not hasattr(account, "formsCount")

    summary = asyncio.run(billing.get_billing_summary(ACCESS_KEY))
    assert summary["status"] == "payment_failed"
    assert summary["billing"]["lastPaymentDate"] == "2026-04-15T12:00:00+00:00"


def test_unknown_account_model_defaults(billing):
    account = asyncio.run(billing.get_account("sa_missing"))
    assert account.accessKey == "sa_missing"
    assert account.subscriptionTier == "free"
    assert account.maxSubmissions == 1000
    assert account.subscriptionStatus is None


def test_billing_route_reads_query_and_header(client, billing, memory_db):
    memory_db.users.docs[ACCESS_KEY] = {"accessKey": ACCESS_KEY, "subscriptionTier": "pro"}
    with patch("routes.billing.billing_service", billing):
        by_query = client.get("/api/billing", params={"accessKey": ACCESS_KEY})
        by_header = client.get("/api/billing", headers={"X-Access-Key": ACCESS_KEY})
    assert by_query.status_code == 200
    assert by_query.json()["plan"] == "pro"
    assert by_header.json()["usage"]["monthlyLimit"] == 25000
