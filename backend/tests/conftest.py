"""
Pytest configuration and shared test helpers for backend tests.
"""
import hashlib
import hmac
import json
import os
import time
from types import SimpleNamespace

# Skip MongoDB connection at server startup when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")

import pytest

# Shared TestClient fixture so tests can use in-process requests without a running server.
from fastapi.testclient import TestClient
from server import app

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Use for unit-style API tests."""
    return TestClient(app)


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Stripe-Signature header (v1 scheme) for ``payload``."""
    ts = timestamp or int(time.time())
    signed = f"{ts}.".encode("utf-8") + payload
    sig = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def make_event(event_type: str, obj: dict, event_id: str = "evt_test_001") -> bytes:
    """Raw webhook body as Stripe would send it."""
    return json.dumps({
        "id": event_id,
        "type": event_type,
        "livemode": False,
        "data": {"object": obj},
    }).encode("utf-8")


class InMemoryUsers:
    """Minimal async stand-in for the Motor users collection ($set, $max, upsert, sort)."""

    def __init__(self):
        self.docs = {}
        self.update_calls = 0

    @staticmethod
    def _matches(doc, query):
        return all(doc.get(k) == v for k, v in query.items())

    async def find_one(self, query, projection=None, sort=None, **kw):
        hits = [d for d in self.docs.values() if self._matches(d, query)]
        if sort:
            for key, direction in reversed(sort):
                hits.sort(key=lambda d: d.get(key), reverse=direction < 0)
        return dict(hits[0]) if hits else None

    async def update_one(self, query, update, upsert=False, **kw):
        self.update_calls += 1
        key = query["accessKey"]
        doc = self.docs.get(key)
        upserted_id = None
        if doc is None:
            if not upsert:
                return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
            doc = {"accessKey": key}
            self.docs[key] = doc
            upserted_id = key
        doc.update(update.get("$set", {}))
        for field, value in update.get("$max", {}).items():
            if doc.get(field) is None or value > doc[field]:
                doc[field] = value
        return SimpleNamespace(
            matched_count=0 if upserted_id else 1,
            modified_count=1,
            upserted_id=upserted_id,
        )


class InMemoryDB:
    def __init__(self):
        self.users = InMemoryUsers()

    def __getitem__(self, name):
        return self.users


@pytest.fixture
def memory_db():
    return InMemoryDB()


@pytest.fixture
def account_store(memory_db):
    from services.account_store import AccountStore
    return AccountStore(db_provider=lambda: memory_db)


@pytest.fixture
def webhook_service(account_store):
    from services.stripe_webhook_service import StripeWebhookService
    return StripeWebhookService(store=account_store, webhook_secret=WEBHOOK_SECRET)
