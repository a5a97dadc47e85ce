"""
Stripe checkout creation: field validation, tier validation, email prefill and the
/api/stripe/checkout HTTP envelope. stripe.checkout.Session.create is mocked.
"""
import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import stripe

from services.errors import CheckoutFailed, InvalidRequest, InvalidTier, StoreWriteFailure
from services.stripe_service import StripeService

ACCESS_KEY = "sa_checkout"


@pytest.fixture
def checkout_service(account_store):
    return StripeService(store=account_store)


@pytest.fixture
def mock_session_create():
    session = SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123")
    with patch("stripe.checkout.Session.create", return_value=session) as create:
        yield create


class TestCreateCheckoutSession:

    def test_missing_fields(self, checkout_service):
        with pytest.raises(InvalidRequest):
            asyncio.run(checkout_service.create_checkout_session(None, "pro"))
        with pytest.raises(InvalidRequest):
            asyncio.run(checkout_service.create_checkout_session(ACCESS_KEY, ""))

    def test_invalid_tier_lists_available(self, checkout_service):
        with pytest.raises(InvalidTier) as exc:
            asyncio.run(checkout_service.create_checkout_session(ACCESS_KEY, "gold"))
        assert "starter" in exc.value.message
        assert "unlimited" in exc.value.message

    def test_free_tier_cannot_be_bought(self, checkout_service):
        with pytest.raises(InvalidTier):
            asyncio.run(checkout_service.create_checkout_session(ACCESS_KEY, "free"))

    def test_session_params(self, checkout_service, mock_session_create, monkeypatch):
        monkeypatch.setenv("FRONTEND_URL", "https://forms.example.com/")
        monkeypatch.delenv("STRIPE_PRICE_PRO", raising=False)
        result = asyncio.run(checkout_service.create_checkout_session(ACCESS_KEY, "pro"))

        assert result == {"url": "https://checkout.stripe.com/c/pay/cs_test_123", "sessionId": "cs_test_123"}
        params = mock_session_create.call_args.kwargs
        assert params["mode"] == "subscription"
        assert params["line_items"] == [{"price": "price_1QJck7EpdWEENcj1rKtmUWJ7", "quantity": 1}]
        assert params["metadata"] == {"accessKey": ACCESS_KEY, "tier": "pro", "submissions": "25000"}
        assert params["success_url"] == (
            f"https://forms.example.com/dashboard.html?key={ACCESS_KEY}"
            "&success=true&session_id={CHECKOUT_SESSION_ID}"
        )
        assert params["cancel_url"] == "https://forms.example.com/?cancelled=true"
        assert "customer_email" not in params

    def test_prefills_email_when_known(self, checkout_service, memory_db, mock_session_create):
        memory_db.users.docs[ACCESS_KEY] = {"accessKey": ACCESS_KEY, "email": "owner@example.com"}
        asyncio.run(checkout_service.create_checkout_session(ACCESS_KEY, "basic"))
        assert mock_session_create.call_args.kwargs["customer_email"] == "owner@example.com"

    def test_lookup_failure_does_not_block_checkout(self, mock_session_create):
        store = MagicMock()
        store.find_by_access_key = AsyncMock(side_effect=StoreWriteFailure("db down"))
        service = StripeService(store=store)
        result = asyncio.run(service.create_checkout_session(ACCESS_KEY, "basic"))
        assert result["sessionId"] == "cs_test_123"
        assert "customer_email" not in mock_session_create.call_args.kwargs

    def test_stripe_error_wrapped(self, checkout_service):
        with patch(
            "stripe.checkout.Session.create",
            side_effect=stripe.StripeError("No such price"),
        ):
            with pytest.raises(CheckoutFailed) as exc:
                asyncio.run(checkout_service.create_checkout_session(ACCESS_KEY, "pro"))
        assert "No such price" in exc.value.message


class TestCheckoutRoute:

    def test_success(self, client, checkout_service, mock_session_create):
        with patch("routes.billing.stripe_service", checkout_service):
            response = client.post("/api/stripe/checkout", json={"accessKey": ACCESS_KEY, "tier": "pro"})
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "url": "https://checkout.stripe.com/c/pay/cs_test_123",
            "sessionId": "cs_test_123",
        }

    def test_invalid_json(self, client):
        response = client.post(
            "/api/stripe/checkout",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid JSON in request body"

    def test_missing_fields(self, client, checkout_service):
        with patch("routes.billing.stripe_service", checkout_service):
            response = client.post("/api/stripe/checkout", json={"accessKey": ACCESS_KEY})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Missing required fields: accessKey and tier"}

    @pytest.mark.parametrize("body", [{"accessKey": ACCESS_KEY, "tier": 5}, {"accessKey": ["a"], "tier": "pro"}])
    def test_wrongly_typed_fields(self, client, checkout_service, mock_session_create, body):
        with patch("routes.billing.stripe_service", checkout_service):
            response = client.post("/api/stripe/checkout", json=body)
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Invalid request: accessKey and tier must be strings",
        }
        mock_session_create.assert_not_called()

    def test_invalid_tier(self, client, checkout_service):
        with patch("routes.billing.stripe_service", checkout_service):
            response = client.post("/api/stripe/checkout", json={"accessKey": ACCESS_KEY, "tier": "gold"})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid tier: gold")

    def test_stripe_failure_returns_500(self, client):
        with patch("routes.billing.stripe_service") as mock_service:
            mock_service.create_checkout_session = AsyncMock(side_effect=CheckoutFailed("card_declined"))
            response = client.post("/api/stripe/checkout", content=json.dumps({"accessKey": ACCESS_KEY, "tier": "pro"}))
        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert data["message"] == "card_declined"

    def test_preflight(self, client):
        response = client.options("/api/stripe/checkout")
        assert response.status_code == 200
        assert response.headers["access-control-allow-methods"] == "GET,POST,OPTIONS"
