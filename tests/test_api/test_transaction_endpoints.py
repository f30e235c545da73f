"""Tests for /api/v1/transactions."""

from __future__ import annotations

from spl_storefront.payments.stripe.models import PaymentIntentInfo

WALLET = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def _headers(user_id: int = 1) -> dict:
    return {"x-auth-user": str(user_id)}


def _buy(client, amount: str = "25.00", user_id: int = 1) -> int:
    response = client.post(
        "/api/v1/payment/create-intent",
        headers=_headers(user_id),
        json={"usdAmount": amount, "walletAddress": WALLET},
    )
    return response.json()["transaction"]["id"]


def _fail(client, signed_event, tx_id: int) -> None:
    body, header = signed_event(
        "payment_intent.payment_failed", f"pi_test_{tx_id}", last_error="declined"
    )
    client.post("/api/v1/webhooks/stripe", content=body, headers={"stripe-signature": header})


class TestListAndGet:
    def test_only_own_transactions(self, api_client):
        _buy(api_client, "25.00", user_id=1)
        _buy(api_client, "10.00", user_id=1)
        _buy(api_client, "30.00", user_id=2)
        data = api_client.get("/api/v1/transactions", headers=_headers(1)).json()
        assert data["pagination"] == {"page": 1, "limit": 20, "total": 2, "pages": 1}
        assert [t["id"] for t in data["transactions"]] == [2, 1]

    def test_pagination_and_filter(self, api_client, signed_event):
        for _ in range(3):
            _buy(api_client, "10.00")
        _fail(api_client, signed_event, 1)
        page = api_client.get("/api/v1/transactions?limit=2&page=2", headers=_headers()).json()
        assert page["pagination"]["pages"] == 2
        assert len(page["transactions"]) == 1
        failed = api_client.get("/api/v1/transactions?status=failed", headers=_headers()).json()
        assert [t["id"] for t in failed["transactions"]] == [1]

    def test_invalid_status_filter(self, api_client):
        response = api_client.get("/api/v1/transactions?status=bogus", headers=_headers())
        assert response.status_code == 422

    def test_get_other_users_transaction(self, api_client):
        tx_id = _buy(api_client, user_id=2)
        response = api_client.get(f"/api/v1/transactions/{tx_id}", headers=_headers(1))
        assert response.status_code == 404
        assert response.json()["code"] == "transaction-not-found"

    def test_hides_admin_columns(self, api_client):
        tx_id = _buy(api_client)
        data = api_client.get(f"/api/v1/transactions/{tx_id}", headers=_headers()).json()
        assert "admin_notes" not in data
        assert "user_id" not in data


class TestStatsAndExport:
    def test_stats(self, api_client, signed_event):
        _buy(api_client)
        _buy(api_client)
        _fail(api_client, signed_event, 2)
        stats = api_client.get("/api/v1/transactions/stats", headers=_headers()).json()
        assert stats["total_transactions"] == 2
        assert stats["by_status"]["failed"] == 1

    def test_export_csv(self, api_client):
        _buy(api_client)
        response = api_client.get("/api/v1/transactions/export", headers=_headers())
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        lines = response.text.strip().splitlines()
        assert len(lines) == 2
        assert WALLET in lines[1]


class TestRetry:
    def test_retry_failed_payment(self, api_client, signed_event, stripe_stub):
        tx_id = _buy(api_client)
        _fail(api_client, signed_event, tx_id)
        stripe_stub.retrieve_payment_intent.return_value = PaymentIntentInfo(
            id=f"pi_test_{tx_id}",
            client_secret=f"pi_test_{tx_id}_secret_abc",
            status="requires_payment_method",
        )
        response = api_client.post(f"/api/v1/transactions/{tx_id}/retry", headers=_headers())
        assert response.status_code == 200
        data = response.json()
        assert data["transaction"]["status"] == "pending"
        assert data["transaction"]["error_message"] is None
        assert data["clientSecret"] == f"pi_test_{tx_id}_secret_abc"

    def test_retry_pending_rejected(self, api_client):
        tx_id = _buy(api_client)
        response = api_client.post(f"/api/v1/transactions/{tx_id}/retry", headers=_headers())
        assert response.status_code == 409
        assert response.json()["code"] == "transaction-not-retryable"

    def test_retry_canceled_intent(self, api_client, signed_event, stripe_stub):
        tx_id = _buy(api_client)
        _fail(api_client, signed_event, tx_id)
        stripe_stub.retrieve_payment_intent.return_value = PaymentIntentInfo(
            id=f"pi_test_{tx_id}", status="canceled"
        )
        response = api_client.post(f"/api/v1/transactions/{tx_id}/retry", headers=_headers())
        assert response.status_code == 409
        assert "canceled" in response.json()["message"]
