"""Tests for /api/v1/admin."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from spl_storefront.chain.solana.models import TreasuryStatus
from spl_storefront.errors.provider_errors import TreasuryNotConfiguredError

WALLET = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
ADMIN = {"x-admin-key": "test-admin-key", "x-auth-user": "9"}
SIGNATURE = "5" * 88


@pytest.fixture
def paid(api_client, signed_event):
    """Create a purchase for user 1 and deliver its payment success; return the id."""

    def _paid(amount: str = "25.00") -> int:
        response = api_client.post(
            "/api/v1/payment/create-intent",
            headers={"x-auth-user": "1"},
            json={"usdAmount": amount, "walletAddress": WALLET},
        )
        tx_id = response.json()["transaction"]["id"]
        body, header = signed_event(
            "payment_intent.succeeded", f"pi_test_{tx_id}", event_id=f"evt_{tx_id}"
        )
        api_client.post("/api/v1/webhooks/stripe", content=body, headers={"stripe-signature": header})
        return tx_id

    return _paid


class TestTransactions:
    def test_list_all_users(self, api_client, paid):
        paid()
        api_client.post(
            "/api/v1/payment/create-intent",
            headers={"x-auth-user": "2"},
            json={"usdAmount": "10.00", "walletAddress": WALLET},
        )
        data = api_client.get("/api/v1/admin/transactions", headers=ADMIN).json()
        assert data["pagination"]["total"] == 2
        assert {t["user_id"] for t in data["transactions"]} == {1, 2}

    def test_filter_by_fulfillment_status(self, api_client, paid):
        paid()
        response = api_client.get(
            "/api/v1/admin/transactions?fulfillment_status=pending&user_id=1", headers=ADMIN
        )
        assert response.json()["pagination"]["total"] == 1

    def test_detail_has_admin_columns(self, api_client, paid):
        tx_id = paid()
        data = api_client.get(f"/api/v1/admin/transactions/{tx_id}", headers=ADMIN).json()
        assert data["user_id"] == 1
        assert data["payment_succeeded_at"] is not None
        assert data["invariant_violations"] == []

    def test_missing(self, api_client):
        response = api_client.get("/api/v1/admin/transactions/999", headers=ADMIN)
        assert response.status_code == 404

    def test_export(self, api_client, paid):
        paid()
        response = api_client.get("/api/v1/admin/transactions/export?status=processing", headers=ADMIN)
        assert response.status_code == 200
        assert len(response.text.strip().splitlines()) == 2

    def test_dashboard(self, api_client, paid):
        paid()
        data = api_client.get("/api/v1/admin/dashboard/stats", headers=ADMIN).json()
        assert data["transactions"]["by_status"]["processing"] == 1
        assert data["fulfillment"]["awaiting_fulfillment"] == 1
        assert Decimal(data["token_config"]["price_per_token"]) == Decimal("0.50")


class TestFulfillment:
    def test_manual_fulfill(self, api_client, paid):
        tx_id = paid()
        response = api_client.post(
            f"/api/v1/admin/fulfillments/{tx_id}/fulfill",
            headers=ADMIN,
            json={"transactionHash": "abc123", "notes": "sent by hand"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["blockchain_status"] == "confirmed"
        assert data["fulfillment_status"] == "completed"
        assert data["solana_transaction_signature"] == "abc123"
        assert data["blockchain_confirmations"] >= 1
        assert data["fulfilled_by"] == "admin:9"

    def test_fulfill_twice(self, api_client, paid):
        tx_id = paid()
        url = f"/api/v1/admin/fulfillments/{tx_id}/fulfill"
        api_client.post(url, headers=ADMIN, json={"transactionHash": "abc123"})
        response = api_client.post(url, headers=ADMIN, json={"transactionHash": "def456"})
        assert response.status_code == 409
        detail = api_client.get(f"/api/v1/admin/transactions/{tx_id}", headers=ADMIN).json()
        assert detail["solana_transaction_signature"] == "abc123"

    def test_fulfill_requires_hash(self, api_client, paid):
        tx_id = paid()
        response = api_client.post(
            f"/api/v1/admin/fulfillments/{tx_id}/fulfill", headers=ADMIN, json={}
        )
        assert response.status_code == 422

    def test_pending_queue(self, api_client, paid):
        first = paid()
        second = paid("10.00")
        api_client.post(
            f"/api/v1/admin/fulfillments/{first}/fulfill",
            headers=ADMIN,
            json={"transactionHash": "abc123"},
        )
        data = api_client.get("/api/v1/admin/fulfillments/pending", headers=ADMIN).json()
        assert [t["id"] for t in data["transactions"]] == [second]
        stats = api_client.get("/api/v1/admin/fulfillments/stats", headers=ADMIN).json()
        assert stats["by_fulfillment_status"]["completed"] == 1

    def test_update_status(self, api_client, paid):
        tx_id = paid()
        url = f"/api/v1/admin/fulfillments/{tx_id}/status"
        data = api_client.put(url, headers=ADMIN, json={"status": "processing"}).json()
        assert data["fulfillment_status"] == "processing"
        bad = api_client.put(url, headers=ADMIN, json={"status": "cancelled"})
        assert bad.status_code == 400
        assert bad.json()["code"] == "invalid-fulfillment-status"

    def test_automated_transfer(self, api_client, paid, fake_solana):
        tx_id = paid()
        response = api_client.post(f"/api/v1/admin/fulfillments/{tx_id}/transfer", headers=ADMIN)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["solana_transaction_signature"] == SIGNATURE
        fake_solana.transfer_tokens.assert_awaited_once()

    def test_transfer_failure(self, api_client, paid, fake_solana):
        tx_id = paid()
        fake_solana.transfer_tokens.side_effect = TreasuryNotConfiguredError()
        response = api_client.post(f"/api/v1/admin/fulfillments/{tx_id}/transfer", headers=ADMIN)
        assert response.status_code == 503
        assert response.json()["code"] == "treasury-not-configured"
        detail = api_client.get(f"/api/v1/admin/transactions/{tx_id}", headers=ADMIN).json()
        assert detail["status"] == "failed"
        assert detail["blockchain_status"] == "failed"

    def test_refresh_confirmations(self, api_client, paid):
        tx_id = paid()
        api_client.post(f"/api/v1/admin/fulfillments/{tx_id}/transfer", headers=ADMIN)
        data = api_client.post(
            f"/api/v1/admin/fulfillments/{tx_id}/confirmations", headers=ADMIN
        ).json()
        assert data["signature_status"]["found"] is True
        assert data["transaction"]["blockchain_confirmations"] == 12


class TestTokenConfig:
    def test_get_defaults(self, api_client):
        data = api_client.get("/api/v1/admin/token-config", headers=ADMIN).json()
        assert data["id"] is None
        assert data["sale_enabled"] is True

    def test_update(self, api_client):
        response = api_client.put(
            "/api/v1/admin/token-config",
            headers=ADMIN,
            json={"pricePerToken": "0.25", "totalSupply": "1000"},
        )
        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["price_per_token"]) == Decimal("0.25")
        assert Decimal(data["remaining_supply"]) == Decimal(1000)
        assert data["updated_by"] == "admin:9"
        price = api_client.get("/api/v1/payment/token-price").json()
        assert Decimal(price["price_per_token"]) == Decimal("0.25")

    def test_disable_sale(self, api_client):
        api_client.put("/api/v1/admin/token-config", headers=ADMIN, json={"saleEnabled": False})
        response = api_client.post(
            "/api/v1/payment/create-intent",
            headers={"x-auth-user": "1"},
            json={"usdAmount": "25.00", "walletAddress": WALLET},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "sale-inactive"

    def test_rejects_invalid(self, api_client):
        response = api_client.put(
            "/api/v1/admin/token-config", headers=ADMIN, json={"pricePerToken": "-1"}
        )
        assert response.status_code == 422


class TestMaintenance:
    def test_reconcile(self, api_client, paid):
        paid()
        dry = api_client.post("/api/v1/admin/reconcile?dry_run=true", headers=ADMIN).json()
        assert dry["dry_run"] is True
        assert dry["changed"] == 0
        real = api_client.post("/api/v1/admin/reconcile", headers=ADMIN).json()
        assert real["changed"] == 1
        again = api_client.post("/api/v1/admin/reconcile", headers=ADMIN).json()
        assert again["changed"] == 0

    def test_webhook_logs(self, api_client, paid):
        paid()
        data = api_client.get(
            "/api/v1/admin/webhook-logs?include_payload=true", headers=ADMIN
        ).json()
        assert data["pagination"]["total"] == 1
        log = data["webhook_logs"][0]
        assert log["event_type"] == "payment_intent.succeeded"
        assert log["processing_status"] == "processed"
        assert log["transaction_id"] == 1
        assert log["payload"]["id"] == "evt_1"

    def test_webhook_logs_without_payload(self, api_client, paid):
        paid()
        data = api_client.get("/api/v1/admin/webhook-logs", headers=ADMIN).json()
        assert data["webhook_logs"][0]["payload"] is None

    def test_treasury(self, api_client, fake_solana):
        fake_solana.get_treasury_status = AsyncMock(
            return_value=TreasuryStatus(
                wallet="Treasury111",
                token_account="TreasuryAta111",
                owner="Treasury111",
                owner_matches=True,
                sol_balance_lamports=2_000_000_000,
                token_balance=Decimal(1000),
                decimals=9,
                min_sol_balance_lamports=10_000_000,
            )
        )
        data = api_client.get("/api/v1/admin/treasury", headers=ADMIN).json()
        assert data["owner_matches"] is True
        assert data["sol_balance"] == "2.000000000"
        assert data["has_fee_balance"] is True
