"""Tests for auth middleware: authenticate_request, require_admin and route guards."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from spl_storefront.api.middleware.auth import (
    AuthType,
    UserContext,
    authenticate_request,
    require_admin,
)
from spl_storefront.errors.storefront_errors import StorefrontError

ADMIN_KEY = "test-admin-key"


@pytest.fixture
def mock_engine():
    engine = MagicMock()
    engine.config.admin_api_key = ADMIN_KEY
    return engine


class TestUserContext:
    def test_is_admin(self):
        assert UserContext(auth_type=AuthType.ADMIN).is_admin
        assert not UserContext(auth_type=AuthType.USER, user_id=1).is_admin

    def test_actor(self):
        assert UserContext(auth_type=AuthType.USER, user_id=4).actor == "user:4"
        assert UserContext(auth_type=AuthType.ADMIN).actor == "admin"
        assert UserContext(auth_type=AuthType.ADMIN, user_id=9).actor == "admin:9"

    def test_frozen(self):
        ctx = UserContext(auth_type=AuthType.USER, user_id=1)
        with pytest.raises(AttributeError):
            ctx.user_id = 2  # type: ignore[misc]


class TestAuthenticateRequest:
    def test_user(self, mock_engine):
        ctx = authenticate_request(mock_engine, user_header="42")
        assert ctx.auth_type == AuthType.USER
        assert ctx.user_id == 42

    def test_admin_key(self, mock_engine):
        ctx = authenticate_request(mock_engine, admin_key_header=ADMIN_KEY)
        assert ctx.is_admin
        assert ctx.user_id is None

    def test_admin_key_with_user(self, mock_engine):
        ctx = authenticate_request(mock_engine, user_header="7", admin_key_header=ADMIN_KEY)
        assert ctx.is_admin
        assert ctx.user_id == 7

    def test_wrong_admin_key_falls_back_to_user(self, mock_engine):
        ctx = authenticate_request(mock_engine, user_header="7", admin_key_header="guess")
        assert not ctx.is_admin

    def test_admin_disabled_without_key(self, mock_engine):
        mock_engine.config.admin_api_key = ""
        with pytest.raises(StorefrontError) as exc_info:
            authenticate_request(mock_engine, admin_key_header="")
        assert exc_info.value.status_code == 401

    @pytest.mark.parametrize("header", ["", "abc", "0", "-3"])
    def test_rejects(self, mock_engine, header):
        with pytest.raises(StorefrontError) as exc_info:
            authenticate_request(mock_engine, user_header=header)
        assert exc_info.value.code == "unauthorized"

    def test_require_admin(self):
        require_admin(UserContext(auth_type=AuthType.ADMIN))
        with pytest.raises(StorefrontError) as exc_info:
            require_admin(UserContext(auth_type=AuthType.USER, user_id=1))
        assert exc_info.value.status_code == 403


class TestRouteGuards:
    def test_user_route_without_headers(self, api_client):
        response = api_client.get("/api/v1/transactions")
        assert response.status_code == 401
        assert response.json()["code"] == "unauthorized"

    def test_admin_route_as_user(self, api_client):
        response = api_client.get("/api/v1/admin/transactions", headers={"x-auth-user": "1"})
        assert response.status_code == 403
        assert response.json()["code"] == "admin-required"

    def test_admin_route_with_wrong_key(self, api_client):
        response = api_client.get("/api/v1/admin/transactions", headers={"x-admin-key": "nope"})
        assert response.status_code == 401

    def test_admin_only_key_cannot_buy(self, api_client):
        response = api_client.post(
            "/api/v1/payment/create-intent",
            headers={"x-admin-key": ADMIN_KEY},
            json={"usdAmount": "25.00", "walletAddress": "x"},
        )
        assert response.status_code == 401

    def test_token_price_is_public(self, api_client):
        assert api_client.get("/api/v1/payment/token-price").status_code == 200
