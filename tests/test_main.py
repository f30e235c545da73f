"""Tests for spl_storefront.main entry point."""

from __future__ import annotations

from unittest.mock import patch


def test_main_calls_uvicorn_run(monkeypatch) -> None:
    """Verify that main() delegates to uvicorn.run with expected args."""
    monkeypatch.delenv("STOREFRONT_SERVER__PORT", raising=False)
    with patch("spl_storefront.main.uvicorn.run") as mock_run:
        from spl_storefront.main import main

        main()
        mock_run.assert_called_once()
        call_kwargs = mock_run.call_args
        assert call_kwargs[0][0] == "spl_storefront.api.app:create_app"
        assert call_kwargs[1]["factory"] is True
        assert call_kwargs[1]["port"] == 5000
