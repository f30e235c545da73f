"""CORS middleware configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware

from spl_storefront.api.middleware.auth import AUTH_HEADER_ADMIN_KEY, AUTH_HEADER_USER

if TYPE_CHECKING:
    from fastapi import FastAPI

_AUTH_HEADERS = [AUTH_HEADER_USER, AUTH_HEADER_ADMIN_KEY]


def setup_cors(app: FastAPI, origins: list[str] | None = None) -> None:
    """Add CORS middleware for the storefront frontend.

    Allows every origin unless *origins* is given.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*", *_AUTH_HEADERS],
    )
