"""FastAPI dependency injection helpers.

Usage in a route::

    @router.get("/transactions")
    async def list_transactions(
        ctx: Annotated[UserContext, Depends(require_user)],
        engine: Annotated[StorefrontEngine, Depends(get_engine)],
    ) -> ...:
        ...
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, Request

from spl_storefront.api.middleware.auth import (
    AUTH_HEADER_ADMIN_KEY,
    AUTH_HEADER_USER,
    UserContext,
    authenticate_request,
)
from spl_storefront.api.middleware.auth import (
    require_admin as _require_admin,
)
from spl_storefront.engine.client import StorefrontEngine  # noqa: TC001
from spl_storefront.errors.definitions import ErrEngineUnavailable, ErrUnauthorized


def get_engine(request: Request) -> StorefrontEngine:
    """Retrieve the engine stored on ``app.state`` during lifespan startup."""
    engine: StorefrontEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        raise ErrEngineUnavailable
    return engine


def get_user_context(
    engine: Annotated[StorefrontEngine, Depends(get_engine)],
    x_auth_user: Annotated[str, Header(alias=AUTH_HEADER_USER)] = "",
    x_admin_key: Annotated[str, Header(alias=AUTH_HEADER_ADMIN_KEY)] = "",
) -> UserContext:
    """Resolve the caller from the gateway headers."""
    return authenticate_request(engine, user_header=x_auth_user, admin_key_header=x_admin_key)


def require_user(
    ctx: Annotated[UserContext, Depends(get_user_context)],
) -> UserContext:
    """Dependency that requires an authenticated end user."""
    if ctx.user_id is None:
        raise ErrUnauthorized
    return ctx


def require_admin(
    ctx: Annotated[UserContext, Depends(get_user_context)],
) -> UserContext:
    """Dependency that requires admin authentication."""
    _require_admin(ctx)
    return ctx
