"""Authentication middleware: user and admin identity from gateway headers.

Login and token handling happen upstream. The gateway forwards:
- ``x-auth-user``: the authenticated user's integer id
- ``x-admin-key``: the shared admin key, for admin routes only
"""

from __future__ import annotations

import enum
import hmac
from dataclasses import dataclass
from typing import TYPE_CHECKING

from spl_storefront.errors.definitions import ErrAdminRequired, ErrUnauthorized

if TYPE_CHECKING:
    from spl_storefront.engine.client import StorefrontEngine

AUTH_HEADER_USER = "x-auth-user"
AUTH_HEADER_ADMIN_KEY = "x-admin-key"


class AuthType(enum.IntEnum):
    """Authentication type for the current request."""

    USER = 0
    ADMIN = 1


@dataclass(frozen=True)
class UserContext:
    """Authenticated caller attached to the request."""

    auth_type: AuthType
    user_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.auth_type == AuthType.ADMIN

    @property
    def actor(self) -> str:
        """Identity recorded on rows this caller changes."""
        if self.is_admin:
            return f"admin:{self.user_id}" if self.user_id is not None else "admin"
        return f"user:{self.user_id}"


def _parse_user_id(raw: str) -> int | None:
    raw = raw.strip()
    if not raw:
        return None
    try:
        user_id = int(raw)
    except ValueError:
        raise ErrUnauthorized from None
    if user_id <= 0:
        raise ErrUnauthorized
    return user_id


def authenticate_request(
    engine: StorefrontEngine,
    *,
    user_header: str = "",
    admin_key_header: str = "",
) -> UserContext:
    """Build the caller's context from the auth headers.

    Raises:
        StorefrontError: ``ErrUnauthorized`` if no usable identity is present.
    """
    user_id = _parse_user_id(user_header)
    admin_key = engine.config.admin_api_key
    if admin_key and admin_key_header and hmac.compare_digest(admin_key_header, admin_key):
        return UserContext(auth_type=AuthType.ADMIN, user_id=user_id)
    if user_id is None:
        raise ErrUnauthorized
    return UserContext(auth_type=AuthType.USER, user_id=user_id)


def require_admin(ctx: UserContext) -> None:
    """Raise ``ErrAdminRequired`` unless *ctx* is an admin."""
    if not ctx.is_admin:
        raise ErrAdminRequired
