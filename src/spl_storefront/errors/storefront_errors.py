"""StorefrontError: base exception class for all storefront errors."""

from __future__ import annotations


class StorefrontError(Exception):
    """Base error for all storefront operations.

    Attributes:
        message: Human-readable error description.
        status_code: Suggested HTTP status code.
        code: Machine-readable error code string.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 500,
        code: str = "storefront-error",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def with_message(self, message: str) -> StorefrontError:
        """Return a new error with the same status and code but *message*."""
        return StorefrontError(message, status_code=self.status_code, code=self.code)
