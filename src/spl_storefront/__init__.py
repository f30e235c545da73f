"""spl-storefront: card-to-SPL-token storefront backend."""

__version__ = "0.1.0"
