"""HTTP query surface."""

from crypto_rates.api.app import create_app

__all__ = ["create_app"]
