"""HTTP entry points for Slackspin."""

from .api import CORS_HEADERS, create_app

__all__ = ["CORS_HEADERS", "create_app"]
