"""Authentication helpers for Slackspin."""

from .pkce import PkceCodes, generate_code_challenge, generate_code_verifier, generate_pkce_pair
from .spotify import SpotifyAuthorizer, TokenRecord, TokenStore

__all__ = [
    "PkceCodes",
    "SpotifyAuthorizer",
    "TokenRecord",
    "TokenStore",
    "generate_code_challenge",
    "generate_code_verifier",
    "generate_pkce_pair",
]
