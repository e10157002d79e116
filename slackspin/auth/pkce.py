"""PKCE (Proof Key for Code Exchange) helpers."""

from __future__ import annotations

import base64
import hashlib
import secrets
import string
from dataclasses import dataclass

VERIFIER_ALPHABET = string.ascii_letters + string.digits


@dataclass(frozen=True)
class PkceCodes:
    """Verifier kept by the client and the challenge sent with the authorize request."""

    code_verifier: str
    code_challenge: str


def generate_code_verifier(length: int = 64) -> str:
    return "".join(secrets.choice(VERIFIER_ALPHABET) for _ in range(length))


def generate_code_challenge(code_verifier: str) -> str:
    """URL-safe base64 (unpadded) SHA-256 digest of ``code_verifier``."""

    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce_pair(length: int = 64) -> PkceCodes:
    verifier = generate_code_verifier(length)
    return PkceCodes(code_verifier=verifier, code_challenge=generate_code_challenge(verifier))
