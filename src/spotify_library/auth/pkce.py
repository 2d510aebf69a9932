"""
PKCE (RFC 7636) helpers.
"""

import base64
import hashlib
import secrets
import string
import uuid
from dataclasses import dataclass

UNRESERVED_CHARACTERS = string.ascii_letters + string.digits + "-._~"


def generate_code_verifier(length: int = 64) -> str:
    if not 43 <= length <= 128:
        raise ValueError("PKCE code verifier length must be between 43 and 128")
    return "".join(secrets.choice(UNRESERVED_CHARACTERS) for _ in range(length))


def code_challenge(verifier: str) -> str:
    """S256 challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_state() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class PKCEPair:
    verifier: str
    challenge: str
    method: str = "S256"

    @classmethod
    def generate(cls, length: int = 64) -> "PKCEPair":
        verifier = generate_code_verifier(length)
        return cls(verifier=verifier, challenge=code_challenge(verifier))
