from __future__ import annotations

import base64
import hashlib
import secrets
import string

VERIFIER_CHARSET = string.ascii_uppercase + string.ascii_lowercase + string.digits
CODE_VERIFIER_LENGTH = 64


def generate_random_string(length: int) -> str:
    return "".join(secrets.choice(VERIFIER_CHARSET) for _ in range(length))


def generate_code_verifier() -> str:
    return generate_random_string(CODE_VERIFIER_LENGTH)


def sha256(data: str | bytes) -> bytes:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).digest()


def base64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("utf-8").rstrip("=")


def generate_code_challenge(verifier: str) -> str:
    return base64url_encode(sha256(verifier))


def generate_state(
    verifier: str,
    authorize_url: str,
    client_id: str,
    timestamp: int,
) -> str:
    """Derive the anti-CSRF state from the verifier and request context."""
    return base64url_encode(sha256(f"{verifier}:{authorize_url}:{client_id}:{timestamp}"))
