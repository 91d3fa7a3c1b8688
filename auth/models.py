from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AuthState(str, Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    REFRESH_TOKEN_PRESENT = "refresh_token_present"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


@dataclass
class PendingCodeExchange:
    code: str
    verifier: str


@dataclass(frozen=True)
class AuthSession:
    access_token: str | None
    refresh_token: str | None
    error: str | None
    error_description: str | None
    auth_state: AuthState
