from __future__ import annotations

import urllib.parse
from dataclasses import dataclass

import httpx

AUTHORIZE_PATH = "/oauth/authorize"
TOKEN_PATH = "/oauth/token"

INVALID_GRANT = "invalid_grant"
INVALID_REQUEST = "invalid_request"


class OAuthResponseError(RuntimeError):
    def __init__(
        self,
        error: str | None,
        error_description: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.error = error
        self.error_description = error_description
        self.status_code = status_code
        message = f"Token request failed with status {status_code}: {error}"
        if error_description:
            message = f"{message} ({error_description})"
        super().__init__(message)


def is_invalid_grant_error(error: BaseException) -> bool:
    return isinstance(error, OAuthResponseError) and error.error == INVALID_GRANT


def is_invalid_request_error(error: BaseException) -> bool:
    return isinstance(error, OAuthResponseError) and error.error == INVALID_REQUEST


@dataclass
class TokenResponse:
    access_token: str
    refresh_token: str | None

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenResponse":
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")

        if not isinstance(access_token, str) or not access_token:
            raise RuntimeError("Token response missing access_token.")
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise RuntimeError("Token response refresh_token must be a string.")

        return cls(access_token=access_token, refresh_token=refresh_token or None)


def authorize_url_for(auth_base_url: str) -> str:
    return f"{auth_base_url.rstrip('/')}{AUTHORIZE_PATH}"


def token_url_for(auth_base_url: str) -> str:
    return f"{auth_base_url.rstrip('/')}{TOKEN_PATH}"


def build_authorization_url(
    authorize_url: str,
    client_id: str,
    redirect_uri: str,
    state: str,
    code_challenge: str,
) -> str:
    query = {
        "state": state,
        "response_type": "code",
        "client_id": client_id,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "redirect_uri": redirect_uri,
    }
    return f"{authorize_url}?{urllib.parse.urlencode(query)}"


def _error_from_response(response: httpx.Response) -> OAuthResponseError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    error = body.get("error")
    description = body.get("error_description")
    return OAuthResponseError(
        error if isinstance(error, str) else None,
        description if isinstance(description, str) else None,
        status_code=response.status_code,
    )


async def _token_request(
    token_url: str,
    payload: dict[str, str],
    *,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    own_client = client is None
    http_client = client or httpx.AsyncClient()

    try:
        response = await http_client.post(token_url, json=payload)
    finally:
        if own_client:
            await http_client.aclose()

    if not response.is_success:
        raise _error_from_response(response)

    return TokenResponse.from_payload(response.json())


async def exchange_code(
    token_url: str,
    client_id: str,
    code: str,
    redirect_uri: str,
    code_verifier: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    return await _token_request(
        token_url,
        {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        },
        client=client,
    )


async def refresh_token(
    token_url: str,
    client_id: str,
    refresh_token: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    return await _token_request(
        token_url,
        {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "refresh_token": refresh_token,
        },
        client=client,
    )
