import json
import urllib.parse

import pytest

from auth.platform_oauth2 import (
    OAuthResponseError,
    TokenResponse,
    authorize_url_for,
    build_authorization_url,
    exchange_code,
    is_invalid_grant_error,
    is_invalid_request_error,
    refresh_token,
    token_url_for,
)

TOKEN_URL = "https://auth.example.com/oauth/token"


def test_endpoint_urls_from_base() -> None:
    assert authorize_url_for("https://auth.example.com/") == "https://auth.example.com/oauth/authorize"
    assert token_url_for("https://auth.example.com") == TOKEN_URL


def test_build_authorization_url_contains_required_params() -> None:
    url = build_authorization_url(
        authorize_url="https://auth.example.com/oauth/authorize",
        client_id="client123",
        redirect_uri="http://localhost:8765/",
        state="state123",
        code_challenge="challenge123",
    )

    parsed = urllib.parse.urlparse(url)
    query = urllib.parse.parse_qs(parsed.query)

    assert parsed.path == "/oauth/authorize"
    assert query["client_id"] == ["client123"]
    assert query["redirect_uri"] == ["http://localhost:8765/"]
    assert query["response_type"] == ["code"]
    assert query["code_challenge"] == ["challenge123"]
    assert query["code_challenge_method"] == ["S256"]
    assert query["state"] == ["state123"]


@pytest.mark.asyncio
async def test_exchange_code_posts_json(httpx_mock) -> None:
    httpx_mock.add_response(
        url=TOKEN_URL,
        method="POST",
        json={"access_token": "access-1", "refresh_token": "refresh-1"},
    )

    token = await exchange_code(
        token_url=TOKEN_URL,
        client_id="id",
        code="abc123",
        redirect_uri="http://localhost:8765/",
        code_verifier="verifier123",
    )

    request = httpx_mock.get_request()
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {
        "grant_type": "authorization_code",
        "client_id": "id",
        "code": "abc123",
        "redirect_uri": "http://localhost:8765/",
        "code_verifier": "verifier123",
    }
    assert token == TokenResponse(access_token="access-1", refresh_token="refresh-1")


@pytest.mark.asyncio
async def test_exchange_code_error_body(httpx_mock) -> None:
    httpx_mock.add_response(
        url=TOKEN_URL,
        method="POST",
        status_code=400,
        json={"error": "invalid_grant", "error_description": "Code expired."},
    )

    with pytest.raises(OAuthResponseError) as excinfo:
        await exchange_code(
            token_url=TOKEN_URL,
            client_id="id",
            code="bad-code",
            redirect_uri="http://localhost:8765/",
            code_verifier="verifier123",
        )

    assert excinfo.value.error == "invalid_grant"
    assert excinfo.value.error_description == "Code expired."
    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_exchange_code_error_without_json(httpx_mock) -> None:
    httpx_mock.add_response(url=TOKEN_URL, method="POST", status_code=502, text="bad gateway")

    with pytest.raises(OAuthResponseError, match="Token request failed with status 502") as excinfo:
        await exchange_code(
            token_url=TOKEN_URL,
            client_id="id",
            code="code",
            redirect_uri="http://localhost:8765/",
            code_verifier="verifier123",
        )

    assert excinfo.value.error is None


@pytest.mark.asyncio
async def test_refresh_token_success(httpx_mock) -> None:
    httpx_mock.add_response(
        url=TOKEN_URL,
        method="POST",
        json={"access_token": "access-2", "refresh_token": "refresh-2"},
    )

    token = await refresh_token(token_url=TOKEN_URL, client_id="id", refresh_token="refresh-1")

    assert json.loads(httpx_mock.get_request().content) == {
        "grant_type": "refresh_token",
        "client_id": "id",
        "refresh_token": "refresh-1",
    }
    assert token.access_token == "access-2"
    assert token.refresh_token == "refresh-2"


@pytest.mark.asyncio
async def test_refresh_token_invalid_request(httpx_mock) -> None:
    httpx_mock.add_response(
        url=TOKEN_URL,
        method="POST",
        status_code=400,
        json={"error": "invalid_request", "error_description": "Missing refresh token."},
    )

    with pytest.raises(OAuthResponseError) as excinfo:
        await refresh_token(token_url=TOKEN_URL, client_id="id", refresh_token="stale")

    assert is_invalid_request_error(excinfo.value)
    assert not is_invalid_grant_error(excinfo.value)


def test_error_classification_ignores_other_errors() -> None:
    assert is_invalid_grant_error(OAuthResponseError("invalid_grant", status_code=400))
    assert not is_invalid_grant_error(RuntimeError("invalid_grant"))
    assert not is_invalid_request_error(OAuthResponseError("server_error", status_code=500))


def test_token_response_requires_access_token() -> None:
    with pytest.raises(RuntimeError, match="missing access_token"):
        TokenResponse.from_payload({"refresh_token": "refresh"})


def test_token_response_refresh_token_optional() -> None:
    token = TokenResponse.from_payload({"access_token": "access"})

    assert token.refresh_token is None
