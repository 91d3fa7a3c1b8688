from __future__ import annotations

import asyncio
import time

import httpx

from .constants import LOGGER

# requests that may be repeated without side effects on the backend
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})


class ApiError(RuntimeError):
    def __init__(self, status_code: int, message: str, api_error: object = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.api_error = api_error


def _seconds_until_reset(reset_header: str | None, *, now: float | None = None) -> int | None:
    if reset_header is None:
        return None
    try:
        reset_epoch = int(reset_header)
    except ValueError:
        return None

    current = time.time() if now is None else now
    return max(0, reset_epoch - int(current))


class RetryTransport(httpx.AsyncBaseTransport):
    """Repeats idempotent requests that hit rate limiting or a server error.

    A 429 is repeated once, after the reset time announced by the backend. A
    5xx is repeated with exponential backoff, up to ``max_retries`` times.
    Other methods, such as the POST that creates a session, are sent once.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        *,
        max_retries: int = 2,
        sleep=asyncio.sleep,
        methods: frozenset[str] = IDEMPOTENT_METHODS,
    ) -> None:
        self._transport = transport
        self._max_retries = max(0, max_retries)
        self._sleep = sleep
        self._methods = methods

    def _retry_delay(self, response: httpx.Response, attempt: int) -> int | None:
        if attempt >= self._max_retries:
            return None
        if response.status_code == 429:
            if attempt > 0:
                return None
            delay = _seconds_until_reset(response.headers.get("x-ratelimit-reset"))
            return 1 if delay is None else delay
        if response.status_code >= 500:
            return 2**attempt
        return None

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if request.method not in self._methods:
            return await self._transport.handle_async_request(request)

        attempt = 0
        while True:
            response = await self._transport.handle_async_request(
                httpx.Request(
                    request.method,
                    request.url,
                    headers=request.headers,
                    content=request.content,
                    extensions=request.extensions,
                )
            )
            delay = self._retry_delay(response, attempt)
            if delay is None:
                return response

            LOGGER.warning(
                "Retrying %s %s in %ss after status %s",
                request.method,
                request.url,
                delay,
                response.status_code,
            )
            await response.aclose()
            await self._sleep(delay)
            attempt += 1

    async def aclose(self) -> None:
        await self._transport.aclose()


def _friendly_error_message(status_code: int) -> str:
    if status_code == 401:
        return "Authentication failed. The access token may have expired."
    if status_code == 403:
        return "You don't have permission to access this resource."
    if status_code == 404:
        return "The requested resource was not found."
    if status_code == 429:
        return "Rate limit exceeded. Please try again later."
    if status_code >= 500:
        return "The API is experiencing issues. Please try again later."
    return f"API request failed with status {status_code}."


def raise_for_api_error(response: httpx.Response) -> None:
    """Raise :class:`ApiError` with a readable message for an error response."""
    if response.status_code < 400:
        return

    try:
        api_error = response.json()
    except ValueError:
        api_error = {"raw": response.text}

    message = _friendly_error_message(response.status_code)
    LOGGER.warning(
        "API error status=%s endpoint=%s payload=%s",
        response.status_code,
        response.request.url,
        api_error,
    )
    raise ApiError(response.status_code, message, api_error)


async def log_rate_limit_state(response: httpx.Response) -> None:
    remaining = response.headers.get("x-ratelimit-remaining")
    if remaining is None and response.status_code != 429:
        return

    wait_seconds = _seconds_until_reset(response.headers.get("x-ratelimit-reset"))
    if response.status_code == 429 or remaining == "0":
        LOGGER.warning(
            "Rate limited endpoint=%s remaining=%s wait=%s",
            response.request.url,
            remaining,
            wait_seconds,
        )
    else:
        LOGGER.debug("Rate limit remaining=%s endpoint=%s", remaining, response.request.url)


def build_api_client(
    *,
    base_url: str = "",
    access_token: str | None = None,
    timeout: float = 30.0,
    max_retries: int = 2,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    headers = {}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"

    return httpx.AsyncClient(
        base_url=base_url,
        headers=headers,
        timeout=timeout,
        transport=RetryTransport(transport or httpx.AsyncHTTPTransport(), max_retries=max_retries),
        event_hooks={"response": [log_rate_limit_state]},
    )
