from __future__ import annotations

from typing import Awaitable, Callable

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from auth.auth_flow import AuthFlow
from auth.models import AuthState


def _status_payload(auth_flow: AuthFlow) -> dict:
    return {
        "auth_state": auth_flow.auth_state.value,
        "error": auth_flow.error,
        "error_description": auth_flow.error_description,
    }


def build_callback_app(
    auth_flow: AuthFlow,
    *,
    version: str,
    on_authenticated: Callable[[str], Awaitable[None]] | None = None,
) -> Starlette:
    """Loopback app serving the redirect URI of ``auth_flow``.

    A redirect carrying ``code`` and ``state`` is processed once and answered
    with a 303 to the cleaned location, so reloading the page in the browser
    never submits the code again.
    """

    async def callback_route(request: Request) -> Response:
        location = auth_flow.load(str(request.url))
        exchanged = await auth_flow.complete_pending_exchange()
        if exchanged and on_authenticated is not None and auth_flow.access_token:
            await on_authenticated(auth_flow.access_token)

        if location != str(request.url):
            return RedirectResponse(location, status_code=303)

        status_code = 400 if auth_flow.auth_state == AuthState.ERROR else 200
        return JSONResponse(
            {**_status_payload(auth_flow), "location": location},
            status_code=status_code,
        )

    async def health_route(request: Request) -> Response:
        del request
        return JSONResponse(
            {
                "status": "ok",
                "version": version,
                "auth_state": auth_flow.auth_state.value,
            }
        )

    return Starlette(
        routes=[
            Route("/", callback_route, methods=["GET"]),
            Route("/health", health_route, methods=["GET"]),
        ]
    )
