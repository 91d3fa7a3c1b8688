from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from auth import pkce, platform_oauth2
from auth.credential_store import (
    CODE_VERIFIER_KEY,
    OAUTH_STATE_KEY,
    REFRESH_TOKEN_KEY,
    CredentialStore,
)
from auth.models import AuthSession, AuthState, PendingCodeExchange
from auth.platform_oauth2 import (
    OAuthResponseError,
    is_invalid_grant_error,
    is_invalid_request_error,
)
from auth.urls import query_params, remove_query_params

LOGGER = logging.getLogger("gateway_client.auth")


class AuthFlow:
    """OAuth2 Authorization Code flow with PKCE, driven from a single event loop.

    ``location`` plays the role of the visible page URL: ``load`` consumes the
    redirect parameters and rewrites it so a callback is processed at most once.
    """

    def __init__(
        self,
        *,
        client_id: str,
        auth_base_url: str,
        redirect_uri: str,
        credential_store: CredentialStore,
        auto_login: bool = False,
        navigate: Callable[[str], None] | None = None,
        exchange_code_fn=platform_oauth2.exchange_code,
        refresh_token_fn=platform_oauth2.refresh_token,
        clock: Callable[[], float] = time.time,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.authorize_url = platform_oauth2.authorize_url_for(auth_base_url)
        self.token_url = platform_oauth2.token_url_for(auth_base_url)
        self.credential_store = credential_store
        self.auto_login = auto_login
        self.location = redirect_uri

        self.access_token: str | None = None
        self.error: str | None = None
        self.error_description: str | None = None
        self.pending_exchange: PendingCodeExchange | None = None

        self._navigate = navigate
        self._exchange_code_fn = exchange_code_fn
        self._refresh_token_fn = refresh_token_fn
        self._clock = clock
        self._http_client = http_client
        self._redirect_started = False
        self._exchanging = False
        self._refreshing = False

    # -- state -----------------------------------------------------------------

    @property
    def refresh_token(self) -> str | None:
        return self.credential_store.get(REFRESH_TOKEN_KEY)

    @property
    def auth_state(self) -> AuthState:
        if self.error:
            return AuthState.ERROR
        if self.access_token:
            return AuthState.AUTHENTICATED
        if (
            self._redirect_started
            or self._exchanging
            or self._refreshing
            or self.pending_exchange is not None
        ):
            return AuthState.AUTHENTICATING
        if self.refresh_token:
            return AuthState.REFRESH_TOKEN_PRESENT
        return AuthState.NOT_AUTHENTICATED

    @property
    def session(self) -> AuthSession:
        return AuthSession(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
            error=self.error,
            error_description=self.error_description,
            auth_state=self.auth_state,
        )

    def _set_refresh_token(self, token: str | None) -> None:
        if token:
            self.credential_store.set(REFRESH_TOKEN_KEY, token)
        else:
            self.credential_store.delete(REFRESH_TOKEN_KEY)

    def _set_error(self, error: str | None, description: str | None) -> None:
        self.error = error
        self.error_description = description
        LOGGER.warning("Authentication error: %s (%s)", error, description)

    def _reset_error(self) -> None:
        self.error = None
        self.error_description = None

    # -- authorization code flow -----------------------------------------------

    def initiate_auth(self) -> str:
        self._reset_error()
        self.pending_exchange = None
        self.access_token = None
        self.credential_store.clear()

        code_verifier = pkce.generate_code_verifier()
        self.credential_store.set(CODE_VERIFIER_KEY, code_verifier)
        timestamp = int(self._clock())
        state = pkce.generate_state(code_verifier, self.authorize_url, self.client_id, timestamp)
        self.credential_store.set(OAUTH_STATE_KEY, state)

        redirect_url = platform_oauth2.build_authorization_url(
            authorize_url=self.authorize_url,
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            state=state,
            code_challenge=pkce.generate_code_challenge(code_verifier),
        )
        self._redirect_started = True
        LOGGER.info("Redirecting to authorization endpoint %s", self.authorize_url)
        if self._navigate is not None:
            self._navigate(redirect_url)
        return redirect_url

    def load(self, url: str) -> str:
        """Process the redirect parameters carried by ``url``.

        Returns the location with ``code`` and ``state`` removed.
        """
        self.location = url
        params = query_params(url)

        error = params.get("error")
        if error:
            self.credential_store.clear()
            self._redirect_started = False
            self._set_error(error, params.get("error_description"))
            return self.location

        code = params.get("code")
        state = params.get("state")
        if not code or not state:
            return self.location

        self.location = remove_query_params(url, ("code", "state"))
        self._redirect_started = False

        stored_state = self.credential_store.get(OAUTH_STATE_KEY)
        stored_verifier = self.credential_store.get(CODE_VERIFIER_KEY)
        if stored_state is None and self.access_token:
            LOGGER.info("Ignoring spent authorization code, already authenticated")
            return self.location
        if stored_state is None:
            self._set_error(
                "missing stored state",
                "No stored state found, please initiate the authentication flow again.",
            )
        elif stored_verifier is None:
            self._set_error(
                "missing stored verifier",
                "No stored code verifier found, please initiate the authentication flow again.",
            )
        elif state == stored_state:
            self.pending_exchange = PendingCodeExchange(code=code, verifier=stored_verifier)
        else:
            self._set_error(
                "state mismatch",
                "The returned state does not match the stored state.",
            )

        self.credential_store.delete(OAUTH_STATE_KEY)
        self.credential_store.delete(CODE_VERIFIER_KEY)
        return self.location

    async def complete_pending_exchange(self) -> bool:
        pending = self.pending_exchange
        if pending is None:
            return False
        self.pending_exchange = None
        self._exchanging = True

        try:
            token = await self._exchange_code_fn(
                token_url=self.token_url,
                client_id=self.client_id,
                code=pending.code,
                redirect_uri=self.redirect_uri,
                code_verifier=pending.verifier,
                client=self._http_client,
            )
        except OAuthResponseError as error:
            self._set_error(error.error, error.error_description)
            return False
        except (httpx.HTTPError, RuntimeError) as error:
            self._set_error("token exchange failed", str(error))
            return False
        finally:
            self._exchanging = False

        self.access_token = token.access_token
        self._set_refresh_token(token.refresh_token)
        LOGGER.info("Authorization code exchanged for tokens")
        return True

    # -- refresh token ---------------------------------------------------------

    async def auth_using_refresh_token(self) -> None:
        refresh_token = self.refresh_token
        if not refresh_token:
            return

        self._reset_error()
        self.pending_exchange = None
        self._refreshing = True

        try:
            token = await self._refresh_token_fn(
                token_url=self.token_url,
                client_id=self.client_id,
                refresh_token=refresh_token,
                client=self._http_client,
            )
        except Exception as error:
            self._set_refresh_token(None)
            if is_invalid_request_error(error) or is_invalid_grant_error(error):
                self._set_error(
                    "invalid refresh token",
                    "The stored refresh token is invalid, please log in again.",
                )
            else:
                self._set_error(
                    "refresh token login failed",
                    "The refresh token login failed, please log in again.",
                )
            raise
        finally:
            self._refreshing = False

        self.access_token = token.access_token
        self._set_refresh_token(token.refresh_token)
        LOGGER.info("Logged in using refresh token")

    async def maybe_auto_login(self) -> bool:
        if not self.auto_login or self.access_token or self._refreshing:
            return False
        if not self.refresh_token:
            return False
        await self.auth_using_refresh_token()
        return True

    def logout(self) -> None:
        self.access_token = None
        self.pending_exchange = None
        self._redirect_started = False
        self._reset_error()
        self.credential_store.clear()
