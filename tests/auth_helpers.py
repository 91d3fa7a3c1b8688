from auth.auth_flow import AuthFlow
from auth.credential_store import MemoryCredentialStore
from auth.platform_oauth2 import TokenResponse

AUTH_BASE_URL = "https://auth.example.com"
REDIRECT_URI = "http://localhost:8765/"
CLIENT_ID = "client-123"


class TokenCallRecorder:
    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.calls: list[dict] = []
        self.result = result or TokenResponse(access_token="access-1", refresh_token="refresh-1")
        self.error = error

    async def __call__(self, **kwargs) -> TokenResponse:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def build_auth_flow(
    *,
    store: MemoryCredentialStore | None = None,
    exchange_code_fn=None,
    refresh_token_fn=None,
    auto_login: bool = False,
    navigate=None,
    clock=lambda: 1_700_000_000.0,
) -> AuthFlow:
    return AuthFlow(
        client_id=CLIENT_ID,
        auth_base_url=AUTH_BASE_URL,
        redirect_uri=REDIRECT_URI,
        credential_store=store if store is not None else MemoryCredentialStore(),
        auto_login=auto_login,
        navigate=navigate,
        exchange_code_fn=exchange_code_fn or TokenCallRecorder(),
        refresh_token_fn=refresh_token_fn or TokenCallRecorder(),
        clock=clock,
    )
