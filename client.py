from __future__ import annotations

import asyncio
import urllib.parse

from auth.auth_flow import AuthFlow
from auth.callback_app import build_callback_app
from auth.credential_store import FileCredentialStore
from auth.models import AuthState
from gateway.constants import APP_VERSION, LOGGER
from gateway.dispatcher import CommandDispatcher
from gateway.env import Settings, load_env, load_settings, setup_logging, validate_env
from gateway.handlers import ExampleHandlers
from gateway.platform import PlatformClient


def print_login_url(url: str) -> None:
    print("Open the following URL in a browser to log in:")
    print(url)


def create_auth_flow(settings: Settings, *, navigate=print_login_url) -> AuthFlow:
    return AuthFlow(
        client_id=settings.client_id,
        auth_base_url=settings.auth_base_url,
        redirect_uri=settings.redirect_uri,
        credential_store=FileCredentialStore(settings.credentials_path),
        auto_login=settings.auto_login,
        navigate=navigate,
    )


def create_dispatcher(settings: Settings) -> CommandDispatcher:
    handlers = ExampleHandlers(settings.example_files_dir, settings.download_dir)
    return CommandDispatcher(
        supported_data=handlers.supported_data,
        get_data_handler=handlers.get_data,
        export_file_handler=handlers.export_file,
        default_endpoint=settings.default_endpoint,
        client_version=APP_VERSION,
    )


def create_platform_client(settings: Settings, access_token: str) -> PlatformClient:
    return PlatformClient(
        settings.platform_url,
        access_token,
        timeout=settings.api_timeout,
        max_retries=settings.api_max_retries,
    )


async def run_client(settings: Settings) -> None:
    import uvicorn

    auth_flow = create_auth_flow(settings)
    dispatcher = create_dispatcher(settings)
    platform_clients: list[PlatformClient] = []

    async def start_dispatcher(access_token: str) -> None:
        platform_client = create_platform_client(settings, access_token)
        platform_clients.append(platform_client)
        await dispatcher.start(access_token, platform_client)

    try:
        await auth_flow.maybe_auto_login()
    except Exception as error:
        LOGGER.warning("Automatic login failed: %s", error)

    if auth_flow.access_token:
        await start_dispatcher(auth_flow.access_token)
    elif auth_flow.auth_state in (AuthState.NOT_AUTHENTICATED, AuthState.ERROR):
        auth_flow.initiate_auth()
    else:
        LOGGER.info("Refresh token present; enable GW_AUTO_LOGIN to log in with it")

    app = build_callback_app(auth_flow, version=APP_VERSION, on_authenticated=start_dispatcher)
    redirect = urllib.parse.urlparse(settings.redirect_uri)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=redirect.hostname or "127.0.0.1",
            port=redirect.port or 80,
            log_level="info",
        )
    )
    try:
        await server.serve()
    finally:
        await dispatcher.stop()
        for platform_client in platform_clients:
            await platform_client.aclose()


def main() -> None:
    load_env()
    setup_logging()
    validate_env()
    settings = load_settings()
    asyncio.run(run_client(settings))


if __name__ == "__main__":
    main()
