from __future__ import annotations

import asyncio
import platform
import socket
import time
from typing import Any, Awaitable, Callable

import websockets

from .commands import (
    BakeDataCommand,
    CommandType,
    ExportFileCommand,
    GetDataCommand,
    ModelCommand,
    PrepareModelResult,
    info_reply,
    nothing_reply,
    status_reply,
    supported_data_reply,
)
from .connection import GatewayConnection
from .constants import (
    APP_VERSION,
    CLIENT_NAME,
    DEFAULT_GATEWAY_ENDPOINT,
    LIVENESS_WINDOW_SECONDS,
    LOGGER,
)
from .platform import PlatformClient
from .sessions import SessionData, SessionResolver

GetDataHandler = Callable[[GetDataCommand, SessionData], Awaitable[dict]]
BakeDataHandler = Callable[[BakeDataCommand, SessionData], Awaitable[dict]]
ExportFileHandler = Callable[[ExportFileCommand, SessionData], Awaitable[dict]]


def select_endpoint(config: dict | None, default: str = DEFAULT_GATEWAY_ENDPOINT) -> str:
    endpoints = (config or {}).get("endpoint")
    if isinstance(endpoints, dict):
        for value in endpoints.values():
            if isinstance(value, str) and value:
                return value
    return default


class CommandDispatcher:
    """Registers this client with the gateway and serves its commands.

    ``is_active`` turns true on every status command and false again when no
    status command arrived within the liveness window.
    """

    def __init__(
        self,
        *,
        supported_data: dict | None = None,
        get_data_handler: GetDataHandler | None = None,
        bake_data_handler: BakeDataHandler | None = None,
        export_file_handler: ExportFileHandler | None = None,
        server_command_handler: Callable[[Any], None] | None = None,
        connection_error_handler: Callable[[str], None] | None = None,
        disconnect_handler: Callable[[str], None] | None = None,
        connect_fn=websockets.connect,
        session_resolver_factory: Callable[[PlatformClient], SessionResolver] = SessionResolver,
        default_endpoint: str = DEFAULT_GATEWAY_ENDPOINT,
        liveness_window: float = LIVENESS_WINDOW_SECONDS,
        client_version: str = APP_VERSION,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.supported_data = supported_data or {}
        self.get_data_handler = get_data_handler
        self.bake_data_handler = bake_data_handler
        self.export_file_handler = export_file_handler
        self._server_command_handler = server_command_handler
        self._connection_error_handler = connection_error_handler
        self._disconnect_handler = disconnect_handler
        self._connect_fn = connect_fn
        self._session_resolver_factory = session_resolver_factory
        self._default_endpoint = default_endpoint
        self._liveness_window = liveness_window
        self._client_version = client_version
        self._clock = clock

        self.first_activity = int(clock())
        self.connection: GatewayConnection | None = None
        self.session_resolver: SessionResolver | None = None
        self._started_for: tuple[str, int] | None = None
        self._is_active = False
        self._liveness_handle: asyncio.TimerHandle | None = None

        self._command_table: dict[CommandType, Callable[[dict], Awaitable[dict]]] = {
            CommandType.STATUS: self._on_status,
            CommandType.GET_SUPPORTED_DATA: self._on_get_supported_data,
            CommandType.PREPARE_MODEL: self._on_prepare_model,
            CommandType.GET_DATA: self._on_get_data,
            CommandType.BAKE_DATA: self._on_bake_data,
            CommandType.EXPORT_FILE: self._on_export_file,
        }

    @property
    def is_active(self) -> bool:
        return self._is_active

    # -- lifecycle -------------------------------------------------------------

    async def start(self, access_token: str, platform_client: PlatformClient) -> GatewayConnection:
        key = (access_token, id(platform_client))
        if self._started_for == key and self.connection is not None:
            return self.connection

        await self.stop()

        try:
            config = await platform_client.get_gateway_config()
        except Exception as error:
            LOGGER.warning("Could not load gateway config, using default endpoint: %s", error)
            config = None
        endpoint = select_endpoint(config, self._default_endpoint)

        connection = GatewayConnection(
            endpoint,
            server_command_handler=self._server_command_handler,
            connection_error_handler=self._connection_error_handler,
            disconnect_handler=self._disconnect_handler,
            connect_fn=self._connect_fn,
        )
        await connection.connect()
        try:
            await connection.register(
                access_token,
                CLIENT_NAME,
                self._client_version,
                platform.platform(),
                socket.gethostname(),
                "",
            )
        except BaseException:
            await connection.close()
            raise

        self.session_resolver = self._session_resolver_factory(platform_client)
        for command_type in CommandType:
            connection.register_handler(command_type.value, self._wrap(command_type))

        self.connection = connection
        self._started_for = key
        LOGGER.info("Registered with gateway at %s", connection.url)
        return connection

    async def stop(self) -> None:
        self._cancel_liveness_timer()
        self._is_active = False
        if self.connection is not None:
            await self.connection.close()
            self.connection = None
        if self.session_resolver is not None:
            await self.session_resolver.aclose()
            self.session_resolver = None
        self._started_for = None

    # -- dispatch --------------------------------------------------------------

    def _wrap(self, command_type: CommandType) -> Callable[[dict], Awaitable[dict]]:
        handler = self._command_table[command_type]

        async def serve(data: dict) -> dict:
            try:
                return await handler(data)
            except Exception as error:
                LOGGER.exception("Handling %s command failed", command_type.value)
                if command_type in (CommandType.STATUS, CommandType.GET_SUPPORTED_DATA):
                    raise
                return nothing_reply(command_type, f"Command failed: {error}")

        return serve

    async def dispatch(self, command_type: CommandType, data: dict) -> dict:
        return await self._wrap(command_type)(data)

    async def _resolve(self, model_id: str) -> SessionData:
        if self.session_resolver is None:
            raise RuntimeError("Command dispatcher has not been started.")
        return await self.session_resolver.resolve(model_id)

    # -- liveness --------------------------------------------------------------

    def _cancel_liveness_timer(self) -> None:
        if self._liveness_handle is not None:
            self._liveness_handle.cancel()
            self._liveness_handle = None

    def _mark_active(self) -> None:
        self._cancel_liveness_timer()
        self._is_active = True
        self._liveness_handle = asyncio.get_running_loop().call_later(
            self._liveness_window, self._expire
        )

    def _expire(self) -> None:
        self._liveness_handle = None
        self._is_active = False
        LOGGER.info("No status command for %ss; client inactive", self._liveness_window)

    # -- command handlers ------------------------------------------------------

    async def _on_status(self, data: dict) -> dict:
        del data
        self._mark_active()
        return status_reply(self.first_activity, int(self._clock()))

    async def _on_get_supported_data(self, data: dict) -> dict:
        del data
        return supported_data_reply(self.supported_data)

    async def _on_prepare_model(self, data: dict) -> dict:
        command = ModelCommand.from_payload(data)
        await self._resolve(command.model_id)
        return info_reply(PrepareModelResult.SUCCESS, "Model prepared.")

    async def _on_get_data(self, data: dict) -> dict:
        command = GetDataCommand.from_payload(data)
        session_data = await self._resolve(command.model_id)
        if self.get_data_handler is not None:
            return await self.get_data_handler(command, session_data)
        LOGGER.warning("Received get data command, but no handler is registered: %s", data)
        return nothing_reply(CommandType.GET_DATA, "No handler registered.")

    async def _on_bake_data(self, data: dict) -> dict:
        command = BakeDataCommand.from_payload(data)
        session_data = await self._resolve(command.model_id)
        if self.bake_data_handler is not None:
            return await self.bake_data_handler(command, session_data)
        LOGGER.warning("Received bake data command, but no handler is registered: %s", data)
        return nothing_reply(CommandType.BAKE_DATA, "No handler registered.")

    async def _on_export_file(self, data: dict) -> dict:
        command = ExportFileCommand.from_payload(data)
        session_data = await self._resolve(command.model_id)
        if self.export_file_handler is not None:
            return await self.export_file_handler(command, session_data)
        LOGGER.warning("Received export file command, but no handler is registered: %s", data)
        return nothing_reply(CommandType.EXPORT_FILE, "No handler registered.")
