from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from .constants import LOGGER

CommandHandler = Callable[[dict], Awaitable[dict]]

REQUEST_TIMEOUT_SECONDS = 30.0


class GatewayConnectionError(RuntimeError):
    pass


def endpoint_url(endpoint: str) -> str:
    if "://" in endpoint:
        return endpoint
    return f"wss://{endpoint}"


def _log_server_command(payload: Any) -> None:
    LOGGER.info("Received gateway command without handler: %s", payload)


def _log_connection_error(message: str) -> None:
    LOGGER.error("Gateway connection error: %s", message)


def _log_disconnect(message: str) -> None:
    LOGGER.error("Gateway disconnected: %s", message)


class GatewayConnection:
    """JSON-over-websocket link to the gateway.

    Outbound requests are correlated with inbound responses by id. Inbound
    commands are served concurrently, one task per command, and every command
    gets exactly one reply.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        server_command_handler: Callable[[Any], None] | None = None,
        connection_error_handler: Callable[[str], None] | None = None,
        disconnect_handler: Callable[[str], None] | None = None,
        connect_fn=websockets.connect,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.url = endpoint_url(endpoint)
        self._server_command_handler = server_command_handler or _log_server_command
        self._connection_error_handler = connection_error_handler or _log_connection_error
        self._disconnect_handler = disconnect_handler or _log_disconnect
        self._connect_fn = connect_fn
        self._request_timeout = request_timeout

        self._handlers: dict[str, CommandHandler] = {}
        self._pending: dict[str, asyncio.Future] = {}
        self._command_tasks: set[asyncio.Task] = set()
        self._ws = None
        self._reader_task: asyncio.Task | None = None
        self._closed = False
        self._closing = False

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._closed

    async def connect(self) -> None:
        LOGGER.info("Connecting to gateway at %s", self.url)
        self._ws = await self._connect_fn(self.url)
        self._closed = False
        self._closing = False
        self._reader_task = asyncio.create_task(self._read_loop())

    async def close(self) -> None:
        self._closing = True
        if self._ws is not None and not self._closed:
            await self._ws.close()
        if self._reader_task is not None:
            await self._reader_task
        for task in list(self._command_tasks):
            task.cancel()

    def register_handler(self, command: str, handler: CommandHandler) -> None:
        self._handlers[command] = handler

    async def register(
        self,
        token: str,
        client_name: str,
        client_version: str,
        platform: str,
        host: str,
        extension: str = "",
    ) -> dict:
        return await self.request(
            "register",
            {
                "token": token,
                "clientName": client_name,
                "clientVersion": client_version,
                "platform": platform,
                "host": host,
                "extension": extension,
            },
        )

    async def request(self, action: str, data: dict) -> dict:
        if not self.is_connected:
            raise GatewayConnectionError("Gateway connection is not open.")

        request_id = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._send({"type": "request", "id": request_id, "action": action, "data": data})
            return await asyncio.wait_for(future, self._request_timeout)
        except asyncio.TimeoutError as error:
            raise GatewayConnectionError(f"Gateway request {action!r} timed out.") from error
        finally:
            self._pending.pop(request_id, None)

    async def _send(self, message: dict) -> None:
        if self._ws is None:
            raise GatewayConnectionError("Gateway connection is not open.")
        await self._ws.send(json.dumps(message, separators=(",", ":")))

    async def _read_loop(self) -> None:
        reason = "connection closed"
        try:
            async for raw in self._ws:
                try:
                    self._handle_raw(raw)
                except Exception:
                    LOGGER.exception("Failed to handle gateway message: %.200s", raw)
        except ConnectionClosed as error:
            reason = str(error)
        finally:
            self._closed = True
            error = GatewayConnectionError(f"Gateway disconnected: {reason}")
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(error)
            if self._closing:
                LOGGER.info("Gateway connection closed")
            else:
                self._disconnect_handler(reason)

    def _handle_raw(self, raw: str | bytes) -> None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.warning("Ignoring non-JSON gateway message: %.200s", raw)
            return
        if not isinstance(message, dict):
            LOGGER.warning("Ignoring gateway message that is not an object: %.200s", raw)
            return

        kind = message.get("type")
        if kind == "response":
            self._resolve_response(message)
        elif kind == "command":
            if not isinstance(message.get("command"), str):
                LOGGER.warning("Ignoring gateway command without a name: %.200s", raw)
                return
            handler = self._handlers.get(message["command"])
            if handler is None:
                self._server_command_handler(message)
                return
            task = asyncio.create_task(self._serve_command(message, handler))
            self._command_tasks.add(task)
            task.add_done_callback(self._command_tasks.discard)
        elif kind == "error":
            self._connection_error_handler(str(message.get("message", "")))
        else:
            self._server_command_handler(message)

    def _resolve_response(self, message: dict) -> None:
        request_id = message.get("id")
        future = self._pending.get(request_id) if isinstance(request_id, str) else None
        if future is None or future.done():
            LOGGER.debug("Dropping response for unknown request %s", message.get("id"))
            return
        if message.get("error"):
            future.set_exception(GatewayConnectionError(str(message["error"])))
        else:
            future.set_result(message.get("data") or {})

    async def _serve_command(self, message: dict, handler: CommandHandler) -> None:
        envelope = {"type": "reply", "id": message.get("id"), "command": message.get("command")}
        data = message.get("data")
        try:
            envelope["data"] = await handler(data if isinstance(data, dict) else {})
        except Exception as error:
            LOGGER.exception("Gateway command %s failed", message.get("command"))
            envelope["error"] = str(error)

        try:
            await self._send(envelope)
        except (ConnectionClosed, GatewayConnectionError) as error:
            LOGGER.warning("Could not reply to gateway command %s: %s", message.get("command"), error)
