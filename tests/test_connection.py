import asyncio

import pytest

from gateway.connection import GatewayConnection, GatewayConnectionError, endpoint_url
from tests.gateway_helpers import ConnectRecorder, FakeWebSocket, wait_for


def test_endpoint_url() -> None:
    assert endpoint_url("gateway.example.com") == "wss://gateway.example.com"
    assert endpoint_url("ws://localhost:9000") == "ws://localhost:9000"


async def _connected(websocket: FakeWebSocket, **kwargs) -> GatewayConnection:
    connection = GatewayConnection(
        "gateway.example.com", connect_fn=ConnectRecorder(websocket), **kwargs
    )
    await connection.connect()
    return connection


@pytest.mark.asyncio
async def test_register_sends_client_info() -> None:
    websocket = FakeWebSocket()
    connection = await _connected(websocket)

    response = await connection.register("jwt", "Client", "1.2.3", "Linux", "host-1", "")

    request = websocket.sent[0]
    assert response == {"ok": True}
    assert request["type"] == "request"
    assert request["action"] == "register"
    assert request["data"] == {
        "token": "jwt",
        "clientName": "Client",
        "clientVersion": "1.2.3",
        "platform": "Linux",
        "host": "host-1",
        "extension": "",
    }
    await connection.close()


@pytest.mark.asyncio
async def test_request_error_response_raises() -> None:
    websocket = FakeWebSocket(auto_respond=False)
    connection = await _connected(websocket)

    task = asyncio.create_task(connection.request("register", {}))
    await wait_for(lambda: websocket.sent)
    websocket.push({"type": "response", "id": websocket.sent[0]["id"], "error": "invalid token"})

    with pytest.raises(GatewayConnectionError, match="invalid token"):
        await task
    await connection.close()


@pytest.mark.asyncio
async def test_command_is_replied_with_same_id() -> None:
    websocket = FakeWebSocket()
    connection = await _connected(websocket)

    async def handler(data: dict) -> dict:
        return {"echo": data["value"]}

    connection.register_handler("status", handler)
    websocket.push({"type": "command", "id": "c1", "command": "status", "data": {"value": 7}})
    await wait_for(websocket.replies)

    assert websocket.replies() == [
        {"type": "reply", "id": "c1", "command": "status", "data": {"echo": 7}}
    ]
    await connection.close()


@pytest.mark.asyncio
async def test_failing_handler_still_replies() -> None:
    websocket = FakeWebSocket()
    connection = await _connected(websocket)

    async def handler(data: dict) -> dict:
        raise RuntimeError("boom")

    connection.register_handler("status", handler)
    websocket.push({"type": "command", "id": "c1", "command": "status", "data": {}})
    await wait_for(websocket.replies)

    assert websocket.replies()[0]["error"] == "boom"
    assert connection.is_connected
    await connection.close()


@pytest.mark.asyncio
async def test_slow_command_does_not_block_others() -> None:
    websocket = FakeWebSocket()
    connection = await _connected(websocket)
    release = asyncio.Event()

    async def slow(data: dict) -> dict:
        await release.wait()
        return {"slow": True}

    async def fast(data: dict) -> dict:
        return {"fast": True}

    connection.register_handler("get_data", slow)
    connection.register_handler("status", fast)
    websocket.push({"type": "command", "id": "c1", "command": "get_data", "data": {}})
    websocket.push({"type": "command", "id": "c2", "command": "status", "data": {}})
    await wait_for(lambda: len(websocket.replies()) == 1)

    assert websocket.replies()[0]["id"] == "c2"

    release.set()
    await wait_for(lambda: len(websocket.replies()) == 2)
    assert websocket.replies()[1]["id"] == "c1"
    await connection.close()


@pytest.mark.asyncio
async def test_unhandled_command_and_errors_go_to_handlers() -> None:
    unhandled: list = []
    errors: list[str] = []
    websocket = FakeWebSocket()
    connection = await _connected(
        websocket,
        server_command_handler=unhandled.append,
        connection_error_handler=errors.append,
    )

    websocket.push({"type": "command", "id": "c1", "command": "unknown", "data": {}})
    websocket.push({"type": "error", "message": "rate limited"})
    websocket.push("not json")
    await wait_for(lambda: errors)

    assert unhandled[0]["command"] == "unknown"
    assert errors == ["rate limited"]
    assert websocket.replies() == []
    await connection.close()


@pytest.mark.asyncio
async def test_disconnect_fails_pending_requests() -> None:
    disconnects: list[str] = []
    websocket = FakeWebSocket(auto_respond=False)
    connection = await _connected(websocket, disconnect_handler=disconnects.append)

    task = asyncio.create_task(connection.request("register", {}))
    await wait_for(lambda: websocket.sent)
    await websocket.close()

    with pytest.raises(GatewayConnectionError, match="disconnected"):
        await task
    assert disconnects == ["connection closed"]
    assert not connection.is_connected


@pytest.mark.asyncio
async def test_malformed_messages_do_not_stop_reader() -> None:
    disconnects: list[str] = []

    def failing_error_handler(message: str) -> None:
        raise RuntimeError("handler broke")

    websocket = FakeWebSocket()
    connection = await _connected(
        websocket,
        connection_error_handler=failing_error_handler,
        disconnect_handler=disconnects.append,
    )

    async def handler(data: dict) -> dict:
        return {"ok": True}

    connection.register_handler("status", handler)
    websocket.push({"type": "command", "id": "c0", "command": ["bad"], "data": {}})
    websocket.push({"type": "response", "id": ["bad"], "data": {}})
    websocket.push({"type": "error", "message": "boom"})
    websocket.push({"type": "command", "id": "c1", "command": "status", "data": {}})
    await wait_for(websocket.replies)

    assert [reply["id"] for reply in websocket.replies()] == ["c1"]
    assert connection.is_connected
    assert disconnects == []
    await connection.close()


@pytest.mark.asyncio
async def test_close_does_not_report_disconnect() -> None:
    disconnects: list[str] = []
    websocket = FakeWebSocket()
    connection = await _connected(websocket, disconnect_handler=disconnects.append)

    await connection.close()

    assert websocket.closed is True
    assert not connection.is_connected
    assert disconnects == []
