from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import httpx

from .http import build_api_client, raise_for_api_error

MODEL_EMBED_FIELDS = ("backend_system", "ticket", "token_export")


def _json_object(response: httpx.Response, what: str) -> dict:
    raise_for_api_error(response)
    payload = response.json()
    if not isinstance(payload, dict):
        raise RuntimeError(f"{what} response must be a JSON object.")
    return payload


class PlatformClient:
    """Authenticated client for the platform API (gateway config, model metadata)."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        *,
        timeout: float = 30.0,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self._client = build_api_client(
            base_url=self.base_url,
            access_token=access_token,
            timeout=timeout,
            max_retries=max_retries,
            transport=transport,
        )

    async def get_gateway_config(self) -> dict:
        response = await self._client.get("/api/v1/stargate/config")
        return _json_object(response, "Gateway config")

    async def get_model(self, model_id: str) -> dict:
        response = await self._client.get(
            f"/api/v1/models/{model_id}",
            params={"embed": ",".join(MODEL_EMBED_FIELDS)},
        )
        payload = _json_object(response, "Model")
        model = payload.get("model")
        if not isinstance(model, dict):
            raise RuntimeError("Model response missing model object.")
        return model

    async def aclose(self) -> None:
        await self._client.aclose()


@dataclass(frozen=True)
class ScopedConfig:
    base_url: str
    access_token: str


class GeometryClient:
    """Client for a model's own backend, scoped by the model's access token."""

    def __init__(
        self,
        config: ScopedConfig,
        *,
        timeout: float = 30.0,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._client = build_api_client(
            base_url=config.base_url.rstrip("/"),
            access_token=config.access_token,
            timeout=timeout,
            max_retries=max_retries,
            transport=transport,
        )

    async def create_session_by_ticket(self, ticket: str) -> dict:
        response = await self._client.post(f"/api/v2/ticket/{ticket}")
        session = _json_object(response, "Session")
        if not isinstance(session.get("sessionId"), str):
            raise RuntimeError("Session response missing sessionId.")
        return session

    async def request_file_upload(self, session_id: str, files: dict[str, dict]) -> dict:
        response = await self._client.post(
            f"/api/v2/session/{session_id}/file/upload",
            json=files,
        )
        return _json_object(response, "File upload")

    async def upload(self, href: str, content: bytes, content_type: str, filename: str) -> None:
        # upload targets are pre-signed and must not receive the bearer header
        async with httpx.AsyncClient(
            timeout=self._client.timeout, transport=self._transport
        ) as client:
            response = await client.put(
                href,
                content=content,
                headers={
                    "Content-Type": content_type,
                    "Content-Disposition": f'attachment; filename="{filename}"',
                },
            )
        raise_for_api_error(response)

    async def compute_exports(
        self,
        session_id: str,
        parameters: dict,
        exports: list[str],
    ) -> dict:
        response = await self._client.put(
            f"/api/v2/session/{session_id}/export",
            json={"parameters": parameters, "exports": exports},
        )
        return _json_object(response, "Export")

    async def download(self, href: str, target: Path) -> int:
        response = await self._client.get(href)
        raise_for_api_error(response)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(response.content)
        return len(response.content)

    async def aclose(self) -> None:
        await self._client.aclose()
