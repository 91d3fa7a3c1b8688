from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable

from .constants import LOGGER
from .platform import GeometryClient, PlatformClient, ScopedConfig


class SessionResolutionError(RuntimeError):
    def __init__(self, model_id: str, message: str) -> None:
        super().__init__(f"Could not create a session for model {model_id}: {message}")
        self.model_id = model_id


@dataclass(frozen=True)
class SessionData:
    config: ScopedConfig
    session: dict
    client: GeometryClient = field(compare=False, repr=False)

    @property
    def session_id(self) -> str:
        return self.session["sessionId"]


class SessionResolver:
    """Creates one backend session per model id and shares it between commands.

    The task for a model is stored before it is awaited, so concurrent calls
    for the same id never start a second resolution. A task that fails is
    evicted once it completes, so the next call retries.
    """

    def __init__(
        self,
        platform_client: PlatformClient,
        *,
        geometry_client_factory: Callable[[ScopedConfig], GeometryClient] = GeometryClient,
    ) -> None:
        self._platform_client = platform_client
        self._geometry_client_factory = geometry_client_factory
        self._sessions: dict[str, asyncio.Task[SessionData]] = {}

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._sessions

    async def resolve(self, model_id: str) -> SessionData:
        task = self._sessions.get(model_id)
        if task is None:
            task = asyncio.ensure_future(self._create_session(model_id))
            self._sessions[model_id] = task
            task.add_done_callback(lambda done: self._evict_failed(model_id, done))
        return await asyncio.shield(task)

    def evict(self, model_id: str) -> None:
        self._sessions.pop(model_id, None)

    def clear(self) -> None:
        self._sessions.clear()

    async def aclose(self) -> None:
        tasks = list(self._sessions.values())
        self._sessions.clear()
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in tasks:
            if task.cancelled() or task.exception() is not None:
                continue
            await task.result().client.aclose()

    def _evict_failed(self, model_id: str, task: asyncio.Task[SessionData]) -> None:
        if not task.cancelled() and task.exception() is None:
            return
        if self._sessions.get(model_id) is task:
            del self._sessions[model_id]
            LOGGER.warning("Session for model %s failed; evicted from cache", model_id)

    async def _create_session(self, model_id: str) -> SessionData:
        model = await self._platform_client.get_model(model_id)

        access_token = model.get("access_token")
        backend_system = model.get("backend_system")
        base_url = backend_system.get("model_view_url") if isinstance(backend_system, dict) else None
        ticket_info = model.get("ticket")
        ticket = ticket_info.get("ticket") if isinstance(ticket_info, dict) else None
        if not isinstance(access_token, str) or not access_token:
            raise SessionResolutionError(model_id, "model metadata has no access token.")
        if not isinstance(base_url, str) or not base_url:
            raise SessionResolutionError(model_id, "model metadata has no backend location.")
        if not isinstance(ticket, str) or not ticket:
            raise SessionResolutionError(model_id, "model metadata has no ticket.")

        config = ScopedConfig(base_url=base_url, access_token=access_token)
        geometry_client = self._geometry_client_factory(config)
        try:
            session = await geometry_client.create_session_by_ticket(ticket)
        except BaseException:
            await geometry_client.aclose()
            raise
        LOGGER.info("Created session %s for model %s", session.get("sessionId"), model_id)
        return SessionData(config=config, session=session, client=geometry_client)
