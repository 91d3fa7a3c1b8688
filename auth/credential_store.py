from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

REFRESH_TOKEN_KEY = "gateway_client_refresh_token"
CODE_VERIFIER_KEY = "gateway_client_code_verifier"
OAUTH_STATE_KEY = "gateway_client_oauth_state"

CREDENTIAL_KEYS = (REFRESH_TOKEN_KEY, CODE_VERIFIER_KEY, OAUTH_STATE_KEY)


class CredentialStore(ABC):
    """Process-wide string store for credentials that must survive a restart.

    Operations are synchronous and not re-entrant: callers must not await
    between reading a value and writing the value derived from it.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        for key in CREDENTIAL_KEYS:
            self.delete(key)


class MemoryCredentialStore(CredentialStore):
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class FileCredentialStore(CredentialStore):
    def __init__(self, path: str | Path = ".credentials.json") -> None:
        self._path = Path(path)

    def get(self, key: str) -> str | None:
        value = self._read_all().get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            raise RuntimeError(f"Credential store entry {key!r} must be a string.")
        return value

    def set(self, key: str, value: str) -> None:
        values = self._read_all()
        values[key] = value
        self._write_all(values)

    def delete(self, key: str) -> None:
        values = self._read_all()
        if key not in values:
            return
        values.pop(key)
        self._write_all(values)

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}

        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise RuntimeError("Credential store file is invalid; expected top-level JSON object.")
        return raw

    def _write_all(self, payload: dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
