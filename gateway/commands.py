from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class CommandType(str, Enum):
    STATUS = "status"
    GET_SUPPORTED_DATA = "get_supported_data"
    PREPARE_MODEL = "prepare_model"
    GET_DATA = "get_data"
    BAKE_DATA = "bake_data"
    EXPORT_FILE = "export_file"


class PrepareModelResult(str, Enum):
    SUCCESS = "success"
    NOTHING = "nothing"


class GetDataResult(str, Enum):
    SUCCESS = "success"
    NOTHING = "nothing"


class BakeDataResult(str, Enum):
    SUCCESS = "success"
    NOTHING = "nothing"


class ExportFileResult(str, Enum):
    SUCCESS = "success"
    NOTHING = "nothing"


NOTHING_RESULTS = {
    CommandType.PREPARE_MODEL: PrepareModelResult.NOTHING,
    CommandType.GET_DATA: GetDataResult.NOTHING,
    CommandType.BAKE_DATA: BakeDataResult.NOTHING,
    CommandType.EXPORT_FILE: ExportFileResult.NOTHING,
}

# replies to these commands carry the number of transferred items
COUNTED_COMMANDS = {CommandType.GET_DATA, CommandType.BAKE_DATA}

DEFAULT_SUPPORTED_DATA = {
    "parameterTypes": [],
    "typeHints": [],
    "contentTypes": [],
    "fileExtensions": [],
}


class CommandPayloadError(RuntimeError):
    pass


def _require_id(payload: dict, key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, dict) or not isinstance(value.get("id"), str) or not value["id"]:
        raise CommandPayloadError(f"Command payload missing {key}.id.")
    return value["id"]


@dataclass
class ModelCommand:
    model_id: str
    payload: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: dict) -> "ModelCommand":
        return cls(model_id=_require_id(payload, "model"), payload=payload)


@dataclass
class GetDataCommand:
    model_id: str
    parameter_id: str
    payload: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: dict) -> "GetDataCommand":
        return cls(
            model_id=_require_id(payload, "model"),
            parameter_id=_require_id(payload, "parameter"),
            payload=payload,
        )


@dataclass
class BakeDataCommand:
    model_id: str
    output_id: str
    payload: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: dict) -> "BakeDataCommand":
        return cls(
            model_id=_require_id(payload, "model"),
            output_id=_require_id(payload, "output"),
            payload=payload,
        )


@dataclass
class ExportFileCommand:
    model_id: str
    export_id: str
    index: int
    parameters: dict
    payload: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: dict) -> "ExportFileCommand":
        export_id = _require_id(payload, "export")
        index = payload["export"].get("index", 0)
        if not isinstance(index, int) or index < 0:
            raise CommandPayloadError("Command payload export.index must be a non-negative integer.")
        parameters = payload.get("parameters") or {}
        if not isinstance(parameters, dict):
            raise CommandPayloadError("Command payload parameters must be an object.")
        return cls(
            model_id=_require_id(payload, "model"),
            export_id=export_id,
            index=index,
            parameters=parameters,
            payload=payload,
        )


def info_reply(result: Enum, message: str, *, count: int | None = None, **extra) -> dict:
    info: dict = {"result": result.value, "message": message}
    if count is not None:
        info["count"] = count
    return {"info": info, **extra}


def nothing_reply(command_type: CommandType, message: str) -> dict:
    count = 0 if command_type in COUNTED_COMMANDS else None
    return info_reply(NOTHING_RESULTS[command_type], message, count=count)


def status_reply(first_activity: int, latest_activity: int) -> dict:
    return {"firstActivity": first_activity, "latestActivity": latest_activity}


def supported_data_reply(overrides: dict | None = None) -> dict:
    defaults = {key: list(value) for key, value in DEFAULT_SUPPORTED_DATA.items()}
    return {**defaults, **(overrides or {})}
