from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .commands import (
    CommandType,
    ExportFileCommand,
    ExportFileResult,
    GetDataCommand,
    GetDataResult,
    info_reply,
    nothing_reply,
)
from .constants import LOGGER
from .sessions import SessionData

SUPPORTED_DATA = {
    "contentTypes": ["application/json", "application/dwg", "model/vnd.3dm"],
    "fileExtensions": ["json", "3dm", "dwg"],
    "parameterTypes": ["File"],
}

EXPORT_TYPE_DOWNLOAD = "download"
COMPUTATION_SUCCESS = "success"


@dataclass(frozen=True)
class ExampleFile:
    filename: str
    content_type: str


EXAMPLE_FILES = (
    ExampleFile("test.json", "application/json"),
    ExampleFile("test.3dm", "model/vnd.3dm"),
    ExampleFile("test.dwg", "application/dwg"),
)


class ExampleHandlers:
    """Handlers that upload local example files and download exports to disk."""

    def __init__(
        self,
        files_dir: Path,
        download_dir: Path,
        *,
        files: tuple[ExampleFile, ...] = EXAMPLE_FILES,
    ) -> None:
        self.files_dir = Path(files_dir)
        self.download_dir = Path(download_dir)
        self.files = files
        self.supported_data = SUPPORTED_DATA

    def _find_file(self, formats: list[str]) -> ExampleFile | None:
        for example in self.files:
            if example.content_type in formats and (self.files_dir / example.filename).exists():
                return example
        return None

    async def get_data(self, command: GetDataCommand, session_data: SessionData) -> dict:
        parameters = session_data.session.get("parameters") or {}
        param_def = parameters.get(command.parameter_id)
        if isinstance(param_def, dict) and param_def.get("type") == "File":
            example = self._find_file(param_def.get("format") or [])
            if example is not None:
                content = (self.files_dir / example.filename).read_bytes()
                response = await session_data.client.request_file_upload(
                    session_data.session_id,
                    {
                        command.parameter_id: {
                            "size": len(content),
                            "filename": example.filename,
                            "format": example.content_type,
                        }
                    },
                )
                file_data = response["asset"]["file"][command.parameter_id]
                await session_data.client.upload(
                    file_data["href"],
                    content,
                    example.content_type,
                    example.filename,
                )
                LOGGER.info("Uploaded %s for parameter %s", example.filename, command.parameter_id)
                return info_reply(
                    GetDataResult.SUCCESS,
                    "File uploaded successfully.",
                    count=1,
                    asset={"id": file_data["id"]},
                )

        return nothing_reply(CommandType.GET_DATA, "No data available.")

    async def export_file(self, command: ExportFileCommand, session_data: SessionData) -> dict:
        exports = session_data.session.get("exports") or {}
        export_def = exports.get(command.export_id)
        if not isinstance(export_def, dict) or export_def.get("type") != EXPORT_TYPE_DOWNLOAD:
            return nothing_reply(CommandType.EXPORT_FILE, "Export is not of type DOWNLOAD.")

        response = await session_data.client.compute_exports(
            session_data.session_id,
            command.parameters,
            [command.export_id],
        )
        result = (response.get("exports") or {}).get(command.export_id) or {}
        if (
            result.get("status_collect") != COMPUTATION_SUCCESS
            or result.get("status_computation") != COMPUTATION_SUCCESS
        ):
            return nothing_reply(CommandType.EXPORT_FILE, "Export computation was not successful.")

        content = result.get("content") or []
        if command.index >= len(content):
            return nothing_reply(CommandType.EXPORT_FILE, "Export has no content at the requested index.")

        filename = result.get("filename") or f"{command.export_id}.bin"
        target = self.download_dir / Path(filename).name
        size = await session_data.client.download(content[command.index]["href"], target)
        LOGGER.info("Downloaded export %s to %s", command.export_id, target)
        return info_reply(
            ExportFileResult.SUCCESS,
            f"File {filename} downloaded successfully ({size} bytes).",
        )
