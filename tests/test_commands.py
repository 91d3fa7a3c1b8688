import pytest

from gateway.commands import (
    CommandPayloadError,
    CommandType,
    ExportFileCommand,
    GetDataCommand,
    nothing_reply,
    supported_data_reply,
)


def test_get_data_command_reads_ids() -> None:
    command = GetDataCommand.from_payload({"model": {"id": "R1"}, "parameter": {"id": "P1"}})

    assert command.model_id == "R1"
    assert command.parameter_id == "P1"


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"model": "R1", "parameter": {"id": "P1"}},
        {"model": {"id": ""}, "parameter": {"id": "P1"}},
        {"model": {"id": "R1"}},
    ],
)
def test_get_data_command_rejects_missing_ids(payload) -> None:
    with pytest.raises(CommandPayloadError):
        GetDataCommand.from_payload(payload)


def test_export_command_defaults_index_and_parameters() -> None:
    command = ExportFileCommand.from_payload({"model": {"id": "R1"}, "export": {"id": "E1"}})

    assert command.index == 0
    assert command.parameters == {}


def test_export_command_rejects_negative_index() -> None:
    with pytest.raises(CommandPayloadError, match="export.index"):
        ExportFileCommand.from_payload({"model": {"id": "R1"}, "export": {"id": "E1", "index": -1}})


def test_nothing_reply_counts_only_transfer_commands() -> None:
    assert nothing_reply(CommandType.BAKE_DATA, "none")["info"]["count"] == 0
    assert "count" not in nothing_reply(CommandType.PREPARE_MODEL, "none")["info"]


def test_supported_data_reply_does_not_share_defaults() -> None:
    first = supported_data_reply()
    first["typeHints"].append("mutated")

    assert supported_data_reply()["typeHints"] == []
