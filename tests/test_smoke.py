import client

EXPECTED_EXPORTS = (
    "create_auth_flow",
    "create_dispatcher",
    "create_platform_client",
    "run_client",
    "main",
)


def test_import_client() -> None:
    for name in EXPECTED_EXPORTS:
        assert hasattr(client, name)
