from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from console_core.errors import (
    ConfigError,
    HubUnavailableError,
    StreamInterruptedError,
    is_transient_error,
    typed_error_metadata,
    typed_error_payload,
)
from agent_console import server as console_server


@pytest.mark.parametrize(
    ("error", "error_code", "failure_class", "user_message"),
    [
        (ConfigError("config bad"), "CONFIG_ERROR", "configuration", "Configuration is invalid."),
        (HubUnavailableError("hub bad"), "HUB_UNAVAILABLE", "network", "The agent hub is not reachable."),
        (
            StreamInterruptedError("stream bad"),
            "STREAM_INTERRUPTED",
            "transient",
            "The live connection was interrupted.",
        ),
    ],
)
def test_typed_errors_expose_deterministic_metadata_and_payload(
    error: Exception,
    error_code: str,
    failure_class: str,
    user_message: str,
) -> None:
    metadata = typed_error_metadata(error)
    assert metadata == {
        "error_code": error_code,
        "failure_class": failure_class,
        "user_message": user_message,
    }
    payload = typed_error_payload(error)
    assert payload == {
        "error_code": error_code,
        "failure_class": failure_class,
        "user_message": user_message,
        "detail": str(error),
    }


def test_typed_error_helpers_return_none_for_untyped_exceptions() -> None:
    exc = RuntimeError("boom")
    assert typed_error_metadata(exc) is None
    assert typed_error_payload(exc) is None


def test_transient_classification() -> None:
    assert is_transient_error(StreamInterruptedError("drop")) is True
    assert is_transient_error(ConnectionResetError("reset")) is True
    assert is_transient_error(TimeoutError("slow")) is True
    assert is_transient_error(HubUnavailableError("404", status_code=404)) is False
    assert is_transient_error(ValueError("bad")) is False


def test_hub_unavailable_keeps_status_code() -> None:
    assert HubUnavailableError("nope", status_code=503).status_code == 503
    assert HubUnavailableError("nope").status_code is None


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (ConfigError("bad"), 400),
        (HubUnavailableError("down"), 502),
        (StreamInterruptedError("drop"), 503),
    ],
)
def test_console_core_error_payload_maps_typed_errors(error: Exception, status: int) -> None:
    mapped_status, payload = console_server._core_error_payload(error)
    assert mapped_status == status
    assert payload["detail"] == str(error)


def test_console_core_error_payload_falls_back_for_untyped_error() -> None:
    status, payload = console_server._core_error_payload(RuntimeError("boom"))
    assert status == 500
    assert payload == {"error_code": "INTERNAL_ERROR", "detail": "boom"}


def test_http_error_codes() -> None:
    assert console_server._http_error_code(404) == "NOT_FOUND"
    assert console_server._http_error_code(409) == "CONFLICT"
    assert console_server._http_error_code(502) == "UPSTREAM_ERROR"
    assert console_server._http_error_code(418) == "HTTP_418"
