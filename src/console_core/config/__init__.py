from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from console_core.errors import ConfigError
from console_core.shared import normalize_base_url


_SECTION_KEYS = ("hub", "logging", "stream", "poller", "server")
DEFAULT_HUB_BASE_URL = "http://127.0.0.1:23712"
DEFAULT_HUB_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RECONNECTS = 10
DEFAULT_RECONNECT_DELAY_SECONDS = 2.0
DEFAULT_HEAD_CAPACITY = 100
DEFAULT_TAIL_CAPACITY = 100
DEFAULT_POLL_INTERVAL_SECONDS = 1.5
DEFAULT_MAX_MISSED_POLLS = 20
DEFAULT_SERVER_HOST = "127.0.0.1"
DEFAULT_SERVER_PORT = 8766


def _ensure_dict(value: object, *, label: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{label} must be a table/object.")
    return dict(value)


def _ensure_optional_str(value: object, *, label: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{label} must be a string.")
    return value


def _ensure_int(value: object, *, label: str, default: int, minimum: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{label} must be an integer.")
    if value < minimum:
        raise ConfigError(f"{label} must be >= {minimum}.")
    return value


def _ensure_seconds(value: object, *, label: str, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{label} must be a number of seconds.")
    if value < 0:
        raise ConfigError(f"{label} must not be negative.")
    return float(value)


@dataclass(frozen=True)
class HubConfig:
    base_url: str = DEFAULT_HUB_BASE_URL
    timeout_seconds: float = DEFAULT_HUB_TIMEOUT_SECONDS
    values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LoggingConfig:
    values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StreamConfig:
    max_reconnects: int = DEFAULT_MAX_RECONNECTS
    reconnect_delay_seconds: float = DEFAULT_RECONNECT_DELAY_SECONDS
    head_capacity: int = DEFAULT_HEAD_CAPACITY
    tail_capacity: int = DEFAULT_TAIL_CAPACITY


@dataclass(frozen=True)
class PollerConfig:
    interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    max_missed_polls: int = DEFAULT_MAX_MISSED_POLLS


@dataclass(frozen=True)
class ServerConfig:
    host: str = DEFAULT_SERVER_HOST
    port: int = DEFAULT_SERVER_PORT


@dataclass(frozen=True)
class ConsoleConfig:
    hub: HubConfig = field(default_factory=HubConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    poller: PollerConfig = field(default_factory=PollerConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | dict[str, Any]) -> "ConsoleConfig":
        if not isinstance(payload, Mapping):
            raise ConfigError("Config payload root must be a table/object.")

        raw = dict(payload)
        missing_sections = [section for section in _SECTION_KEYS if section not in raw]
        if missing_sections:
            raise ConfigError(
                "Config payload missing required sections: " + ", ".join(missing_sections)
            )

        logging = LoggingConfig(values=_ensure_dict(raw.get("logging"), label="section 'logging'"))
        extras = {k: v for k, v in raw.items() if k not in _SECTION_KEYS}
        return cls(
            hub=_parse_hub(raw),
            logging=logging,
            stream=_parse_stream(raw),
            poller=_parse_poller(raw),
            server=_parse_server(raw),
            extras=extras,
        )

    @classmethod
    def from_toml_path(cls, path: str | Path) -> "ConsoleConfig":
        config_path = Path(path)
        try:
            raw = config_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Unable to read config file {config_path}: {exc}") from exc
        try:
            parsed = tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {config_path}: {exc}") from exc
        return cls.from_dict(parsed)


def _parse_hub(raw_root: dict[str, Any]) -> HubConfig:
    hub_raw = _ensure_dict(raw_root.get("hub"), label="section 'hub'")
    base_url = _ensure_optional_str(hub_raw.pop("base_url", None), label="hub.base_url")
    timeout = _ensure_seconds(
        hub_raw.pop("timeout_seconds", None),
        label="hub.timeout_seconds",
        default=DEFAULT_HUB_TIMEOUT_SECONDS,
    )
    return HubConfig(
        base_url=normalize_base_url(base_url or DEFAULT_HUB_BASE_URL, error_factory=ConfigError),
        timeout_seconds=timeout,
        values=hub_raw,
    )


def _parse_stream(raw_root: dict[str, Any]) -> StreamConfig:
    stream_raw = _ensure_dict(raw_root.get("stream"), label="section 'stream'")
    return StreamConfig(
        max_reconnects=_ensure_int(
            stream_raw.get("max_reconnects"),
            label="stream.max_reconnects",
            default=DEFAULT_MAX_RECONNECTS,
        ),
        reconnect_delay_seconds=_ensure_seconds(
            stream_raw.get("reconnect_delay_seconds"),
            label="stream.reconnect_delay_seconds",
            default=DEFAULT_RECONNECT_DELAY_SECONDS,
        ),
        head_capacity=_ensure_int(
            stream_raw.get("head_capacity"),
            label="stream.head_capacity",
            default=DEFAULT_HEAD_CAPACITY,
            minimum=1,
        ),
        tail_capacity=_ensure_int(
            stream_raw.get("tail_capacity"),
            label="stream.tail_capacity",
            default=DEFAULT_TAIL_CAPACITY,
            minimum=1,
        ),
    )


def _parse_poller(raw_root: dict[str, Any]) -> PollerConfig:
    poller_raw = _ensure_dict(raw_root.get("poller"), label="section 'poller'")
    return PollerConfig(
        interval_seconds=_ensure_seconds(
            poller_raw.get("interval_seconds"),
            label="poller.interval_seconds",
            default=DEFAULT_POLL_INTERVAL_SECONDS,
        ),
        max_missed_polls=_ensure_int(
            poller_raw.get("max_missed_polls"),
            label="poller.max_missed_polls",
            default=DEFAULT_MAX_MISSED_POLLS,
            minimum=1,
        ),
    )


def _parse_server(raw_root: dict[str, Any]) -> ServerConfig:
    server_raw = _ensure_dict(raw_root.get("server"), label="section 'server'")
    host = _ensure_optional_str(server_raw.get("host"), label="server.host")
    port = _ensure_int(server_raw.get("port"), label="server.port", default=DEFAULT_SERVER_PORT, minimum=1)
    if port > 65535:
        raise ConfigError("server.port must be <= 65535.")
    return ServerConfig(host=(host or DEFAULT_SERVER_HOST).strip(), port=port)


def load_console_config(path: str | Path) -> ConsoleConfig:
    return ConsoleConfig.from_toml_path(path)


def load_console_config_dict(payload: Mapping[str, Any] | dict[str, Any]) -> ConsoleConfig:
    return ConsoleConfig.from_dict(payload)


__all__ = [
    "ConsoleConfig",
    "DEFAULT_HEAD_CAPACITY",
    "DEFAULT_MAX_RECONNECTS",
    "DEFAULT_MAX_MISSED_POLLS",
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "DEFAULT_RECONNECT_DELAY_SECONDS",
    "DEFAULT_TAIL_CAPACITY",
    "HubConfig",
    "LoggingConfig",
    "PollerConfig",
    "ServerConfig",
    "StreamConfig",
    "load_console_config",
    "load_console_config_dict",
]
