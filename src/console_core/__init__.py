from __future__ import annotations

from .config import (
    ConsoleConfig,
    DEFAULT_HEAD_CAPACITY,
    DEFAULT_MAX_RECONNECTS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_RECONNECT_DELAY_SECONDS,
    DEFAULT_TAIL_CAPACITY,
    load_console_config,
    load_console_config_dict,
)
from .errors import (
    ConfigError,
    HubUnavailableError,
    StreamInterruptedError,
    TypedConsoleError,
)

__all__ = [
    "ConfigError",
    "ConsoleConfig",
    "DEFAULT_HEAD_CAPACITY",
    "DEFAULT_MAX_RECONNECTS",
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "DEFAULT_RECONNECT_DELAY_SECONDS",
    "DEFAULT_TAIL_CAPACITY",
    "HubUnavailableError",
    "StreamInterruptedError",
    "TypedConsoleError",
    "load_console_config",
    "load_console_config_dict",
]
