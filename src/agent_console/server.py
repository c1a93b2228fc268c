from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import replace
from pathlib import Path
from typing import Any

import click
import httpx
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from console_core import logging as core_logging
from console_core.config import ConsoleConfig, load_console_config
from console_core.errors import ConfigError, TypedConsoleError, typed_error_payload
from console_core.shared import default_config_file, normalize_base_url, repo_root

from agent_console.api import register_console_routes
from agent_console.domains import ChatDomain, SessionDomain
from agent_console.integrations import HubClient
from agent_console.services.action_stream_service import ActionStreamService
from agent_console.services.chat_sync_service import ChatSyncService
from agent_console.services.session_service import SessionService
from agent_console.store import RunRegistry
from agent_console.sync.log_window import LogWindow
from agent_console.sync.models import SessionInfo, Transcript
from agent_console.sync.stream_controller import ReconnectingStreamController

LOGGER = logging.getLogger("agent_console")
CONSOLE_LOG_LEVEL_CHOICES = ("critical", "error", "warning", "info", "debug")


def _repo_root() -> Path:
    return repo_root(Path(__file__))


def _default_config_file() -> Path:
    return default_config_file(_repo_root())


def _normalize_log_level(value: Any) -> str:
    normalized = str(value or "").strip().lower()
    if normalized in CONSOLE_LOG_LEVEL_CHOICES:
        return normalized
    return "info"


def _configure_console_logging(level: str) -> None:
    normalized = _normalize_log_level(level)
    core_logging.configure_structured_logger(LOGGER, level=normalized)


def _resolve_console_log_level(log_level: str | None, config: ConsoleConfig | None) -> str:
    cli_value = str(log_level or "").strip()
    if cli_value:
        return _normalize_log_level(cli_value)
    config_value = ""
    if config is not None and isinstance(config.logging.values, dict):
        config_value = str(config.logging.values.get("level") or "").strip()
    return _normalize_log_level(config_value or "info")


def _configure_domain_log_levels(config: ConsoleConfig | None) -> None:
    if config is None or not isinstance(config.logging.values, dict):
        return
    core_logging.configure_domain_log_levels(
        domains=config.logging.values.get("domains"),
        logger_prefix="agent_console",
        normalize_level=_normalize_log_level,
    )


def _core_error_payload(exc: BaseException) -> tuple[int, dict[str, Any]]:
    typed_payload = typed_error_payload(exc)
    if typed_payload is not None:
        status_by_code = {
            "CONFIG_ERROR": 400,
            "HUB_UNAVAILABLE": 502,
            "STREAM_INTERRUPTED": 503,
        }
        status = status_by_code.get(str(typed_payload.get("error_code") or ""), 500)
        return status, typed_payload
    return 500, {"error_code": "INTERNAL_ERROR", "detail": str(exc)}


def _http_error_code(status_code: int) -> str:
    status = int(status_code or 500)
    if status == 400:
        return "BAD_REQUEST"
    if status == 404:
        return "NOT_FOUND"
    if status == 405:
        return "METHOD_NOT_ALLOWED"
    if status == 409:
        return "CONFLICT"
    if status == 422:
        return "UNPROCESSABLE_ENTITY"
    if status in {500, 502, 503, 504}:
        return "UPSTREAM_ERROR"
    return f"HTTP_{status}"


def _uvicorn_log_level(console_level: str) -> str:
    normalized = _normalize_log_level(console_level)
    if normalized == "debug":
        return "info"
    return normalized


class ConsoleState:
    """Everything one console process holds: hub client, session records, transcripts and action runs."""

    def __init__(
        self,
        *,
        config: ConsoleConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.hub_base_url = config.hub.base_url
        self.hub_client = HubClient(
            base_url=config.hub.base_url,
            timeout=config.hub.timeout_seconds,
            transport=transport,
        )
        self.sessions: dict[str, SessionInfo] = {}
        self.transcripts: dict[str, Transcript] = {}
        self._sleep = sleep
        self.runs = RunRegistry(
            controller_factory=self._new_controller,
            window_factory=self._new_window,
        )

        self.session_domain = SessionDomain(state=self)
        self.chat_domain = ChatDomain(state=self)
        self.session_service = SessionService(
            domain=self.session_domain,
            hub_client=self.hub_client,
            poll_interval=config.poller.interval_seconds,
            max_missed_polls=config.poller.max_missed_polls,
            sleep=sleep,
        )
        self.chat_sync_service = ChatSyncService(
            domain=self.chat_domain,
            sessions=self.session_domain,
            hub_client=self.hub_client,
        )
        self.action_stream_service = ActionStreamService(registry=self.runs, hub_client=self.hub_client)

    def _new_window(self) -> LogWindow:
        return LogWindow(
            head_capacity=self.config.stream.head_capacity,
            tail_capacity=self.config.stream.tail_capacity,
        )

    def _new_controller(self, run_id: str, window: LogWindow) -> ReconnectingStreamController:
        return ReconnectingStreamController(
            max_reconnects=self.config.stream.max_reconnects,
            reconnect_delay=self.config.stream.reconnect_delay_seconds,
            window=window,
            sleep=self._sleep,
            name=run_id,
        )

    async def shutdown(self) -> None:
        self.session_service.stop_all()
        self.chat_sync_service.stop_all()
        self.action_stream_service.stop_all()
        await self.hub_client.aclose()


def create_app(state: ConsoleState) -> FastAPI:
    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        await state.shutdown()

    app = FastAPI(lifespan=lifespan)
    app.state.console_state = state

    @app.exception_handler(TypedConsoleError)
    async def _handle_typed_console_error(_request: Request, exc: TypedConsoleError) -> JSONResponse:
        status, payload = _core_error_payload(exc)
        return JSONResponse(status_code=status, content=payload)

    @app.exception_handler(HTTPException)
    async def _handle_http_exception(_request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=int(exc.status_code or 500),
            content={"error_code": _http_error_code(int(exc.status_code or 500)), "detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    register_console_routes(app, state=state, logger=LOGGER)
    return app


@click.command(help="Serve the agent console sync engine over a local JSON API.")
@click.option(
    "--config-file",
    default=None,
    show_default=f"{_default_config_file()} when present",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Console TOML config file.",
)
@click.option("--hub-url", default=None, show_default="config hub.base_url", help="Base URL of the agent hub.")
@click.option("--host", default=None, show_default="config server.host")
@click.option("--port", default=None, type=int, show_default="config server.port")
@click.option(
    "--log-level",
    default=None,
    show_default="config logging.level or info",
    type=click.Choice(CONSOLE_LOG_LEVEL_CHOICES, case_sensitive=False),
    help="Console logging verbosity (applies to Agent Console logs and Uvicorn).",
)
def main(
    config_file: Path | None,
    hub_url: str | None,
    host: str | None,
    port: int | None,
    log_level: str | None,
) -> None:
    config_path = config_file or _default_config_file()
    if config_file is not None and not config_path.exists():
        raise click.ClickException(f"Missing config file: {config_path}")
    try:
        config = load_console_config(config_path) if config_path.exists() else ConsoleConfig()
        if hub_url:
            base_url = normalize_base_url(hub_url, error_factory=ConfigError)
            config = replace(config, hub=replace(config.hub, base_url=base_url))
    except ConfigError as exc:
        click.echo(
            json.dumps(
                {"event": "agent_console_config_load_error", "config_path": str(config_path), "error": str(exc)},
                sort_keys=True,
            ),
            err=True,
        )
        raise click.ClickException(str(exc)) from exc

    normalized_log_level = _resolve_console_log_level(log_level, config)
    _configure_console_logging(normalized_log_level)
    _configure_domain_log_levels(config)
    bind_host = host or config.server.host
    bind_port = port or config.server.port
    LOGGER.info(
        "Starting Agent Console host=%s port=%s hub=%s log_level=%s",
        bind_host,
        bind_port,
        config.hub.base_url,
        normalized_log_level,
        extra=core_logging.log_fields(component="startup", operation="console_start", result="started"),
    )

    app = create_app(ConsoleState(config=config))
    uvicorn.run(app, host=bind_host, port=bind_port, log_level=_uvicorn_log_level(normalized_log_level))


if __name__ == "__main__":
    main()
