from __future__ import annotations


class TypedConsoleError(RuntimeError):
    """Base class for typed operational errors surfaced to users."""

    error_code = "INTERNAL_ERROR"
    failure_class = "internal"
    user_message = "An internal error occurred."
    transient = False

    def metadata(self) -> dict[str, str]:
        return {
            "error_code": self.error_code,
            "failure_class": self.failure_class,
            "user_message": self.user_message,
        }

    def payload(self, *, detail: str | None = None) -> dict[str, str]:
        payload = self.metadata()
        payload["detail"] = str(self) if detail is None else str(detail)
        return payload


def typed_error_metadata(exc: BaseException) -> dict[str, str] | None:
    if isinstance(exc, TypedConsoleError):
        return exc.metadata()
    return None


def typed_error_payload(exc: BaseException) -> dict[str, str] | None:
    if isinstance(exc, TypedConsoleError):
        return exc.payload()
    return None


def is_transient_error(exc: BaseException) -> bool:
    if isinstance(exc, TypedConsoleError):
        return bool(exc.transient)
    return isinstance(exc, (ConnectionError, TimeoutError))


class ConfigError(TypedConsoleError):
    """Configuration parsing or validation error."""

    error_code = "CONFIG_ERROR"
    failure_class = "configuration"
    user_message = "Configuration is invalid."


class HubUnavailableError(TypedConsoleError):
    """The agent hub rejected a request or could not be reached."""

    error_code = "HUB_UNAVAILABLE"
    failure_class = "network"
    user_message = "The agent hub is not reachable."

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamInterruptedError(TypedConsoleError):
    """A push or action stream dropped before it delivered a terminal event."""

    error_code = "STREAM_INTERRUPTED"
    failure_class = "transient"
    user_message = "The live connection was interrupted."
    transient = True
