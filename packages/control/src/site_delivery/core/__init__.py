from .config import Settings, load_settings
from .errors import (
    DeliveryError,
    DeliveryFailure,
    InternalError,
    InvalidTransitionError,
    MalformedEventError,
    RoutingConfigError,
    RunNotFoundError,
    SourceConfigurationError,
    StageError,
    StageFailure,
    stage_error_from_exc,
)
from .fs import atomic_write_bytes, atomic_write_text, ensure_parent
from .json import (
    atomic_write_json,
    json_line,
    parse_json_object,
    read_json,
    stable_json_dumps,
)
from .logging import ILogger, bind, clear_bindings, configure_logging, get_logger
from .time import monotonic_ms, to_iso, utc_now, utc_now_iso

JsonPrimitive = str | int | float | bool | None
JsonValue = JsonPrimitive | list["JsonValue"] | dict[str, "JsonValue"]
JsonObject = dict[str, JsonValue]

__all__ = [
    "Settings",
    "load_settings",
    "DeliveryError",
    "DeliveryFailure",
    "InternalError",
    "InvalidTransitionError",
    "MalformedEventError",
    "RoutingConfigError",
    "RunNotFoundError",
    "SourceConfigurationError",
    "StageError",
    "StageFailure",
    "stage_error_from_exc",
    "atomic_write_bytes",
    "atomic_write_text",
    "ensure_parent",
    "json_line",
    "parse_json_object",
    "atomic_write_json",
    "read_json",
    "stable_json_dumps",
    "ILogger",
    "bind",
    "clear_bindings",
    "configure_logging",
    "get_logger",
    "monotonic_ms",
    "to_iso",
    "utc_now",
    "utc_now_iso",
    "JsonObject",
    "JsonValue",
]
