from __future__ import annotations

import logging
import sys
from typing import Any, Protocol, runtime_checkable

import structlog
from rich.logging import RichHandler
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars

_CONFIGURED = False


@runtime_checkable
class ILogger(Protocol):
    def debug(self, event: str, **kw: Any) -> Any: ...
    def info(self, event: str, **kw: Any) -> Any: ...
    def warning(self, event: str, **kw: Any) -> Any: ...
    def error(self, event: str, **kw: Any) -> Any: ...
    def exception(self, event: str, **kw: Any) -> Any: ...
    def bind(self, **kw: Any) -> "ILogger": ...


def _processors(renderer: Any) -> list[Any]:
    return [
        merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def _handler(fmt: str) -> tuple[logging.Handler, Any]:
    if fmt == "console":
        handler: logging.Handler = RichHandler(
            rich_tracebacks=True,
            markup=False,
            show_time=False,
            show_path=False,
        )
        return handler, structlog.processors.KeyValueRenderer(
            sort_keys=True, key_order=["event", "run_id", "stage"]
        )
    # Event handlers run where stdout is collected line by line.
    return logging.StreamHandler(stream=sys.stdout), structlog.processors.JSONRenderer()


def configure_logging(*, level: str = "INFO", fmt: str = "console") -> None:
    """
    Route structlog through the stdlib root logger. Idempotent; the first
    call wins.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    lvl = level.upper()
    handler, renderer = _handler(fmt)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(lvl)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(lvl)
    root.addHandler(handler)

    # botocore logs every credential lookup at INFO.
    for noisy in ("botocore", "boto3", "urllib3", "httpx"):
        logging.getLogger(noisy).setLevel(max(logging.WARNING, root.level))

    structlog.configure(
        processors=_processors(renderer),
        wrapper_class=structlog.make_filtering_bound_logger(root.level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str = "site_delivery") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind(**values: Any) -> None:
    """Attach values (run id, command) to every log line in this context."""
    bind_contextvars(**values)


def clear_bindings() -> None:
    clear_contextvars()
