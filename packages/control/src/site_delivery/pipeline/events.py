from __future__ import annotations

import json
import os
import socket
import threading
from pathlib import Path
from typing import Callable

import structlog
from site_delivery.core import json_line, utc_now_iso

from .types import LifecycleEvent

Emitter = Callable[[LifecycleEvent], None]

log = structlog.get_logger(__name__)


class JsonlEventSink:
    """
    Append-only JSONL journal of lifecycle events.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

        if not self.path.exists():
            self._write(
                {
                    "type": "journal.env",
                    "timestamp": utc_now_iso(),
                    "hostname": socket.gethostname(),
                    "pid": os.getpid(),
                    "cwd": str(Path.cwd()),
                }
            )

    def _write(self, obj: dict) -> None:
        line = json_line(obj)
        with self._lock:
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.write("\n")

    def emit(self, event: LifecycleEvent) -> None:
        self._write(event.to_dict())

    __call__ = emit

    def read(self) -> list[dict]:
        with self.path.open("r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]


class RunJournal:
    """
    Routes each event to the journal file of its own run.
    """

    def __init__(self, path_for: Callable[[str], Path]) -> None:
        self._path_for = path_for
        self._sinks: dict[str, JsonlEventSink] = {}
        self._lock = threading.Lock()

    def __call__(self, event: LifecycleEvent) -> None:
        with self._lock:
            sink = self._sinks.get(event.run_id)
            if sink is None:
                sink = JsonlEventSink(self._path_for(event.run_id))
                self._sinks[event.run_id] = sink
        sink.emit(event)


def _emitter_name(e: Emitter) -> str:
    return getattr(e, "__name__", None) or type(e).__name__


def compose_emitters(*emitters: Emitter) -> Emitter:
    """
    Fan a lifecycle event out to several emitters. One failing emitter is
    logged and does not stop the others.
    """

    def _emit(event: LifecycleEvent) -> None:
        for e in emitters:
            try:
                e(event)
            except Exception:
                log.exception(
                    "lifecycle.emit_failed",
                    emitter=_emitter_name(e),
                    event_type=event.type,
                    run_id=event.run_id,
                )

    return _emit
