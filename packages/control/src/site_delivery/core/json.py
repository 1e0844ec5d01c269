import json
from pathlib import Path
from typing import Any

from .errors import MalformedEventError
from .fs import atomic_write_text


def stable_json_dumps(obj: Any, *, indent: int | None = 2) -> str:
    """
    Key-sorted JSON. Compact separators when `indent` is None, so artifact
    descriptors hash the same across runs.
    """
    if indent is None:
        return json.dumps(obj, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return json.dumps(obj, sort_keys=True, ensure_ascii=False, indent=indent)


def json_line(obj: Any) -> str:
    """One journal record: no embedded newlines, insertion order kept."""
    return json.dumps(obj, ensure_ascii=False, default=str)


def atomic_write_json(path: Path, obj: Any) -> None:
    atomic_write_text(path, stable_json_dumps(obj) + "\n")


def read_json(path: Path) -> dict[str, Any]:
    with Path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


def parse_json_object(raw: str | bytes, *, label: str = "event") -> dict[str, Any]:
    """
    Decode an inbound payload that must be a JSON object.
    """
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedEventError(f"{label} is not valid JSON: {e}") from e
    if not isinstance(obj, dict):
        raise MalformedEventError(f"{label} must be a JSON object, got {type(obj).__name__}")
    return obj
