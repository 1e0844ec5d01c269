from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, Callable, Iterable

from jsonschema import Draft202012Validator

from .errors import ContractsError, EventValidationError, RulesValidationError
from .resources import (
    BUILD_STATE_CHANGE_SCHEMA_REL,
    PIPELINE_STATE_CHANGE_SCHEMA_REL,
    ROUTING_RULES_SCHEMA_REL,
    read_json,
)


@lru_cache(maxsize=None)
def validator(rel_path: str) -> Draft202012Validator:
    schema = read_json(rel_path)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def format_errors(errors: Iterable[Any]) -> str:
    lines: list[str] = []
    for e in errors:
        path = (
            ".".join(str(p) for p in e.path) if getattr(e, "path", None) else "<root>"
        )
        lines.append(f"- {path}: {e.message}")
    return "\n".join(lines)


def _validate(
    obj: Any, *, rel_path: str, label: str, error_cls: type[ContractsError]
) -> None:
    if not isinstance(obj, dict):
        raise error_cls(f"{label} must be a JSON object, got {type(obj).__name__}")
    v = validator(rel_path)
    errs = sorted(v.iter_errors(obj), key=lambda e: list(getattr(e, "path", [])))
    if errs:
        raise error_cls(f"{label} validation failed:\n" + format_errors(errs))


def validate_build_state_change(obj: Any) -> None:
    """
    Validate a build state change envelope.
    Raises EventValidationError with a readable message on failure.
    """
    _validate(
        obj,
        rel_path=BUILD_STATE_CHANGE_SCHEMA_REL,
        label="Build state change event",
        error_cls=EventValidationError,
    )


def validate_pipeline_state_change(obj: Any) -> None:
    _validate(
        obj,
        rel_path=PIPELINE_STATE_CHANGE_SCHEMA_REL,
        label="Pipeline state change event",
        error_cls=EventValidationError,
    )


def validate_rules_dict(obj: Any) -> None:
    _validate(
        obj,
        rel_path=ROUTING_RULES_SCHEMA_REL,
        label="Routing rules",
        error_cls=RulesValidationError,
    )


def _loads(
    raw: str | bytes, *, label: str, error_cls: type[ContractsError]
) -> dict[str, Any]:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError as e:
        raise error_cls(f"{label} is not valid JSON: {e}") from e
    if not isinstance(obj, dict):
        raise error_cls(f"{label} must be a JSON object, got {type(obj).__name__}")
    return obj


def _json_validator(
    check: Callable[[Any], None], *, label: str, error_cls: type[ContractsError]
) -> Callable[[str | bytes], dict[str, Any]]:
    def _run(raw: str | bytes) -> dict[str, Any]:
        obj = _loads(raw, label=label, error_cls=error_cls)
        check(obj)
        return obj

    return _run


validate_build_state_change_json = _json_validator(
    validate_build_state_change,
    label="Build state change event",
    error_cls=EventValidationError,
)
validate_rules_json = _json_validator(
    validate_rules_dict, label="Routing rules", error_cls=RulesValidationError
)
