from __future__ import annotations

import json
from importlib.resources import files
from typing import Any, Final

from .errors import ContractsResourceError

PKG: Final[str] = "site_delivery_contracts"

BUILD_STATE_CHANGE_SCHEMA_REL: Final[str] = (
    "schema/jsonschema/build_state_change.schema.json"
)
PIPELINE_STATE_CHANGE_SCHEMA_REL: Final[str] = (
    "schema/jsonschema/pipeline_state_change.schema.json"
)
ROUTING_RULES_SCHEMA_REL: Final[str] = "schema/jsonschema/routing_rules.schema.json"

SCHEMA_RESOURCE_PATHS: Final[tuple[str, ...]] = (
    BUILD_STATE_CHANGE_SCHEMA_REL,
    PIPELINE_STATE_CHANGE_SCHEMA_REL,
    ROUTING_RULES_SCHEMA_REL,
)


def traversable(rel_path: str):
    return files(PKG).joinpath(rel_path)


def read_text(rel_path: str) -> str:
    try:
        return traversable(rel_path).read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ContractsResourceError(f"Missing contracts resource: {rel_path}") from e
    except Exception as e:
        # pragma: no cover
        raise ContractsResourceError(
            f"Failed reading contracts resource: {rel_path}: {e}"
        ) from e


def read_json(rel_path: str) -> dict[str, Any]:
    raw = read_text(rel_path)
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ContractsResourceError(
            f"Invalid JSON in contracts resource: {rel_path}: {e}"
        ) from e
    if not isinstance(obj, dict):
        raise ContractsResourceError(
            f"Expected JSON object in {rel_path}, got {type(obj).__name__}"
        )
    return obj


def build_state_change_schema() -> dict[str, Any]:
    """
    JSON Schema for a "CodeBuild Build State Change" event envelope
    """
    return read_json(BUILD_STATE_CHANGE_SCHEMA_REL)


def pipeline_state_change_schema() -> dict[str, Any]:
    """
    JSON Schema for a "CodePipeline Pipeline Execution State Change" envelope
    """
    return read_json(PIPELINE_STATE_CHANGE_SCHEMA_REL)


def routing_rules_schema() -> dict[str, Any]:
    """
    JSON Schema for the declarative routing rule file
    """
    return read_json(ROUTING_RULES_SCHEMA_REL)
