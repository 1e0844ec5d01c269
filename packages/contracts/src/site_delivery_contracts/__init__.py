from __future__ import annotations

from .errors import (
    ContractsError,
    ContractsResourceError,
    EventValidationError,
    RulesValidationError,
)
from .resources import (
    BUILD_STATE_CHANGE_SCHEMA_REL,
    PIPELINE_STATE_CHANGE_SCHEMA_REL,
    ROUTING_RULES_SCHEMA_REL,
    SCHEMA_RESOURCE_PATHS,
    build_state_change_schema,
    pipeline_state_change_schema,
    read_json,
    read_text,
    routing_rules_schema,
)
from .validation import (
    validate_build_state_change,
    validate_build_state_change_json,
    validate_pipeline_state_change,
    validate_rules_dict,
    validate_rules_json,
)

__all__ = [
    "ContractsError",
    "ContractsResourceError",
    "EventValidationError",
    "RulesValidationError",
    "read_text",
    "read_json",
    "build_state_change_schema",
    "pipeline_state_change_schema",
    "routing_rules_schema",
    "BUILD_STATE_CHANGE_SCHEMA_REL",
    "PIPELINE_STATE_CHANGE_SCHEMA_REL",
    "ROUTING_RULES_SCHEMA_REL",
    "SCHEMA_RESOURCE_PATHS",
    "validate_build_state_change",
    "validate_build_state_change_json",
    "validate_pipeline_state_change",
    "validate_rules_dict",
    "validate_rules_json",
]
