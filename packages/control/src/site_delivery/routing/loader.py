from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import ValidationError
from site_delivery.core import RoutingConfigError, read_json
from site_delivery_contracts import RulesValidationError, validate_rules_dict

from .models import Category, EventPattern, RoutingRule, RuleSet

NOTIFICATIONS = "notifications"
PR_FEEDBACK = "pr-feedback"

NOTIFIABLE_PIPELINE_STATES: tuple[str, ...] = (
    "FAILED",
    "STARTED",
    "SUCCEEDED",
    "RESUMED",
    "CANCELED",
    "SUPERSEDED",
)


def rules_from_dict(obj: dict[str, Any]) -> RuleSet:
    """
    Validate a rule document against the shipped schema, then model it.
    """
    try:
        validate_rules_dict(obj)
        return RuleSet.model_validate(obj)
    except (RulesValidationError, ValidationError) as e:
        raise RoutingConfigError(str(e)) from e


def load_rules(path: Path) -> RuleSet:
    path = Path(path)
    if not path.is_file():
        raise RoutingConfigError(f"Rules file not found: {path}")
    return rules_from_dict(read_json(path))


def default_rules(*, pipeline_name: str, validation_project: str) -> RuleSet:
    return RuleSet(
        rules=(
            RoutingRule(
                name="pipeline-notifications",
                description="Run-level pipeline state changes to human subscribers",
                pattern=EventPattern(
                    category=Category.PIPELINE,
                    statuses=frozenset(NOTIFIABLE_PIPELINE_STATES),
                    subject=pipeline_name,
                    level="run",
                ),
                targets=(NOTIFICATIONS,),
            ),
            RoutingRule(
                name="pull-request-feedback",
                description="Validation build results back to the change request",
                pattern=EventPattern(
                    category=Category.BUILD,
                    statuses=frozenset({"SUCCEEDED", "FAILED"}),
                    subject=validation_project,
                ),
                targets=(PR_FEEDBACK,),
            ),
        )
    )
