from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from site_delivery.core import MalformedEventError
from site_delivery.pipeline import LifecycleEvent
from site_delivery_contracts import EventValidationError, validate_pipeline_state_change

BUILD_STATE_CHANGE = "CodeBuild Build State Change"
PIPELINE_STATE_CHANGE = "CodePipeline Pipeline Execution State Change"


class Category(StrEnum):
    PIPELINE = "pipelineLifecycle"
    BUILD = "buildLifecycle"


@dataclass(frozen=True, slots=True)
class RoutedEvent:
    """
    The envelope every event is reduced to before dispatch.

    `subject` is the pipeline name or the build project name.
    """

    category: Category
    status: str
    subject: Optional[str] = None
    run_id: Optional[str] = None
    level: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_lifecycle(cls, ev: LifecycleEvent, *, account: str) -> "RoutedEvent":
        return cls(
            category=Category.PIPELINE,
            status=ev.status,
            subject=ev.pipeline_name,
            run_id=ev.run_id,
            level=ev.level,
            payload={
                "pipeline": ev.pipeline_name,
                "account": account,
                "state": ev.status,
                "time": ev.timestamp,
                "run_id": ev.run_id,
                "stage": ev.stage_name.value if ev.stage_name else None,
                "detail": dict(ev.detail),
            },
        )

    @classmethod
    def from_build_state_change(cls, raw: Mapping[str, Any]) -> "RoutedEvent":
        detail = raw.get("detail")
        if not isinstance(detail, Mapping):
            raise MalformedEventError("build state change without detail")
        project = detail.get("project-name")
        status = detail.get("build-status")
        if not project or not status:
            raise MalformedEventError("build state change without project-name/build-status")
        return cls(
            category=Category.BUILD,
            status=str(status),
            subject=str(project),
            payload=dict(raw),
        )

    @classmethod
    def from_pipeline_state_change(cls, raw: Mapping[str, Any]) -> "RoutedEvent":
        try:
            validate_pipeline_state_change(dict(raw))
        except EventValidationError as e:
            raise MalformedEventError(str(e)) from e
        detail = raw["detail"]
        return cls(
            category=Category.PIPELINE,
            status=str(detail["state"]),
            subject=str(detail["pipeline"]),
            run_id=str(detail["execution-id"]),
            level="run",
            payload={
                "pipeline": detail["pipeline"],
                "account": raw.get("account", "unknown"),
                "state": detail["state"],
                "time": raw.get("time"),
                "run_id": detail["execution-id"],
                "stage": None,
                "detail": {},
            },
        )


def routed_event_from_raw(raw: Mapping[str, Any]) -> RoutedEvent | None:
    """
    Recognise build and pipeline envelopes by detail-type; None otherwise.
    """
    kind = raw.get("detail-type")
    if kind == BUILD_STATE_CHANGE:
        return RoutedEvent.from_build_state_change(raw)
    if kind == PIPELINE_STATE_CHANGE:
        return RoutedEvent.from_pipeline_state_change(raw)
    return None


class EventPattern(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    category: Category
    statuses: frozenset[str] = Field(..., min_length=1)
    subject: Optional[str] = None
    level: Optional[Literal["run", "stage"]] = None

    @field_validator("statuses")
    @classmethod
    def _upper(cls, v: frozenset[str]) -> frozenset[str]:
        return frozenset(s.upper() for s in v)

    def matches(self, event: RoutedEvent) -> bool:
        if event.category is not self.category:
            return False
        if event.status.upper() not in self.statuses:
            return False
        if self.level is not None and event.level != self.level:
            return False
        if self.subject is not None and self.subject not in (event.subject, event.run_id):
            return False
        return True


class RoutingRule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    pattern: EventPattern
    targets: tuple[str, ...] = Field(..., min_length=1)


class RuleSet(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    rules: tuple[RoutingRule, ...] = ()

    @model_validator(mode="after")
    def _unique_names(self) -> "RuleSet":
        names = [r.name for r in self.rules]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Duplicate rule name(s): {dupes}")
        return self

    def target_names(self) -> set[str]:
        return {t for r in self.rules for t in r.targets}

    def match(self, event: RoutedEvent) -> list[str]:
        """
        Targets of every matching rule, each once, in rule order.
        """
        out: list[str] = []
        for rule in self.rules:
            if rule.pattern.matches(event):
                out.extend(t for t in rule.targets if t not in out)
        return out
