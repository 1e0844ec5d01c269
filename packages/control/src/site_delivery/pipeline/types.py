from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional

from site_delivery.core import StageError
from site_delivery.source import ChangeReference, ProviderKind


class StageName(StrEnum):
    SOURCE = "Source"
    TEST = "Test"
    BUILD = "Build"
    APPROVAL = "Approval"
    DEPLOY = "Deploy"


class StageStatus(StrEnum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class RunStatus(StrEnum):
    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    REJECTED = "REJECTED"
    CANCELED = "CANCELED"
    SUPERSEDED = "SUPERSEDED"

    @property
    def terminal(self) -> bool:
        return self is not RunStatus.IN_PROGRESS


class RunEvent(StrEnum):
    """Run-level lifecycle statuses as seen by event consumers."""

    STARTED = "STARTED"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    RESUMED = "RESUMED"
    CANCELED = "CANCELED"
    SUPERSEDED = "SUPERSEDED"


@dataclass(frozen=True, slots=True)
class ArtifactRef:
    """
    A reference to an artifact produced by a stage.
    """

    name: str
    key: str
    bytes: int
    sha256: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "key": self.key,
            "bytes": self.bytes,
            "sha256": self.sha256,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "ArtifactRef":
        return cls(
            name=str(d["name"]),
            key=str(d["key"]),
            bytes=int(d["bytes"]),
            sha256=str(d["sha256"]),
        )


@dataclass(frozen=True, slots=True)
class StageRecord:
    stage_name: StageName
    status: StageStatus
    timestamp: str
    note: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage_name": self.stage_name.value,
            "status": self.status.value,
            "timestamp": self.timestamp,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "StageRecord":
        return cls(
            stage_name=StageName(d["stage_name"]),
            status=StageStatus(d["status"]),
            timestamp=str(d["timestamp"]),
            note=d.get("note"),
        )


@dataclass(slots=True)
class StageResult:
    stage_name: StageName
    status: StageStatus = StageStatus.PENDING
    produced_artifact: Optional[ArtifactRef] = None
    started_at_utc: Optional[str] = None
    finished_at_utc: Optional[str] = None
    detail: dict[str, Any] = field(default_factory=dict)
    error: Optional[StageError] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage_name": self.stage_name.value,
            "status": self.status.value,
            "produced_artifact": (
                self.produced_artifact.to_dict() if self.produced_artifact else None
            ),
            "started_at_utc": self.started_at_utc,
            "finished_at_utc": self.finished_at_utc,
            "detail": dict(self.detail),
            "error": self.error.to_dict() if self.error else None,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "StageResult":
        art = d.get("produced_artifact")
        err = d.get("error")
        return cls(
            stage_name=StageName(d["stage_name"]),
            status=StageStatus(d["status"]),
            produced_artifact=ArtifactRef.from_dict(art) if art else None,
            started_at_utc=d.get("started_at_utc"),
            finished_at_utc=d.get("finished_at_utc"),
            detail=dict(d.get("detail") or {}),
            error=StageError(**err) if err else None,
        )


@dataclass(slots=True)
class PipelineRun:
    """
    One triggered execution. Mutated only by the state machine.
    """

    run_id: str
    pipeline_name: str
    provider_kind: ProviderKind
    change: ChangeReference
    created_at_utc: str
    status: RunStatus = RunStatus.IN_PROGRESS
    current_stage: Optional[StageName] = None
    stages: dict[StageName, StageResult] = field(default_factory=dict)
    stage_history: list[StageRecord] = field(default_factory=list)
    artifacts: dict[str, ArtifactRef] = field(default_factory=dict)
    finished_at_utc: Optional[str] = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def awaiting_approval(self) -> bool:
        approval = self.stages.get(StageName.APPROVAL)
        return (
            self.status is RunStatus.IN_PROGRESS
            and self.current_stage is StageName.APPROVAL
            and approval is not None
            and approval.status is StageStatus.PENDING
        )

    def stage(self, name: StageName) -> StageResult:
        return self.stages[name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "pipeline_name": self.pipeline_name,
            "provider_kind": self.provider_kind.value,
            "change": self.change.to_dict(),
            "created_at_utc": self.created_at_utc,
            "status": self.status.value,
            "current_stage": self.current_stage.value if self.current_stage else None,
            "stages": [s.to_dict() for s in self.stages.values()],
            "stage_history": [r.to_dict() for r in self.stage_history],
            "artifacts": {k: v.to_dict() for k, v in self.artifacts.items()},
            "finished_at_utc": self.finished_at_utc,
            "meta": dict(self.meta),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "PipelineRun":
        stages = [StageResult.from_dict(s) for s in d.get("stages") or []]
        current = d.get("current_stage")
        return cls(
            run_id=str(d["run_id"]),
            pipeline_name=str(d["pipeline_name"]),
            provider_kind=ProviderKind(d["provider_kind"]),
            change=ChangeReference.from_dict(d["change"]),
            created_at_utc=str(d["created_at_utc"]),
            status=RunStatus(d["status"]),
            current_stage=StageName(current) if current else None,
            stages={s.stage_name: s for s in stages},
            stage_history=[StageRecord.from_dict(r) for r in d.get("stage_history") or []],
            artifacts={
                k: ArtifactRef.from_dict(v) for k, v in (d.get("artifacts") or {}).items()
            },
            finished_at_utc=d.get("finished_at_utc"),
            meta=dict(d.get("meta") or {}),
        )


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    """
    Emitted on every transition. `stage_name` is None for run-level events.
    """

    run_id: str
    pipeline_name: str
    stage_name: Optional[StageName]
    status: str
    timestamp: str
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def level(self) -> str:
        return "run" if self.stage_name is None else "stage"

    @property
    def type(self) -> str:
        return f"{self.level}.{self.status.lower()}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "run_id": self.run_id,
            "pipeline_name": self.pipeline_name,
            "stage_name": self.stage_name.value if self.stage_name else None,
            "status": self.status,
            "timestamp": self.timestamp,
            "detail": dict(self.detail),
        }
