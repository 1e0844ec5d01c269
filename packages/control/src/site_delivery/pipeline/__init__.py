from .artifacts import (
    ArtifactStore,
    InMemoryArtifactStore,
    LocalArtifactStore,
    S3ArtifactStore,
    artifact_key,
)
from .events import Emitter, JsonlEventSink, RunJournal, compose_emitters
from .machine import PipelineStateMachine, StageActions
from .stage import (
    BUILD_OUTPUT,
    DEFAULT_STAGES,
    REPO_SOURCE,
    StageAction,
    StageContext,
    StageOutcome,
    StageSpec,
    format_duration_ms,
)
from .store import RunStore
from .types import (
    ArtifactRef,
    LifecycleEvent,
    PipelineRun,
    RunEvent,
    RunStatus,
    StageName,
    StageRecord,
    StageResult,
    StageStatus,
)

__all__ = [
    "ArtifactStore",
    "InMemoryArtifactStore",
    "LocalArtifactStore",
    "S3ArtifactStore",
    "artifact_key",
    "Emitter",
    "JsonlEventSink",
    "RunJournal",
    "compose_emitters",
    "PipelineStateMachine",
    "StageActions",
    "BUILD_OUTPUT",
    "DEFAULT_STAGES",
    "REPO_SOURCE",
    "StageAction",
    "StageContext",
    "StageOutcome",
    "StageSpec",
    "format_duration_ms",
    "RunStore",
    "ArtifactRef",
    "LifecycleEvent",
    "PipelineRun",
    "RunEvent",
    "RunStatus",
    "StageName",
    "StageRecord",
    "StageResult",
    "StageStatus",
]
