from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from site_delivery.core import ILogger, StageError, monotonic_ms, stage_error_from_exc
from site_delivery.source import ChangeReference

from .types import StageName

REPO_SOURCE = "RepoSource"
BUILD_OUTPUT = "BuildOutput"


def format_duration_ms(ms: int) -> str:
    """Return a short human-readable duration string."""
    if ms < 1000:
        return f"{ms} ms"
    return f"{ms / 1000:.2f} s"


@dataclass(frozen=True, slots=True)
class StageSpec:
    """
    Declared contract of a stage: the artifacts it consumes and produces.
    """

    name: StageName
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    manual: bool = False


DEFAULT_STAGES: tuple[StageSpec, ...] = (
    StageSpec(StageName.SOURCE, inputs=(), outputs=(REPO_SOURCE,)),
    StageSpec(StageName.TEST, inputs=(REPO_SOURCE,)),
    StageSpec(StageName.BUILD, inputs=(REPO_SOURCE,), outputs=(BUILD_OUTPUT,)),
    StageSpec(StageName.APPROVAL, manual=True),
    StageSpec(StageName.DEPLOY, inputs=(BUILD_OUTPUT,)),
)


@dataclass(frozen=True, slots=True)
class StageContext:
    """
    What a stage action sees: the change, its declared inputs, a logger.
    """

    run_id: str
    pipeline_name: str
    stage: StageName
    change: ChangeReference
    inputs: dict[str, bytes]
    logger: ILogger


@dataclass(slots=True)
class StageOutcome:
    artifacts: dict[str, bytes] = field(default_factory=dict)
    detail: dict[str, Any] = field(default_factory=dict)


StageAction = Callable[[StageContext], Optional[StageOutcome]]


def run_stage_action(
    *,
    ctx: StageContext,
    spec: StageSpec,
    action: StageAction,
) -> tuple[StageOutcome, Optional[StageError]]:
    """
    Invoke a stage action, absorbing its exceptions into a StageError.

    A successful action must produce every artifact the stage declares.
    """
    log = ctx.logger
    t0 = monotonic_ms()
    log.info("Stage starting", inputs=sorted(ctx.inputs))

    try:
        out = action(ctx) or StageOutcome()
        if not isinstance(out, StageOutcome):
            raise TypeError(
                f"Stage {spec.name} returned {type(out).__name__}, expected StageOutcome or None"
            )
        missing = [name for name in spec.outputs if name not in out.artifacts]
        if missing:
            raise ValueError(f"Stage {spec.name} did not produce {missing}")

        duration = monotonic_ms() - t0
        log.info(
            "Stage succeeded",
            duration_ms=duration,
            duration=format_duration_ms(duration),
            artifacts=sorted(out.artifacts),
        )
        return out, None

    except Exception as e:
        err = stage_error_from_exc(e)
        duration = monotonic_ms() - t0
        log.error(
            "Stage failed",
            duration_ms=duration,
            duration=format_duration_ms(duration),
            error=str(e),
            exc_type=type(e).__name__,
        )
        return StageOutcome(), err
