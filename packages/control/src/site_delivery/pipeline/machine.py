from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from site_delivery.core import (
    ILogger,
    InternalError,
    InvalidTransitionError,
    RunNotFoundError,
    SourceConfigurationError,
    StageError,
    get_logger,
    stage_error_from_exc,
    utc_now_iso,
)
from site_delivery.source import ChangeReference, SourceProvider

from .artifacts import ArtifactStore, artifact_key
from .events import Emitter
from .stage import (
    DEFAULT_STAGES,
    REPO_SOURCE,
    StageAction,
    StageContext,
    StageOutcome,
    StageSpec,
    run_stage_action,
)
from .store import RunStore
from .types import (
    LifecycleEvent,
    PipelineRun,
    RunEvent,
    RunStatus,
    StageName,
    StageRecord,
    StageResult,
    StageStatus,
)

_FORCED_ORDER: tuple[StageName, ...] = (
    StageName.SOURCE,
    StageName.TEST,
    StageName.BUILD,
    StageName.APPROVAL,
    StageName.DEPLOY,
)


@dataclass(slots=True)
class StageActions:
    """
    Actions for the automated stages after Source. Source always comes from
    the provider, Approval from the operator.
    """

    test: StageAction
    build: StageAction
    deploy: StageAction


class PipelineStateMachine:
    """
    Sequences Source -> Test -> Build -> Approval -> Deploy for each run.

    The only side channel is `emit`; the machine knows nothing about who
    listens. The lock guards run state only; stage actions run outside it so
    a long build does not block gate operations on other runs.
    """

    def __init__(
        self,
        *,
        pipeline_name: str,
        provider: SourceProvider,
        actions: StageActions,
        artifacts: ArtifactStore,
        emit: Emitter | None = None,
        store: RunStore | None = None,
        stages: Sequence[StageSpec] = DEFAULT_STAGES,
        logger: ILogger | None = None,
    ) -> None:
        self.pipeline_name = pipeline_name
        self.provider = provider
        self.artifacts = artifacts
        self.store = store
        self.stages = list(stages)
        self.logger: ILogger = logger or get_logger("pipeline")
        self._emit_fn = emit
        self._runs: dict[str, PipelineRun] = {}
        self._lock = threading.RLock()

        names = tuple(s.name for s in self.stages)
        if names != _FORCED_ORDER:
            raise ValueError(f"Stage order must be {list(_FORCED_ORDER)}, got {list(names)}")
        if [s.name for s in self.stages if s.manual] != [StageName.APPROVAL]:
            raise ValueError("Exactly the Approval stage must be manual")

        self._actions: dict[StageName, StageAction] = {
            StageName.SOURCE: self._source_action,
            StageName.TEST: actions.test,
            StageName.BUILD: actions.build,
            StageName.DEPLOY: actions.deploy,
        }

    # Public surface

    def start(
        self,
        change: ChangeReference,
        *,
        run_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> PipelineRun:
        """
        Create a run for `change` and advance it until it parks at Approval or
        terminates.
        """
        if not change.after_commit:
            raise SourceConfigurationError(
                f"Unresolved source revision for {change.repository_id}@{change.branch_name}"
            )

        now = utc_now_iso()
        run = PipelineRun(
            run_id=run_id or uuid.uuid4().hex,
            pipeline_name=self.pipeline_name,
            provider_kind=self.provider.kind,
            change=change,
            created_at_utc=now,
            stages={s.name: StageResult(stage_name=s.name) for s in self.stages},
            meta=dict(meta or {}),
        )

        with self._lock:
            if run.run_id in self._runs:
                raise InvalidTransitionError(f"Run already exists: {run.run_id}")
            self._runs[run.run_id] = run
            self.logger.info(
                "Pipeline starting",
                run_id=run.run_id,
                provider=run.provider_kind.value,
                repository=change.repository_id,
                branch=change.branch_name,
                commit=change.after_commit,
            )
            self._save(run)
            self._emit(run, None, RunEvent.STARTED, commit=change.after_commit)
        self._advance(run)
        return run

    def approve(
        self,
        run_id: str,
        *,
        reviewer: str | None = None,
        summary: str | None = None,
    ) -> PipelineRun:
        with self._lock:
            run = self._waiting(run_id, "approve")
            approval = run.stage(StageName.APPROVAL)
            note = f"approved by {reviewer}" if reviewer else "approved"

            self._emit(run, None, RunEvent.RESUMED, reviewer=reviewer, summary=summary)
            approval.finished_at_utc = utc_now_iso()
            approval.detail.update({"reviewer": reviewer, "summary": summary})
            self._set_status(run, approval, StageStatus.SUCCEEDED, note=note)
        self._advance(run)
        return run

    def reject(
        self,
        run_id: str,
        *,
        reviewer: str | None = None,
        summary: str | None = None,
    ) -> PipelineRun:
        with self._lock:
            run = self._waiting(run_id, "reject")
            approval = run.stage(StageName.APPROVAL)
            note = f"rejected by {reviewer}" if reviewer else "rejected"

            approval.finished_at_utc = utc_now_iso()
            approval.detail.update({"reviewer": reviewer, "summary": summary})
            self._set_status(run, approval, StageStatus.FAILED, note=note)
            self._finish(
                run,
                RunStatus.REJECTED,
                RunEvent.FAILED,
                reason="rejected",
                reviewer=reviewer,
            )
            return run

    def cancel(self, run_id: str, *, reason: str | None = None) -> PipelineRun:
        """
        Mark a non-terminal run CANCELED. Nothing further executes for it.
        """
        with self._lock:
            run = self.get(run_id)
            if run.status.terminal:
                self.logger.info(
                    "Cancel ignored for finished run",
                    run_id=run_id,
                    status=run.status.value,
                )
                return run
            self._finish(run, RunStatus.CANCELED, RunEvent.CANCELED, reason=reason)
            return run

    def get(self, run_id: str) -> PipelineRun:
        with self._lock:
            run = self._runs.get(run_id)
            if run is not None:
                return run
            if self.store is None:
                raise RunNotFoundError(f"Unknown run: {run_id}")
            run = self.store.load(run_id)
            self._runs[run_id] = run
            return run

    def runs(self) -> list[PipelineRun]:
        with self._lock:
            if self.store is not None:
                for rid in self.store.run_ids():
                    if rid not in self._runs:
                        self._runs[rid] = self.store.load(rid)
            return sorted(self._runs.values(), key=lambda r: r.created_at_utc)

    # Transitions

    def _advance(self, run: PipelineRun) -> None:
        for spec in self.stages:
            with self._lock:
                if run.status.terminal:
                    return
                if run.stage(spec.name).status is StageStatus.SUCCEEDED:
                    continue
                if spec.manual:
                    self._park_for_approval(run, spec)
                    return
            if not self._execute(run, spec):
                with self._lock:
                    if not run.status.terminal:
                        self._finish(
                            run, RunStatus.FAILED, RunEvent.FAILED, failed_stage=spec.name.value
                        )
                return

        with self._lock:
            if not run.status.terminal:
                self._finish(run, RunStatus.SUCCEEDED, RunEvent.SUCCEEDED)

    def _check_can_enter(self, run: PipelineRun, spec: StageSpec) -> None:
        idx = self.stages.index(spec)
        if idx > 0:
            prev = run.stage(self.stages[idx - 1].name)
            if prev.status is not StageStatus.SUCCEEDED:
                raise InternalError(
                    f"{spec.name} cannot start: {prev.stage_name} is {prev.status}"
                )
        for name in spec.inputs:
            ref = run.artifacts.get(name)
            if ref is None or not self.artifacts.exists(ref.key):
                raise InternalError(f"{spec.name} cannot start: missing input {name}")

    def _execute(self, run: PipelineRun, spec: StageSpec) -> bool:
        """
        Run one automated stage. Returns False when the stage did not succeed;
        every failure, including a broken guard or artifact store, is recorded
        as a FAILED stage rather than raised.
        """
        result = run.stage(spec.name)
        log = self.logger.bind(run_id=run.run_id, stage=spec.name.value)

        try:
            self._check_can_enter(run, spec)
            inputs = {name: self.artifacts.get(run.artifacts[name].key) for name in spec.inputs}
        except Exception as e:
            log.error("Stage cannot start", error=str(e), exc_type=type(e).__name__)
            with self._lock:
                if not run.status.terminal:
                    run.current_stage = spec.name
                    self._fail_stage(run, result, stage_error_from_exc(e))
            return False

        with self._lock:
            if run.status.terminal:
                return False
            run.current_stage = spec.name
            result.started_at_utc = utc_now_iso()
            self._set_status(run, result, StageStatus.RUNNING)

        ctx = StageContext(
            run_id=run.run_id,
            pipeline_name=run.pipeline_name,
            stage=spec.name,
            change=run.change,
            inputs=inputs,
            logger=log,
        )
        outcome, err = run_stage_action(ctx=ctx, spec=spec, action=self._actions[spec.name])

        refs = []
        if err is None:
            try:
                for name in spec.outputs:
                    data = outcome.artifacts[name]
                    refs.append(self.artifacts.put(name, artifact_key(run.run_id, name), data))
            except Exception as e:
                log.error("Stage outputs not stored", error=str(e), exc_type=type(e).__name__)
                err = stage_error_from_exc(e)

        with self._lock:
            result.finished_at_utc = utc_now_iso()
            result.detail.update(outcome.detail)
            if run.status.terminal:
                log.warning("Stage result dropped", run_status=run.status.value)
                return False
            if err is not None:
                self._fail_stage(run, result, err)
                return False

            # Outputs become visible to later stages only once the stage succeeded.
            for ref in refs:
                run.artifacts[ref.name] = ref
                result.produced_artifact = ref
            self._set_status(run, result, StageStatus.SUCCEEDED)
            return True

    def _fail_stage(self, run: PipelineRun, result: StageResult, err: StageError) -> None:
        result.error = err
        result.finished_at_utc = result.finished_at_utc or utc_now_iso()
        self._set_status(run, result, StageStatus.FAILED, note=err.message)

    def _park_for_approval(self, run: PipelineRun, spec: StageSpec) -> None:
        self._check_can_enter(run, spec)
        run.current_stage = spec.name
        result = run.stage(spec.name)
        result.started_at_utc = utc_now_iso()
        self._set_status(run, result, StageStatus.PENDING, note="awaiting approval")
        self.logger.info("Awaiting approval", run_id=run.run_id)
        self._supersede_older(run)

    def _supersede_older(self, newer: PipelineRun) -> None:
        for other in self.runs():
            if other.run_id == newer.run_id or other.pipeline_name != newer.pipeline_name:
                continue
            if other.awaiting_approval and other.created_at_utc <= newer.created_at_utc:
                self._finish(
                    other,
                    RunStatus.SUPERSEDED,
                    RunEvent.SUPERSEDED,
                    superseded_by=newer.run_id,
                )

    def _finish(
        self, run: PipelineRun, status: RunStatus, event: RunEvent, **detail: Any
    ) -> None:
        run.status = status
        run.finished_at_utc = utc_now_iso()
        self.logger.info(
            "Run Complete",
            run_id=run.run_id,
            status=status.value,
            stage=run.current_stage.value if run.current_stage else None,
        )
        self._save(run)
        self._emit(run, None, event, **detail)

    def _waiting(self, run_id: str, op: str) -> PipelineRun:
        run = self.get(run_id)
        if not run.awaiting_approval:
            raise InvalidTransitionError(
                f"Cannot {op} run {run_id}: status={run.status.value} "
                f"stage={run.current_stage.value if run.current_stage else None}"
            )
        return run

    # Bookkeeping

    def _set_status(
        self,
        run: PipelineRun,
        result: StageResult,
        status: StageStatus,
        *,
        note: Optional[str] = None,
    ) -> None:
        result.status = status
        rec = StageRecord(
            stage_name=result.stage_name,
            status=status,
            timestamp=utc_now_iso(),
            note=note,
        )
        run.stage_history.append(rec)
        self._save(run)
        detail: dict[str, Any] = {"note": note} if note else {}
        if result.produced_artifact is not None and status is StageStatus.SUCCEEDED:
            detail["artifact"] = result.produced_artifact.name
        self._emit(run, result.stage_name, status, timestamp=rec.timestamp, **detail)

    def _save(self, run: PipelineRun) -> None:
        if self.store is not None:
            self.store.save(run)

    def _emit(
        self,
        run: PipelineRun,
        stage: Optional[StageName],
        status: StageStatus | RunEvent,
        *,
        timestamp: str | None = None,
        **detail: Any,
    ) -> None:
        if self._emit_fn is None:
            return
        ev = LifecycleEvent(
            run_id=run.run_id,
            pipeline_name=run.pipeline_name,
            stage_name=stage,
            status=status.value,
            timestamp=timestamp or utc_now_iso(),
            detail={k: v for k, v in detail.items() if v is not None},
        )
        try:
            self._emit_fn(ev)
        except Exception:
            self.logger.exception("lifecycle.emit_failed", run_id=run.run_id, event_type=ev.type)

    def _source_action(self, ctx: StageContext) -> StageOutcome:
        return StageOutcome(
            artifacts={REPO_SOURCE: self.provider.snapshot(ctx.change)},
            detail={"action": self.provider.source_action().redacted()},
        )
