from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

import httpx
import pytest
from site_delivery.build import NullDeployer, make_stage_actions
from site_delivery.core import InvalidTransitionError, RunNotFoundError, SourceConfigurationError
from site_delivery.pipeline import (
    BUILD_OUTPUT,
    REPO_SOURCE,
    InMemoryArtifactStore,
    LifecycleEvent,
    PipelineStateMachine,
    RunStatus,
    RunStore,
    StageName,
    StageStatus,
)
from site_delivery.source import ChangeReference, GitHubSource

PIPELINE = "site-pipeline"


def _machine(
    provider: Any,
    runner: Any,
    *,
    events: list[LifecycleEvent] | None = None,
    store: RunStore | None = None,
    deployer: NullDeployer | None = None,
    emit: Any = None,
    artifacts: InMemoryArtifactStore | None = None,
) -> PipelineStateMachine:
    return PipelineStateMachine(
        pipeline_name=PIPELINE,
        provider=provider,
        actions=make_stage_actions(
            runner=runner,
            test_project="site-test",
            release_project="site-build",
            deployer=deployer or NullDeployer(),
        ),
        artifacts=artifacts or InMemoryArtifactStore(),
        emit=events.append if events is not None else emit,
        store=store,
    )


def _github_source() -> GitHubSource:
    client = httpx.Client(
        base_url="https://api.github.test",
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"commit": {"sha": "c0ffee1"}})
        ),
    )
    return GitHubSource(owner="acme", repository="site", branch="main", token="t", client=client)


def _stage_trace(events: list[LifecycleEvent]) -> list[str]:
    return [
        f"{e.stage_name.value}:{e.status}" if e.stage_name else f"run:{e.status}"
        for e in events
    ]


def test_run_parks_at_approval_then_deploys(codecommit_source, fake_runner) -> None:
    events: list[LifecycleEvent] = []
    deployer = NullDeployer()
    m = _machine(codecommit_source, fake_runner, events=events, deployer=deployer)

    run = m.start(codecommit_source.head_change())
    assert run.status is RunStatus.IN_PROGRESS
    assert run.awaiting_approval
    assert fake_runner.projects() == ["site-test", "site-build"]
    assert set(run.artifacts) == {REPO_SOURCE, BUILD_OUTPUT}
    assert deployer.deployed == []

    m.approve(run.run_id, reviewer="ana", summary="looks good")
    assert run.status is RunStatus.SUCCEEDED
    assert run.stage(StageName.DEPLOY).status is StageStatus.SUCCEEDED
    assert deployer.deployed[0]["commit"] == "c0ffee1"

    assert _stage_trace(events) == [
        "run:STARTED",
        "Source:RUNNING",
        "Source:SUCCEEDED",
        "Test:RUNNING",
        "Test:SUCCEEDED",
        "Build:RUNNING",
        "Build:SUCCEEDED",
        "Approval:PENDING",
        "run:RESUMED",
        "Approval:SUCCEEDED",
        "Deploy:RUNNING",
        "Deploy:SUCCEEDED",
        "run:SUCCEEDED",
    ]


def test_both_providers_produce_the_same_stage_sequence(codecommit_source, fake_runner) -> None:
    traces = []
    for provider in (codecommit_source, _github_source()):
        events: list[LifecycleEvent] = []
        m = _machine(provider, fake_runner, events=events)
        run = m.start(provider.head_change())
        m.approve(run.run_id)
        traces.append(_stage_trace(events))
    assert traces[0] == traces[1]


def test_stages_never_overlap_or_reorder(codecommit_source, fake_runner) -> None:
    m = _machine(codecommit_source, fake_runner)
    run = m.start(codecommit_source.head_change())
    m.approve(run.run_id)

    order = [StageName.SOURCE, StageName.TEST, StageName.BUILD, StageName.APPROVAL, StageName.DEPLOY]
    succeeded = [r.stage_name for r in run.stage_history if r.status is StageStatus.SUCCEEDED]
    assert succeeded == order

    running: StageName | None = None
    for rec in run.stage_history:
        if rec.status in (StageStatus.RUNNING, StageStatus.PENDING):
            assert running is None, f"{rec.stage_name} entered while {running} active"
            running = rec.stage_name
        elif rec.status is StageStatus.SUCCEEDED:
            assert running == rec.stage_name
            running = None


def test_failed_test_stage_halts_the_run(codecommit_source, runner_with) -> None:
    runner = runner_with(**{"site-test": "FAILED"})
    events: list[LifecycleEvent] = []
    m = _machine(codecommit_source, runner, events=events)

    run = m.start(codecommit_source.head_change())
    assert run.status is RunStatus.FAILED
    assert run.stage(StageName.TEST).status is StageStatus.FAILED
    assert run.stage(StageName.TEST).error is not None
    assert run.stage(StageName.BUILD).status is StageStatus.PENDING
    assert runner.projects() == ["site-test"]
    assert BUILD_OUTPUT not in run.artifacts
    assert events[-1].level == "run" and events[-1].status == "FAILED"
    assert events[-1].detail["failed_stage"] == "Test"
    assert "Test:FAILED" in _stage_trace(events)


def test_failed_build_never_reaches_approval(codecommit_source, runner_with) -> None:
    m = _machine(codecommit_source, runner_with(**{"site-build": "FAILED"}))
    run = m.start(codecommit_source.head_change())
    assert run.status is RunStatus.FAILED
    assert run.stage(StageName.APPROVAL).status is StageStatus.PENDING
    assert not run.awaiting_approval
    with pytest.raises(InvalidTransitionError):
        m.approve(run.run_id)


def test_reject_ends_run_without_deploy(codecommit_source, fake_runner) -> None:
    events: list[LifecycleEvent] = []
    deployer = NullDeployer()
    m = _machine(codecommit_source, fake_runner, events=events, deployer=deployer)
    run = m.start(codecommit_source.head_change())

    m.reject(run.run_id, reviewer="ana", summary="typo on homepage")
    assert run.status is RunStatus.REJECTED
    assert run.stage(StageName.APPROVAL).status is StageStatus.FAILED
    assert run.stage(StageName.DEPLOY).status is StageStatus.PENDING
    assert deployer.deployed == []
    assert events[-1].status == "FAILED"
    assert events[-1].detail["reason"] == "rejected"


def test_cancel_while_awaiting_approval(codecommit_source, fake_runner) -> None:
    deployer = NullDeployer()
    m = _machine(codecommit_source, fake_runner, deployer=deployer)
    run = m.start(codecommit_source.head_change())

    m.cancel(run.run_id, reason="release freeze")
    assert run.status is RunStatus.CANCELED
    with pytest.raises(InvalidTransitionError):
        m.approve(run.run_id)
    assert deployer.deployed == []

    # Cancelling a finished run changes nothing.
    assert m.cancel(run.run_id).status is RunStatus.CANCELED


def test_newer_run_supersedes_older_one_waiting_at_approval(codecommit_source, fake_runner) -> None:
    events: list[LifecycleEvent] = []
    m = _machine(codecommit_source, fake_runner, events=events)
    first = m.start(ChangeReference("site", "main", None, "aaa111"))
    second = m.start(ChangeReference("site", "main", "aaa111", "bbb222"))

    assert first.status is RunStatus.SUPERSEDED
    assert second.awaiting_approval
    superseded = [e for e in events if e.run_id == first.run_id and e.status == "SUPERSEDED"]
    assert superseded and superseded[0].detail["superseded_by"] == second.run_id


def test_unresolved_revision_creates_no_run(codecommit_source, fake_runner) -> None:
    events: list[LifecycleEvent] = []
    m = _machine(codecommit_source, fake_runner, events=events)
    with pytest.raises(SourceConfigurationError):
        m.start(ChangeReference("site", "main", None, ""))
    assert events == []
    assert m.runs() == []


def test_emitter_failure_does_not_break_the_run(codecommit_source, fake_runner) -> None:
    def broken(event: LifecycleEvent) -> None:
        raise RuntimeError("listener down")

    m = _machine(codecommit_source, fake_runner, emit=broken)
    run = m.start(codecommit_source.head_change())
    assert run.awaiting_approval


def test_runs_survive_restart_through_the_store(
    tmp_path: Path, codecommit_source, fake_runner
) -> None:
    store = RunStore(tmp_path / "_runs")
    run = _machine(codecommit_source, fake_runner, store=store).start(
        codecommit_source.head_change()
    )

    fresh = _machine(codecommit_source, fake_runner, store=store)
    loaded = fresh.get(run.run_id)
    assert loaded.awaiting_approval
    assert loaded.change == run.change
    assert [r.run_id for r in fresh.runs()] == [run.run_id]

    with pytest.raises(RunNotFoundError):
        fresh.get("nope")


class _ForgetfulStore(InMemoryArtifactStore):
    """Artifact store where a stored key can be lost, as with an expired bucket object."""

    def forget(self, key: str) -> None:
        self._blobs.pop(key, None)


class _UnwritableStore(InMemoryArtifactStore):
    def put(self, name: str, key: str, data: bytes) -> Any:
        raise OSError("artifact bucket unreachable")


class _UnreadableStore(InMemoryArtifactStore):
    def get(self, key: str) -> bytes:
        raise OSError("artifact bucket unreachable")


def test_deploy_never_runs_when_its_input_is_missing(codecommit_source, fake_runner) -> None:
    events: list[LifecycleEvent] = []
    deployer = NullDeployer()
    store = _ForgetfulStore()
    m = _machine(codecommit_source, fake_runner, events=events, deployer=deployer, artifacts=store)
    run = m.start(codecommit_source.head_change())
    store.forget(run.artifacts[BUILD_OUTPUT].key)

    m.approve(run.run_id)
    assert run.status is RunStatus.FAILED
    deploy = run.stage(StageName.DEPLOY)
    assert deploy.status is StageStatus.FAILED
    assert deploy.error is not None and deploy.error.exc_type == "InternalError"
    assert "Deploy:RUNNING" not in _stage_trace(events)
    assert deployer.deployed == []
    assert events[-1].status == "FAILED"
    assert events[-1].detail["failed_stage"] == "Deploy"


def test_artifact_store_write_failure_fails_the_run(codecommit_source, fake_runner) -> None:
    events: list[LifecycleEvent] = []
    m = _machine(codecommit_source, fake_runner, events=events, artifacts=_UnwritableStore())

    run = m.start(codecommit_source.head_change())
    assert run.status is RunStatus.FAILED
    assert run.stage(StageName.SOURCE).error.exc_type == "OSError"
    assert run.artifacts == {}
    assert fake_runner.projects() == []
    assert _stage_trace(events) == [
        "run:STARTED",
        "Source:RUNNING",
        "Source:FAILED",
        "run:FAILED",
    ]


def test_artifact_store_read_failure_fails_before_running(
    codecommit_source, fake_runner
) -> None:
    events: list[LifecycleEvent] = []
    m = _machine(codecommit_source, fake_runner, events=events, artifacts=_UnreadableStore())

    run = m.start(codecommit_source.head_change())
    assert run.status is RunStatus.FAILED
    assert run.stage(StageName.TEST).status is StageStatus.FAILED
    assert "Test:RUNNING" not in _stage_trace(events)
    assert fake_runner.projects() == []
    assert events[-1].detail["failed_stage"] == "Test"


class _HookedRunner:
    def __init__(self, inner: Any, hook: Any) -> None:
        self.inner = inner
        self.hook = hook

    def start(self, request: Any) -> str:
        return self.inner.start(request)

    def run_build(self, request: Any) -> Any:
        self.hook(request)
        return self.inner.run_build(request)


def test_gate_operations_are_not_blocked_by_a_running_build(
    codecommit_source, fake_runner
) -> None:
    armed: list[bool] = []
    finished: list[str] = []

    def cancel_from_another_thread(request: Any) -> None:
        if not armed or finished or request.project_name != "site-test":
            return
        t = threading.Thread(
            target=lambda: finished.append(m.cancel(waiting.run_id).status.value)
        )
        t.start()
        t.join(timeout=5)

    m = _machine(codecommit_source, _HookedRunner(fake_runner, cancel_from_another_thread))
    waiting = m.start(ChangeReference("site", "main", None, "aaa111"))
    armed.append(True)
    run = m.start(ChangeReference("site", "main", "aaa111", "bbb222"))

    assert finished == ["CANCELED"]
    assert waiting.status is RunStatus.CANCELED
    assert run.awaiting_approval


def test_runs_are_ordered_by_creation_time(codecommit_source, fake_runner) -> None:
    m = _machine(codecommit_source, fake_runner)
    a = m.start(ChangeReference("site", "main", None, "aaa111"))
    b = m.start(ChangeReference("site", "main", "aaa111", "bbb222"))
    assert [r.run_id for r in m.runs()] == [a.run_id, b.run_id]
    assert len(a.created_at_utc) == len(b.created_at_utc) == len("2026-10-19T10:00:00.000000Z")
