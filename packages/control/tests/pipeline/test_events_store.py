from __future__ import annotations

from pathlib import Path

import pytest
from site_delivery.pipeline import (
    InMemoryArtifactStore,
    JsonlEventSink,
    LifecycleEvent,
    LocalArtifactStore,
    RunJournal,
    StageName,
    artifact_key,
    compose_emitters,
)


def _event(run_id: str = "r1", status: str = "STARTED") -> LifecycleEvent:
    return LifecycleEvent(
        run_id=run_id,
        pipeline_name="site-pipeline",
        stage_name=None,
        status=status,
        timestamp="2026-10-19T10:00:00Z",
    )


def test_lifecycle_event_type_and_level() -> None:
    run_ev = _event()
    stage_ev = LifecycleEvent("r1", "site-pipeline", StageName.BUILD, "RUNNING", "t")
    assert (run_ev.level, run_ev.type) == ("run", "run.started")
    assert (stage_ev.level, stage_ev.type) == ("stage", "stage.running")
    assert stage_ev.to_dict()["stage_name"] == "Build"


def test_journal_writes_header_then_events(tmp_path: Path) -> None:
    sink = JsonlEventSink(tmp_path / "events.jsonl")
    sink(_event())
    sink(_event(status="SUCCEEDED"))

    lines = sink.read()
    assert lines[0]["type"] == "journal.env"
    assert [x["type"] for x in lines[1:]] == ["run.started", "run.succeeded"]


def test_run_journal_splits_by_run(tmp_path: Path) -> None:
    journal = RunJournal(lambda rid: tmp_path / rid / "events.jsonl")
    journal(_event("a"))
    journal(_event("b"))
    journal(_event("a", "FAILED"))
    assert len(JsonlEventSink(tmp_path / "a" / "events.jsonl").read()) == 3
    assert len(JsonlEventSink(tmp_path / "b" / "events.jsonl").read()) == 2


def test_compose_emitters_isolates_failures() -> None:
    seen: list[str] = []

    def broken(event: LifecycleEvent) -> None:
        raise RuntimeError("boom")

    emit = compose_emitters(broken, lambda e: seen.append(e.type))
    emit(_event())
    assert seen == ["run.started"]


@pytest.mark.parametrize("kind", ["memory", "local"])
def test_artifact_stores(tmp_path: Path, kind: str) -> None:
    store = InMemoryArtifactStore() if kind == "memory" else LocalArtifactStore(tmp_path)
    key = artifact_key("r1", "BuildOutput")
    assert not store.exists(key)

    ref = store.put("BuildOutput", key, b"payload")
    assert store.exists(key)
    assert store.get(key) == b"payload"
    assert ref.bytes == 7
    assert len(ref.sha256) == 64

    with pytest.raises(FileNotFoundError):
        store.get(artifact_key("r1", "Missing"))
