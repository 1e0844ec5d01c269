from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from site_delivery import cli
from site_delivery.app import ControlPlane, build_control_plane
from site_delivery.build import NullDeployer
from site_delivery.core import Settings
from site_delivery.feedback import RecordingSink
from site_delivery.handlers import classify, handle_event
from site_delivery.pipeline import RunStatus


class RecordingTransport:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    def send(self, address: str, subject: str, text: str) -> None:
        self.sent.append((address, subject, text))


@pytest.fixture
def plane(tmp_path: Path, codecommit_source, fake_runner) -> ControlPlane:
    settings = Settings(
        _env_file=None,
        pipeline_name="site-pipeline",
        account_id="123456789012",
        data_root=tmp_path / "data",
        run_root=tmp_path / "_runs",
        subscribers=["ops@example.com"],
    )
    return build_control_plane(
        settings,
        provider=codecommit_source,
        runner=fake_runner,
        deployer=NullDeployer(),
        sink=RecordingSink(),
        transport=RecordingTransport(),
    )


def _push(commit: str | None = "bbb222") -> dict[str, Any]:
    return {
        "detail-type": "CodeCommit Repository State Change",
        "detail": {
            "event": "referenceUpdated",
            "repositoryName": "site",
            "referenceType": "branch",
            "referenceName": "main",
            "oldCommitId": "aaa111",
            "commitId": commit,
        },
    }


def test_classify_inbound_events(build_event) -> None:
    assert classify(_push()) == "push"
    assert classify({"detail-type": "CodeCommit Pull Request State Change"}) == "change_request"
    assert classify(build_event()) == "route"
    assert classify({"ref": "refs/heads/main", "after": "b2"}) == "push"
    assert classify({"action": "opened", "pull_request": {}}) == "change_request"
    assert classify({"hello": "world"}) == "unknown"


def test_push_starts_a_run_and_notifies(plane: ControlPlane) -> None:
    out = handle_event(_push(), plane=plane)
    assert out["action"] == "started"

    run = plane.machine.get(out["run_id"])
    assert run.awaiting_approval
    assert plane.store.journal_path(run.run_id).is_file()

    transport = plane.channel.transport
    assert len(transport.sent) == 1
    address, _, text = transport.sent[0]
    assert address == "ops@example.com"
    assert text.startswith("The pipeline site-pipeline in account 123456789012 has STARTED at ")

    plane.machine.approve(run.run_id)
    assert run.status is RunStatus.SUCCEEDED
    assert "has SUCCEEDED at" in transport.sent[-1][2]


def test_build_completion_posts_pull_request_comment(plane: ControlPlane, build_event) -> None:
    out = handle_event(build_event(), plane=plane)
    assert out == {"kind": "route", "action": "dispatched", "delivered": ["pr-feedback"], "failed": {}}
    [comment] = plane.feedback.sink.comments
    assert comment.change_request_id == "42"
    assert "s3-eu-west-1" in comment.rendered_text


def test_release_build_completion_is_not_commented(plane: ControlPlane, build_event) -> None:
    out = handle_event(build_event(project="site-build"), plane=plane)
    assert out["delivered"] == []
    assert plane.feedback.sink.comments == []


def test_pull_request_starts_validation_build(plane: ControlPlane, fake_runner) -> None:
    raw = {
        "detail-type": "CodeCommit Pull Request State Change",
        "detail": {
            "event": "pullRequestSourceBranchUpdated",
            "pullRequestId": "42",
            "repositoryNames": ["site"],
            "sourceCommit": "abc123",
            "destinationCommit": "def456",
        },
    }
    out = handle_event(raw, plane=plane)
    assert out["action"] == "validation_started"
    assert fake_runner.requests[-1].project_name == "site-pull-request"


def test_malformed_and_unknown_events_do_not_raise(plane: ControlPlane) -> None:
    assert handle_event(_push(commit=None), plane=plane)["action"] == "rejected"
    assert handle_event({"hello": "world"}, plane=plane)["action"] == "ignored"
    assert plane.machine.runs() == []


def test_cli_start_status_and_approve(
    plane: ControlPlane, monkeypatch: pytest.MonkeyPatch, tmp_path: Path, build_event
) -> None:
    monkeypatch.setattr(cli, "load_settings", lambda: plane.settings)
    monkeypatch.setattr(cli, "build_control_plane", lambda s, logger=None: plane)

    assert cli.main(["start", "--commit", "bbb222", "--before", "aaa111"]) == 0
    [run] = plane.machine.runs()
    assert run.awaiting_approval

    assert cli.main(["status"]) == 0
    assert cli.main(["status", run.run_id]) == 0
    assert cli.main(["approve", run.run_id, "--reviewer", "ana"]) == 0
    assert run.status is RunStatus.SUCCEEDED

    assert cli.main(["approve", "no-such-run"]) == 2

    event_path = tmp_path / "event.json"
    event_path.write_text(json.dumps(build_event()))
    assert cli.main(["feedback", str(event_path), "--dry-run"]) == 0
    assert plane.feedback.sink.comments == []
    assert cli.main(["route", str(event_path)]) == 0
    assert len(plane.feedback.sink.comments) == 1
