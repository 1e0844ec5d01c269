from __future__ import annotations

from typing import Any

import pytest
from site_delivery.build import ArtifactsMode, BuildRequest, BuildTimeout, CodeBuildRunner


class FakeCodeBuild:
    def __init__(self, statuses: list[str]) -> None:
        self.statuses = list(statuses)
        self.started: list[dict[str, Any]] = []
        self.polls = 0

    def start_build(self, **kwargs: Any) -> dict[str, Any]:
        self.started.append(kwargs)
        return {"build": {"id": "site-build:1", "buildStatus": "IN_PROGRESS"}}

    def batch_get_builds(self, *, ids: list[str]) -> dict[str, Any]:
        status = self.statuses[min(self.polls, len(self.statuses) - 1)]
        self.polls += 1
        return {
            "builds": [
                {
                    "id": ids[0],
                    "buildStatus": status,
                    "phases": [
                        {"phaseType": "INSTALL", "phaseStatus": "SUCCEEDED"},
                        {"phaseType": "COMPLETED"},
                    ],
                    "logs": {"deepLink": "https://logs.example/1"},
                    "artifacts": {"location": "arn:aws:s3:::artifacts/site.zip"},
                }
            ]
        }


def _runner(client: FakeCodeBuild, *, timeout: float = 60.0) -> CodeBuildRunner:
    sleeps: list[float] = []
    return CodeBuildRunner(
        client=client, poll_seconds=5.0, timeout_seconds=timeout, sleep=sleeps.append
    )


def test_start_passes_environment_and_artifact_mode() -> None:
    client = FakeCodeBuild(["SUCCEEDED"])
    _runner(client).start(
        BuildRequest(
            project_name="site-pull-request",
            source_version="abc123",
            artifacts_mode=ArtifactsMode.NO_ARTIFACTS,
            environment={"pullRequestId": "42"},
        )
    )
    kwargs = client.started[0]
    assert kwargs["sourceVersion"] == "abc123"
    assert kwargs["artifactsOverride"] == {"type": "NO_ARTIFACTS"}
    assert kwargs["environmentVariablesOverride"] == [
        {"name": "pullRequestId", "value": "42", "type": "PLAINTEXT"}
    ]


def test_pipeline_mode_keeps_project_artifacts() -> None:
    client = FakeCodeBuild(["SUCCEEDED"])
    _runner(client).start(
        BuildRequest("site-build", "abc123", artifacts_mode=ArtifactsMode.PIPELINE)
    )
    assert "artifactsOverride" not in client.started[0]


def test_run_build_polls_until_done() -> None:
    client = FakeCodeBuild(["IN_PROGRESS", "IN_PROGRESS", "SUCCEEDED"])
    outcome = _runner(client).run_build(BuildRequest("site-build", "abc123"))
    assert outcome.succeeded
    assert client.polls == 3
    assert outcome.phases == ("SUCCEEDED",)
    assert outcome.log_link == "https://logs.example/1"
    assert outcome.artifact_location == "arn:aws:s3:::artifacts/site.zip"


def test_run_build_times_out() -> None:
    client = FakeCodeBuild(["IN_PROGRESS"])
    with pytest.raises(BuildTimeout):
        _runner(client, timeout=0.0).run_build(BuildRequest("site-build", "abc123"))
