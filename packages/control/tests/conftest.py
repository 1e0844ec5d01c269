from __future__ import annotations

from typing import Any, Callable

import pytest
from site_delivery.build import BuildOutcome, BuildRequest
from site_delivery.source import CodeCommitSource


class FakeCodeCommit:
    def __init__(self, head: str = "c0ffee1") -> None:
        self.head = head
        self.comments: list[dict[str, Any]] = []

    def get_branch(self, *, repositoryName: str, branchName: str) -> dict[str, Any]:
        return {"branch": {"branchName": branchName, "commitId": self.head}}

    def post_comment_for_pull_request(self, **kwargs: Any) -> dict[str, Any]:
        self.comments.append(kwargs)
        return {"comment": {"commentId": f"comment-{len(self.comments)}"}}


class FakeRunner:
    """Build runner answering from a per-project status table."""

    def __init__(self, statuses: dict[str, str] | None = None) -> None:
        self.statuses = dict(statuses or {})
        self.requests: list[BuildRequest] = []

    def start(self, request: BuildRequest) -> str:
        self.requests.append(request)
        return f"{request.project_name}:{len(self.requests)}"

    def run_build(self, request: BuildRequest) -> BuildOutcome:
        build_id = self.start(request)
        status = self.statuses.get(request.project_name, "SUCCEEDED")
        return BuildOutcome(
            build_id=build_id,
            status=status,
            phases=("SUCCEEDED",) if status == "SUCCEEDED" else ("SUCCEEDED", "FAILED"),
            log_link=f"https://logs.example/{build_id}",
            artifact_location=f"arn:aws:s3:::artifacts/{build_id}.zip",
        )

    def projects(self) -> list[str]:
        return [r.project_name for r in self.requests]


@pytest.fixture
def fake_codecommit() -> FakeCodeCommit:
    return FakeCodeCommit()


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def codecommit_source(fake_codecommit: FakeCodeCommit) -> CodeCommitSource:
    return CodeCommitSource(repository_name="site", branch="main", client=fake_codecommit)


@pytest.fixture
def build_event() -> Callable[..., dict[str, Any]]:
    """Factory for build state change envelopes."""

    def _make(
        *,
        project: str = "site-pull-request",
        status: str = "SUCCEEDED",
        region: str = "eu-west-1",
        phases: list[str | None] | None = None,
        env: dict[str, str] | None = None,
        log_link: str | None = "https://console.example/logs/1",
    ) -> dict[str, Any]:
        if phases is None:
            phases = ["SUCCEEDED", "SUCCEEDED", None]
        if env is None:
            env = {
                "pullRequestId": "42",
                "repositoryName": "site",
                "sourceCommit": "abc123",
                "destinationCommit": "def456",
            }
        info: dict[str, Any] = {
            "phases": [
                {"phase-type": f"PHASE_{i}", **({"phase-status": p} if p else {})}
                for i, p in enumerate(phases)
            ],
            "environment": {
                "environment-variables": [
                    {"name": k, "value": v, "type": "PLAINTEXT"} for k, v in env.items()
                ]
            },
        }
        if log_link is not None:
            info["logs"] = {"deep-link": log_link}
        return {
            "version": "0",
            "detail-type": "CodeBuild Build State Change",
            "source": "aws.codebuild",
            "account": "123456789012",
            "time": "2026-10-19T10:00:00Z",
            "region": region,
            "detail": {
                "build-status": status,
                "project-name": project,
                "build-id": f"arn:aws:codebuild:{region}:123456789012:build/{project}:1",
                "additional-information": info,
            },
        }

    return _make


@pytest.fixture
def runner_with() -> Callable[..., FakeRunner]:
    """FakeRunner with per-project final statuses, e.g. runner_with(**{"site-test": "FAILED"})."""

    def _make(**statuses: str) -> FakeRunner:
        return FakeRunner(statuses)

    return _make
