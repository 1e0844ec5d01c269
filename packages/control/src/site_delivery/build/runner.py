from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable, Protocol, runtime_checkable

import boto3
import structlog
from site_delivery.core import StageFailure
from tenacity import RetryError, Retrying, retry_if_result, stop_after_delay, wait_fixed

log = structlog.get_logger(__name__)

IN_PROGRESS = "IN_PROGRESS"


class ArtifactsMode(StrEnum):
    NO_ARTIFACTS = "NO_ARTIFACTS"
    PIPELINE = "PIPELINE"


@dataclass(frozen=True, slots=True)
class BuildRequest:
    project_name: str
    source_version: str
    artifacts_mode: ArtifactsMode = ArtifactsMode.NO_ARTIFACTS
    environment: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class BuildOutcome:
    build_id: str
    status: str
    phases: tuple[str, ...] = ()
    log_link: str | None = None
    artifact_location: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "SUCCEEDED"


class BuildTimeout(StageFailure):
    """Build did not leave IN_PROGRESS within the configured time"""


@runtime_checkable
class BuildRunner(Protocol):
    def start(self, request: BuildRequest) -> str: ...

    def run_build(self, request: BuildRequest) -> BuildOutcome: ...


def _env_overrides(env: dict[str, str]) -> list[dict[str, str]]:
    return [
        {"name": k, "value": str(v), "type": "PLAINTEXT"} for k, v in sorted(env.items())
    ]


def _outcome_from_build(build: dict[str, Any]) -> BuildOutcome:
    phases = tuple(
        str(p["phaseStatus"]) for p in build.get("phases") or [] if p.get("phaseStatus")
    )
    logs = build.get("logs") or {}
    artifacts = build.get("artifacts") or {}
    return BuildOutcome(
        build_id=str(build["id"]),
        status=str(build.get("buildStatus") or IN_PROGRESS),
        phases=phases,
        log_link=logs.get("deepLink"),
        artifact_location=artifacts.get("location") or None,
    )


class CodeBuildRunner:
    """
    Start builds on the managed build service and wait for completion.
    """

    def __init__(
        self,
        *,
        client: Any = None,
        region: str | None = None,
        poll_seconds: float = 10.0,
        timeout_seconds: float = 3600.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client or boto3.client("codebuild", region_name=region)
        self.poll_seconds = float(poll_seconds)
        self.timeout_seconds = float(timeout_seconds)
        self._sleep = sleep

    def start(self, request: BuildRequest) -> str:
        kwargs: dict[str, Any] = {
            "projectName": request.project_name,
            "sourceVersion": request.source_version,
        }
        if request.environment:
            kwargs["environmentVariablesOverride"] = _env_overrides(request.environment)
        if request.artifacts_mode is ArtifactsMode.NO_ARTIFACTS:
            kwargs["artifactsOverride"] = {"type": "NO_ARTIFACTS"}

        resp = self.client.start_build(**kwargs)
        build_id = str(resp["build"]["id"])
        log.info(
            "build.started",
            project=request.project_name,
            build_id=build_id,
            source_version=request.source_version,
        )
        return build_id

    def poll(self, build_id: str) -> BuildOutcome:
        resp = self.client.batch_get_builds(ids=[build_id])
        builds = resp.get("builds") or []
        if not builds:
            raise StageFailure(f"Build {build_id} not found")
        return _outcome_from_build(builds[0])

    def wait(self, build_id: str) -> BuildOutcome:
        retrying = Retrying(
            retry=retry_if_result(lambda o: o.status == IN_PROGRESS),
            wait=wait_fixed(self.poll_seconds),
            stop=stop_after_delay(self.timeout_seconds),
            sleep=self._sleep,
        )
        try:
            outcome = retrying(self.poll, build_id)
        except RetryError as e:
            raise BuildTimeout(
                f"Build {build_id} still running after {self.timeout_seconds:.0f}s"
            ) from e
        log.info(
            "build.finished",
            build_id=build_id,
            status=outcome.status,
            phases=list(outcome.phases),
        )
        return outcome

    def run_build(self, request: BuildRequest) -> BuildOutcome:
        return self.wait(self.start(request))
