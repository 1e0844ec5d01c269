from __future__ import annotations

from typing import Any, Mapping

import structlog
from site_delivery.source import SourceProvider

from .runner import ArtifactsMode, BuildRequest, BuildRunner

log = structlog.get_logger(__name__)


class ChangeRequestValidator:
    """
    Start the validation build for change-request lifecycle signals.

    The completion of that build is reported back by the feedback service;
    the environment overrides set here are what it reads.
    """

    def __init__(
        self, *, provider: SourceProvider, runner: BuildRunner, project: str
    ) -> None:
        self.provider = provider
        self.runner = runner
        self.project = project

    def handle(self, raw: Mapping[str, Any]) -> str | None:
        trigger = self.provider.trigger_from_change_request(raw)
        if trigger is None:
            return None

        build_id = self.runner.start(
            BuildRequest(
                project_name=self.project,
                source_version=trigger.source_commit,
                artifacts_mode=ArtifactsMode.NO_ARTIFACTS,
                environment=trigger.environment(),
            )
        )
        log.info(
            "validation.started",
            signal=trigger.signal.value,
            pull_request=trigger.change.change_request_id,
            repository=trigger.change.repository_id,
            build_id=build_id,
        )
        return build_id
