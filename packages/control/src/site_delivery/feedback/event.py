from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from site_delivery.core import MalformedEventError
from site_delivery_contracts import EventValidationError, validate_build_state_change

PULL_REQUEST_ID = "pullRequestId"
REPOSITORY_NAME = "repositoryName"
SOURCE_COMMIT = "sourceCommit"
DESTINATION_COMMIT = "destinationCommit"

REQUIRED_ENVIRONMENT: tuple[str, ...] = (
    PULL_REQUEST_ID,
    REPOSITORY_NAME,
    SOURCE_COMMIT,
    DESTINATION_COMMIT,
)

COMPLETED_BUILD_STATUSES = frozenset({"SUCCEEDED", "FAILED"})


@dataclass(frozen=True, slots=True)
class BuildCompletionEvent:
    """
    Facts read from a build state change envelope. Owned by the build
    subsystem; only read here.
    """

    project_name: str
    build_status: str
    region: str
    log_link: str | None = None
    phases: tuple[str, ...] = ()
    environment_variables: dict[str, str] = field(default_factory=dict)
    build_id: str | None = None

    @property
    def completed(self) -> bool:
        return self.build_status in COMPLETED_BUILD_STATUSES

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> "BuildCompletionEvent":
        try:
            validate_build_state_change(dict(raw))
        except EventValidationError as e:
            raise MalformedEventError(str(e)) from e

        detail = raw["detail"]
        info = detail.get("additional-information") or {}
        env_list = (info.get("environment") or {}).get("environment-variables") or []

        env: dict[str, str] = {}
        for item in env_list:
            value = item.get("value")
            if value is not None:
                env[str(item["name"])] = str(value)

        # The final COMPLETED phase carries no status.
        phases = tuple(
            str(p["phase-status"]) for p in info.get("phases") or [] if p.get("phase-status")
        )

        return cls(
            project_name=str(detail["project-name"]),
            build_status=str(detail["build-status"]),
            region=str(raw["region"]),
            log_link=(info.get("logs") or {}).get("deep-link"),
            phases=phases,
            environment_variables=env,
            build_id=detail.get("build-id"),
        )


@dataclass(frozen=True, slots=True)
class ChangeRequestContext:
    pull_request_id: str
    repository_name: str
    before_commit_id: str
    after_commit_id: str


def missing_environment(event: BuildCompletionEvent) -> list[str]:
    env = event.environment_variables
    return [k for k in REQUIRED_ENVIRONMENT if not env.get(k)]


def change_request_context(event: BuildCompletionEvent) -> ChangeRequestContext | None:
    """
    None unless all four identifiers are present; identifiers are never guessed.
    """
    if missing_environment(event):
        return None
    env = event.environment_variables
    return ChangeRequestContext(
        pull_request_id=env[PULL_REQUEST_ID],
        repository_name=env[REPOSITORY_NAME],
        before_commit_id=env[SOURCE_COMMIT],
        after_commit_id=env[DESTINATION_COMMIT],
    )
