from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class ProviderKind(StrEnum):
    CODECOMMIT = "codecommit"
    GITHUB = "github"


class ChangeRequestSignal(StrEnum):
    CREATED = "created"
    SOURCE_BRANCH_UPDATED = "source-branch-updated"
    REOPENED = "reopened"


@dataclass(frozen=True, slots=True)
class ChangeReference:
    """
    The unit of work flowing through the pipeline.

    For change requests `before_commit` is the request's source commit and
    `after_commit` its destination commit; the verdict comment anchors on that
    pair.
    """

    repository_id: str
    branch_name: str
    before_commit: str | None
    after_commit: str
    change_request_id: str | None = None

    @property
    def commit_range(self) -> str:
        return f"{self.before_commit or ''}..{self.after_commit}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "repository_id": self.repository_id,
            "branch_name": self.branch_name,
            "before_commit": self.before_commit,
            "after_commit": self.after_commit,
            "change_request_id": self.change_request_id,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "ChangeReference":
        return cls(
            repository_id=str(d["repository_id"]),
            branch_name=str(d["branch_name"]),
            before_commit=d.get("before_commit"),
            after_commit=str(d["after_commit"]),
            change_request_id=d.get("change_request_id"),
        )


@dataclass(frozen=True, slots=True)
class ChangeRequestTrigger:
    """
    Webhook-style trigger for the change-request validation build.
    """

    change: ChangeReference
    signal: ChangeRequestSignal
    source_commit: str
    destination_commit: str

    def environment(self) -> dict[str, str]:
        # Echoed back verbatim in the build completion event.
        return {
            "pullRequestId": str(self.change.change_request_id),
            "repositoryName": self.change.repository_id,
            "sourceCommit": self.source_commit,
            "destinationCommit": self.destination_commit,
        }


@dataclass(frozen=True, slots=True)
class SourceAction:
    """
    Identity of the Source stage's action provider.
    """

    owner: str
    provider: str
    configuration: dict[str, str] = field(default_factory=dict)
    secret_keys: tuple[str, ...] = ()

    def redacted(self) -> dict[str, str]:
        return {
            k: ("****" if k in self.secret_keys else v)
            for k, v in self.configuration.items()
        }
