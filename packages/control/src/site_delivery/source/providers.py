from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import InitVar, dataclass, field
from typing import Any, Mapping, Protocol, runtime_checkable

import boto3
import httpx
import structlog
from botocore.exceptions import BotoCoreError, ClientError
from site_delivery.core import (
    MalformedEventError,
    Settings,
    SourceConfigurationError,
    stable_json_dumps,
)
from site_delivery.core.http import github_client

from .models import (
    ChangeReference,
    ChangeRequestSignal,
    ChangeRequestTrigger,
    ProviderKind,
    SourceAction,
)

log = structlog.get_logger(__name__)

_CODECOMMIT_REPO_EVENT = "CodeCommit Repository State Change"
_CODECOMMIT_PR_EVENT = "CodeCommit Pull Request State Change"

_GITHUB_PR_ACTIONS: dict[str, ChangeRequestSignal] = {
    "opened": ChangeRequestSignal.CREATED,
    "synchronize": ChangeRequestSignal.SOURCE_BRANCH_UPDATED,
    "reopened": ChangeRequestSignal.REOPENED,
}


@runtime_checkable
class SourceProvider(Protocol):
    """
    The one place provider differences live. Selected once per pipeline.
    """

    kind: ProviderKind
    branch: str

    @property
    def repository_id(self) -> str: ...

    def source_action(self) -> SourceAction: ...

    def resolve_branch(self) -> str: ...

    def head_change(self) -> ChangeReference: ...

    def change_from_push(self, raw: Mapping[str, Any]) -> ChangeReference | None: ...

    def trigger_from_change_request(
        self, raw: Mapping[str, Any]
    ) -> ChangeRequestTrigger | None: ...

    def snapshot(self, change: ChangeReference) -> bytes: ...


def _require(d: Mapping[str, Any], key: str, *, where: str) -> Any:
    v = d.get(key)
    if v is None or v == "":
        raise MalformedEventError(f"{where}: missing {key!r}")
    return v


def _strip_heads(ref: str) -> str:
    return ref[len("refs/heads/") :] if ref.startswith("refs/heads/") else ref


class _SourceBase(ABC):
    kind: ProviderKind
    branch: str

    @property
    @abstractmethod
    def repository_id(self) -> str: ...

    @abstractmethod
    def resolve_branch(self) -> str: ...

    def head_change(self) -> ChangeReference:
        """
        ChangeReference for the current head of the tracked branch.
        Raises SourceConfigurationError if the branch cannot be resolved.
        """
        commit = self.resolve_branch()
        return ChangeReference(
            repository_id=self.repository_id,
            branch_name=self.branch,
            before_commit=None,
            after_commit=commit,
        )

    def snapshot(self, change: ChangeReference) -> bytes:
        """
        The RepoSource artifact: a revision descriptor. Build projects fetch
        sources themselves from `sourceVersion`.
        """
        doc = {
            "provider": self.kind.value,
            "repository": change.repository_id,
            "branch": change.branch_name,
            "commit": change.after_commit,
            "previous_commit": change.before_commit,
        }
        return (stable_json_dumps(doc, indent=None) + "\n").encode("utf-8")


@dataclass(slots=True)
class CodeCommitSource(_SourceBase):
    """
    Self-hosted managed repository. No external credential.
    """

    repository_name: str
    branch: str
    client: Any = None
    region: str | None = None
    kind: ProviderKind = field(default=ProviderKind.CODECOMMIT, init=False)

    def __post_init__(self) -> None:
        if not self.repository_name:
            raise SourceConfigurationError("codecommit source requires repository_name")
        if not self.branch:
            raise SourceConfigurationError("codecommit source requires branch")
        if self.client is None:
            self.client = boto3.client("codecommit", region_name=self.region)

    @property
    def repository_id(self) -> str:
        return self.repository_name

    def source_action(self) -> SourceAction:
        return SourceAction(
            owner="AWS",
            provider="CodeCommit",
            configuration={
                "RepositoryName": self.repository_name,
                "BranchName": self.branch,
            },
        )

    def resolve_branch(self) -> str:
        try:
            resp = self.client.get_branch(
                repositoryName=self.repository_name, branchName=self.branch
            )
        except (ClientError, BotoCoreError) as e:
            raise SourceConfigurationError(
                f"Cannot resolve branch {self.branch!r} of {self.repository_name!r}: {e}"
            ) from e
        commit = (resp.get("branch") or {}).get("commitId")
        if not commit:
            raise SourceConfigurationError(
                f"Branch {self.branch!r} of {self.repository_name!r} has no commit"
            )
        return str(commit)

    def change_from_push(self, raw: Mapping[str, Any]) -> ChangeReference | None:
        if raw.get("detail-type") != _CODECOMMIT_REPO_EVENT:
            return None
        detail = raw.get("detail") or {}
        if detail.get("event") not in ("referenceCreated", "referenceUpdated"):
            return None
        if detail.get("referenceType") != "branch":
            return None
        if detail.get("referenceName") != self.branch:
            return None
        if detail.get("repositoryName") != self.repository_name:
            return None

        return ChangeReference(
            repository_id=self.repository_name,
            branch_name=self.branch,
            before_commit=detail.get("oldCommitId"),
            after_commit=str(_require(detail, "commitId", where=_CODECOMMIT_REPO_EVENT)),
        )

    def trigger_from_change_request(
        self, raw: Mapping[str, Any]
    ) -> ChangeRequestTrigger | None:
        if raw.get("detail-type") != _CODECOMMIT_PR_EVENT:
            return None
        detail = raw.get("detail") or {}
        event = detail.get("event")
        if event == "pullRequestCreated":
            signal = ChangeRequestSignal.CREATED
        elif event == "pullRequestSourceBranchUpdated":
            signal = ChangeRequestSignal.SOURCE_BRANCH_UPDATED
        elif (
            event == "pullRequestStatusChanged"
            and str(detail.get("pullRequestStatus", "")).lower() == "open"
        ):
            signal = ChangeRequestSignal.REOPENED
        else:
            return None

        repos = detail.get("repositoryNames") or []
        if self.repository_name not in repos:
            return None

        source_commit = str(_require(detail, "sourceCommit", where=_CODECOMMIT_PR_EVENT))
        destination_commit = str(
            _require(detail, "destinationCommit", where=_CODECOMMIT_PR_EVENT)
        )
        pr_id = str(_require(detail, "pullRequestId", where=_CODECOMMIT_PR_EVENT))
        dest_ref = _strip_heads(str(detail.get("destinationReference") or self.branch))

        return ChangeRequestTrigger(
            change=ChangeReference(
                repository_id=self.repository_name,
                branch_name=dest_ref,
                before_commit=source_commit,
                after_commit=destination_commit,
                change_request_id=pr_id,
            ),
            signal=signal,
            source_commit=source_commit,
            destination_commit=destination_commit,
        )


@dataclass(slots=True)
class GitHubSource(_SourceBase):
    """
    Hosted provider. Requires an access token.
    """

    owner: str
    repository: str
    branch: str
    token: str | None
    client: InitVar[httpx.Client | None] = None
    api_url: str = "https://api.github.com"
    kind: ProviderKind = field(default=ProviderKind.GITHUB, init=False)
    http: httpx.Client = field(init=False, repr=False)

    def __post_init__(self, client: httpx.Client | None) -> None:
        if not self.token:
            raise SourceConfigurationError(
                "github source requires an access token (SITE_DELIVERY_GITHUB_TOKEN)"
            )
        if not self.owner or not self.repository:
            raise SourceConfigurationError("github source requires owner and repository")
        if not self.branch:
            raise SourceConfigurationError("github source requires branch")
        self.http = client if client is not None else github_client(self.api_url, self.token)

    @property
    def repository_id(self) -> str:
        return f"{self.owner}/{self.repository}"

    def source_action(self) -> SourceAction:
        return SourceAction(
            owner="ThirdParty",
            provider="GitHub",
            configuration={
                "Owner": self.owner,
                "Repo": self.repository,
                "Branch": self.branch,
                "OAuthToken": str(self.token),
            },
            secret_keys=("OAuthToken",),
        )

    def resolve_branch(self) -> str:
        path = f"/repos/{self.owner}/{self.repository}/branches/{self.branch}"
        try:
            resp = self.http.get(path)
        except httpx.HTTPError as e:
            raise SourceConfigurationError(
                f"Cannot reach source provider for {self.repository_id}: {e}"
            ) from e
        if resp.status_code != 200:
            raise SourceConfigurationError(
                f"Cannot resolve branch {self.branch!r} of {self.repository_id}: "
                f"HTTP {resp.status_code}"
            )
        try:
            return str(resp.json()["commit"]["sha"])
        except (KeyError, TypeError, json.JSONDecodeError) as e:
            raise SourceConfigurationError(
                f"Unexpected branch payload for {self.repository_id}"
            ) from e

    def _is_our_repo(self, raw: Mapping[str, Any]) -> bool:
        repo = raw.get("repository") or {}
        return repo.get("full_name") == self.repository_id

    def change_from_push(self, raw: Mapping[str, Any]) -> ChangeReference | None:
        ref = raw.get("ref")
        if not isinstance(ref, str) or ref != f"refs/heads/{self.branch}":
            return None
        if raw.get("deleted") or not self._is_our_repo(raw):
            return None
        return ChangeReference(
            repository_id=self.repository_id,
            branch_name=self.branch,
            before_commit=raw.get("before"),
            after_commit=str(_require(raw, "after", where="github push")),
        )

    def trigger_from_change_request(
        self, raw: Mapping[str, Any]
    ) -> ChangeRequestTrigger | None:
        signal = _GITHUB_PR_ACTIONS.get(str(raw.get("action")))
        pr = raw.get("pull_request")
        if signal is None or not isinstance(pr, Mapping) or not self._is_our_repo(raw):
            return None

        head = pr.get("head") or {}
        base = pr.get("base") or {}
        source_commit = str(_require(head, "sha", where="github pull_request.head"))
        destination_commit = str(_require(base, "sha", where="github pull_request.base"))
        number = _require(pr, "number", where="github pull_request")

        return ChangeRequestTrigger(
            change=ChangeReference(
                repository_id=self.repository_id,
                branch_name=str(base.get("ref") or self.branch),
                before_commit=source_commit,
                after_commit=destination_commit,
                change_request_id=str(number),
            ),
            signal=signal,
            source_commit=source_commit,
            destination_commit=destination_commit,
        )


def make_source_provider(
    settings: Settings,
    *,
    codecommit_client: Any = None,
    http_client: httpx.Client | None = None,
) -> SourceProvider:
    """
    Build the configured provider. Configuration errors surface here, before
    any run exists.
    """
    if settings.source_provider == ProviderKind.CODECOMMIT.value:
        provider: SourceProvider = CodeCommitSource(
            repository_name=settings.repository_name,
            branch=settings.branch,
            client=codecommit_client,
            region=settings.region,
        )
    elif settings.source_provider == ProviderKind.GITHUB.value:
        token = (
            settings.github_token.get_secret_value() if settings.github_token else None
        )
        provider = GitHubSource(
            owner=settings.github_owner or "",
            repository=settings.github_repo or settings.repository_name,
            branch=settings.branch,
            token=token,
            client=http_client,
            api_url=settings.github_api_url,
        )
    else:
        raise SourceConfigurationError(
            f"Unknown source provider: {settings.source_provider!r}"
        )

    log.debug(
        "source.provider",
        kind=provider.kind.value,
        action=provider.source_action().redacted(),
    )
    return provider
