from __future__ import annotations

import threading
from typing import Any, Protocol, runtime_checkable

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError
from site_delivery.core import DeliveryFailure
from site_delivery.core.http import github_client, raise_for_status

from .models import VerdictComment


@runtime_checkable
class ChangeRequestSink(Protocol):
    """
    Accepts a verdict for a change request. Returns the provider's comment id
    when it reports one. Raises DeliveryFailure when the post is rejected.
    """

    def post(self, comment: VerdictComment) -> str | None: ...


class CodeCommitCommentSink:
    def __init__(self, *, client: Any = None, region: str | None = None) -> None:
        self.client = client or boto3.client("codecommit", region_name=region)

    def post(self, comment: VerdictComment) -> str | None:
        try:
            resp = self.client.post_comment_for_pull_request(
                pullRequestId=comment.change_request_id,
                repositoryName=comment.repository_name,
                beforeCommitId=comment.before_commit_id,
                afterCommitId=comment.after_commit_id,
                content=comment.rendered_text,
            )
        except (ClientError, BotoCoreError) as e:
            raise DeliveryFailure(
                f"Comment rejected for PR {comment.change_request_id} "
                f"of {comment.repository_name}: {e}"
            ) from e
        return (resp.get("comment") or {}).get("commentId")


class GitHubCommentSink:
    """
    Hosted providers have no before/after anchoring for conversation comments,
    so the commit range is written into the body.
    """

    def __init__(
        self,
        *,
        token: str,
        client: httpx.Client | None = None,
        api_url: str = "https://api.github.com",
    ) -> None:
        self.client = client or github_client(api_url, token)

    def post(self, comment: VerdictComment) -> str | None:
        body = (
            f"{comment.rendered_text}\n\n"
            f"<sub>{comment.before_commit_id}..{comment.after_commit_id}</sub>"
        )
        path = f"/repos/{comment.repository_name}/issues/{comment.change_request_id}/comments"
        try:
            resp = self.client.post(path, json={"body": body})
        except httpx.HTTPError as e:
            raise DeliveryFailure(f"Comment post failed for {path}: {e}") from e
        raise_for_status(resp)
        cid = resp.json().get("id")
        return str(cid) if cid is not None else None


class RecordingSink:
    """Keeps posted comments in memory. Used for dry runs and tests."""

    def __init__(self, *, fail_with: Exception | None = None) -> None:
        self.comments: list[VerdictComment] = []
        self.fail_with = fail_with
        self._lock = threading.Lock()

    def post(self, comment: VerdictComment) -> str | None:
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.comments.append(comment)
            return str(len(self.comments))
