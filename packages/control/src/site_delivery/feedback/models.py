from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Optional


@dataclass(frozen=True, slots=True)
class VerdictComment:
    """
    Write-once per delivery attempt; handed straight to the change-request
    service and not kept.
    """

    change_request_id: str
    repository_name: str
    before_commit_id: str
    after_commit_id: str
    rendered_text: str


class FeedbackStatus(StrEnum):
    POSTED = "posted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class FeedbackResult:
    status: FeedbackStatus
    comment: Optional[VerdictComment] = None
    reason: Optional[str] = None
    comment_id: Optional[str] = None
