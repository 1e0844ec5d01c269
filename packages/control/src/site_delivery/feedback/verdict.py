from __future__ import annotations

from enum import StrEnum
from typing import Iterable

FAILED_PHASE_STATUSES = frozenset({"FAILED", "FAULT", "TIMED_OUT"})

BADGE_URL = (
    "https://{prefix}.amazonaws.com/"
    "codefactory-{region}-prod-default-build-badges/{badge}.svg"
)


class Verdict(StrEnum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def badge(self) -> str:
        return "passing" if self is Verdict.SUCCEEDED else "failing"

    @property
    def label(self) -> str:
        return "Passing" if self is Verdict.SUCCEEDED else "Failing"


def compute_verdict(phases: Iterable[str], build_status: str | None = None) -> Verdict:
    """
    FAILED if any phase failed, otherwise SUCCEEDED.

    Every phase is inspected; a late failure after earlier successes still
    fails. With no phase statuses at all, the overall build status decides.
    """
    seen = False
    failed = False
    for status in phases:
        seen = True
        if str(status).upper() in FAILED_PHASE_STATUSES:
            failed = True
    if failed:
        return Verdict.FAILED
    if not seen and build_status is not None and build_status.upper() != "SUCCEEDED":
        return Verdict.FAILED
    return Verdict.SUCCEEDED


def badge_prefix(region: str) -> str:
    # us-east-1 badges live under the bare endpoint.
    if region == "us-east-1":
        return "s3"
    return f"s3-{region}"


def badge_url(region: str, verdict: Verdict) -> str:
    return BADGE_URL.format(prefix=badge_prefix(region), region=region, badge=verdict.badge)


def render_verdict(verdict: Verdict, *, region: str, log_link: str | None) -> str:
    text = f"![{verdict.label}]({badge_url(region, verdict)})"
    if log_link:
        text += f" - See the [Logs]({log_link})"
    return text
