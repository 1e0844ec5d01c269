from __future__ import annotations

from typing import Any, Callable, Mapping

from site_delivery.core import ILogger, MalformedEventError, get_logger

from .event import (
    BuildCompletionEvent,
    ChangeRequestContext,
    change_request_context,
    missing_environment,
)
from .models import FeedbackResult, FeedbackStatus, VerdictComment
from .sinks import ChangeRequestSink
from .verdict import compute_verdict, render_verdict

Reporter = Callable[[str], Any]


def compose_comment(
    event: BuildCompletionEvent, ctx: ChangeRequestContext
) -> VerdictComment:
    verdict = compute_verdict(event.phases, event.build_status)
    return VerdictComment(
        change_request_id=ctx.pull_request_id,
        repository_name=ctx.repository_name,
        before_commit_id=ctx.before_commit_id,
        after_commit_id=ctx.after_commit_id,
        rendered_text=render_verdict(verdict, region=event.region, log_link=event.log_link),
    )


class BuildResultFeedbackService:
    """
    Posts a pass/fail verdict on the change request a validation build ran for.

    Events arrive at-least-once and unordered. Nothing is deduplicated: each
    delivery of a well-formed event posts one comment, and identical input
    renders identical text. `handle` never raises.
    """

    def __init__(
        self,
        *,
        sink: ChangeRequestSink,
        validation_project: str,
        report: Reporter | None = None,
        logger: ILogger | None = None,
    ) -> None:
        if not validation_project:
            raise ValueError("validation_project is required")
        self.sink = sink
        self.validation_project = validation_project
        self.report = report
        self.logger: ILogger = logger or get_logger("feedback")

    def handle(self, event: Mapping[str, Any] | BuildCompletionEvent) -> FeedbackResult:
        try:
            parsed = (
                event
                if isinstance(event, BuildCompletionEvent)
                else BuildCompletionEvent.from_raw(event)
            )
        except MalformedEventError as e:
            self.logger.warning("feedback.malformed_event", error=str(e))
            return FeedbackResult(FeedbackStatus.SKIPPED, reason="malformed event")

        log = self.logger.bind(project=parsed.project_name, build_id=parsed.build_id)

        # Release builds share the event stream; only validation builds get a verdict.
        if parsed.project_name != self.validation_project:
            log.debug("feedback.other_project")
            return FeedbackResult(FeedbackStatus.SKIPPED, reason="not the validation project")
        if not parsed.completed:
            log.debug("feedback.not_completed", build_status=parsed.build_status)
            return FeedbackResult(FeedbackStatus.SKIPPED, reason="build not completed")

        ctx = change_request_context(parsed)
        if ctx is None:
            missing = missing_environment(parsed)
            log.warning("feedback.missing_environment", missing=missing)
            return FeedbackResult(
                FeedbackStatus.SKIPPED, reason=f"missing {', '.join(missing)}"
            )

        comment = compose_comment(parsed, ctx)
        log = log.bind(
            pull_request=ctx.pull_request_id,
            repository=ctx.repository_name,
            commits=f"{ctx.before_commit_id}..{ctx.after_commit_id}",
        )

        try:
            comment_id = self.sink.post(comment)
        except Exception as e:
            log.error("feedback.post_failed", error=str(e), exc_type=type(e).__name__)
            self._report(
                f"Could not post build verdict on PR {ctx.pull_request_id} of "
                f"{ctx.repository_name} ({ctx.before_commit_id}..{ctx.after_commit_id}): {e}"
            )
            return FeedbackResult(FeedbackStatus.FAILED, comment=comment, reason=str(e))

        log.info("feedback.posted", comment_id=comment_id)
        return FeedbackResult(FeedbackStatus.POSTED, comment=comment, comment_id=comment_id)

    __call__ = handle

    def _report(self, text: str) -> None:
        if self.report is None:
            return
        try:
            self.report(text)
        except Exception:
            self.logger.exception("feedback.report_failed")
