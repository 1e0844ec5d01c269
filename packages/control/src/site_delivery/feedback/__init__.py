from .event import (
    REQUIRED_ENVIRONMENT,
    BuildCompletionEvent,
    ChangeRequestContext,
    change_request_context,
    missing_environment,
)
from .models import FeedbackResult, FeedbackStatus, VerdictComment
from .service import BuildResultFeedbackService, compose_comment
from .sinks import (
    ChangeRequestSink,
    CodeCommitCommentSink,
    GitHubCommentSink,
    RecordingSink,
)
from .verdict import (
    FAILED_PHASE_STATUSES,
    Verdict,
    badge_prefix,
    badge_url,
    compute_verdict,
    render_verdict,
)

__all__ = [
    "REQUIRED_ENVIRONMENT",
    "BuildCompletionEvent",
    "ChangeRequestContext",
    "change_request_context",
    "missing_environment",
    "FeedbackResult",
    "FeedbackStatus",
    "VerdictComment",
    "BuildResultFeedbackService",
    "compose_comment",
    "ChangeRequestSink",
    "CodeCommitCommentSink",
    "GitHubCommentSink",
    "RecordingSink",
    "FAILED_PHASE_STATUSES",
    "Verdict",
    "badge_prefix",
    "badge_url",
    "compute_verdict",
    "render_verdict",
]
