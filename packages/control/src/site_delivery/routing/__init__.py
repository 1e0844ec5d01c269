from .loader import (
    NOTIFIABLE_PIPELINE_STATES,
    NOTIFICATIONS,
    PR_FEEDBACK,
    default_rules,
    load_rules,
    rules_from_dict,
)
from .models import (
    BUILD_STATE_CHANGE,
    PIPELINE_STATE_CHANGE,
    Category,
    EventPattern,
    RoutedEvent,
    RoutingRule,
    RuleSet,
    routed_event_from_raw,
)
from .router import DispatchReport, EventRouter, Target

__all__ = [
    "BUILD_STATE_CHANGE",
    "NOTIFIABLE_PIPELINE_STATES",
    "NOTIFICATIONS",
    "PIPELINE_STATE_CHANGE",
    "PR_FEEDBACK",
    "Category",
    "DispatchReport",
    "EventPattern",
    "EventRouter",
    "RoutedEvent",
    "RoutingRule",
    "RuleSet",
    "Target",
    "default_rules",
    "load_rules",
    "routed_event_from_raw",
    "rules_from_dict",
]
