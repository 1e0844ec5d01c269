from __future__ import annotations

from functools import lru_cache
from typing import Any, Mapping

from site_delivery.app import ControlPlane, build_control_plane
from site_delivery.core import (
    MalformedEventError,
    bind,
    clear_bindings,
    configure_logging,
    get_logger,
    load_settings,
)
from site_delivery.routing import BUILD_STATE_CHANGE, PIPELINE_STATE_CHANGE

CODECOMMIT_PUSH = "CodeCommit Repository State Change"
CODECOMMIT_PULL_REQUEST = "CodeCommit Pull Request State Change"

log = get_logger("handlers")


@lru_cache(maxsize=1)
def default_plane() -> ControlPlane:
    s = load_settings()
    configure_logging(level=s.log_level, fmt="json")
    return build_control_plane(s)


def classify(event: Mapping[str, Any]) -> str:
    """
    Name the kind of an inbound event: push, change_request, route, or unknown.
    """
    kind = event.get("detail-type")
    if kind == CODECOMMIT_PUSH:
        return "push"
    if kind == CODECOMMIT_PULL_REQUEST:
        return "change_request"
    if kind in (BUILD_STATE_CHANGE, PIPELINE_STATE_CHANGE):
        return "route"
    # Hosted-provider webhooks carry no envelope.
    if "pull_request" in event:
        return "change_request"
    if "ref" in event and "after" in event:
        return "push"
    return "unknown"


def handle_event(
    event: Mapping[str, Any],
    context: Any = None,
    *,
    plane: ControlPlane | None = None,
) -> dict[str, Any]:
    """
    Entry point for inbound events: branch pushes start runs, change-request
    signals start validation builds, build and pipeline state changes are
    routed to their targets.
    """
    p = plane or default_plane()
    kind = classify(event)
    clear_bindings()
    bind(event_kind=kind, aws_request_id=getattr(context, "aws_request_id", None))

    try:
        if kind == "push":
            change = p.provider.change_from_push(event)
            if change is None:
                return {"kind": kind, "action": "ignored"}
            run = p.machine.start(change)
            return {
                "kind": kind,
                "action": "started",
                "run_id": run.run_id,
                "status": run.status.value,
            }

        if kind == "change_request":
            build_id = p.validator.handle(event)
            if build_id is None:
                return {"kind": kind, "action": "ignored"}
            return {"kind": kind, "action": "validation_started", "build_id": build_id}

        if kind == "route":
            report = p.router.dispatch_raw(event)
            if report is None:
                return {"kind": kind, "action": "ignored"}
            return {
                "kind": kind,
                "action": "dispatched",
                "delivered": report.delivered,
                "failed": report.failed,
            }
    except MalformedEventError as e:
        log.warning("handler.malformed_event", kind=kind, error=str(e))
        return {"kind": kind, "action": "rejected", "error": str(e)}

    log.info("handler.unknown_event", detail_type=event.get("detail-type"))
    return {"kind": kind, "action": "ignored"}
