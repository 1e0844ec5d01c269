from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from site_delivery.core import ILogger, RoutingConfigError, get_logger

from .models import RoutedEvent, RuleSet, routed_event_from_raw

Target = Callable[[RoutedEvent], Any]


@dataclass(slots=True)
class DispatchReport:
    event: RoutedEvent
    matched: list[str] = field(default_factory=list)
    delivered: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class EventRouter:
    """
    Fan events out to named targets according to a rule set.

    A target that raises is logged and recorded in the report; the other
    targets still receive the event.
    """

    def __init__(
        self,
        rules: RuleSet,
        targets: Mapping[str, Target],
        *,
        logger: ILogger | None = None,
    ) -> None:
        unknown = sorted(rules.target_names() - set(targets))
        if unknown:
            raise RoutingConfigError(f"Rules reference unknown target(s): {unknown}")
        self.rules = rules
        self.targets = dict(targets)
        self.logger: ILogger = logger or get_logger("routing")

    def dispatch(self, event: RoutedEvent) -> DispatchReport:
        report = DispatchReport(event=event, matched=self.rules.match(event))
        if not report.matched:
            self.logger.debug(
                "route.unmatched",
                category=event.category.value,
                status=event.status,
                subject=event.subject,
            )
            return report

        for name in report.matched:
            try:
                self.targets[name](event)
            except Exception as e:
                report.failed[name] = str(e)
                self.logger.exception(
                    "route.target_failed",
                    target=name,
                    category=event.category.value,
                    status=event.status,
                )
            else:
                report.delivered.append(name)

        self.logger.info(
            "route.dispatched",
            category=event.category.value,
            status=event.status,
            subject=event.subject,
            delivered=report.delivered,
            failed=sorted(report.failed),
        )
        return report

    def dispatch_raw(self, raw: Mapping[str, Any]) -> DispatchReport | None:
        """
        Dispatch a raw envelope; None when its detail-type is not routable.
        """
        event = routed_event_from_raw(raw)
        if event is None:
            self.logger.debug("route.unrecognised", detail_type=raw.get("detail-type"))
            return None
        return self.dispatch(event)

    __call__ = dispatch
