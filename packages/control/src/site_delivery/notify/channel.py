from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from site_delivery.core import ILogger, get_logger
from site_delivery.routing import NOTIFIABLE_PIPELINE_STATES, Category, RoutedEvent

from .transports import SchemeTransport, Transport

MESSAGE = "The pipeline {pipeline} in account {account} has {state} at {time}."
SUBJECT = "Pipeline {pipeline} {state}"


@dataclass(slots=True)
class NotificationReport:
    sent: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: str | None = None


def render(payload: Mapping[str, Any]) -> str:
    return MESSAGE.format(
        pipeline=payload.get("pipeline", "unknown"),
        account=payload.get("account", "unknown"),
        state=payload.get("state", "unknown"),
        time=payload.get("time", "unknown"),
    )


class NotificationChannel:
    """
    Human-readable run notices to a fixed set of subscribers.

    Only run-level pipeline events in the notifiable states produce a message.
    A subscriber whose delivery fails does not stop the others.
    """

    def __init__(
        self,
        subscribers: Sequence[str],
        *,
        transport: Transport | None = None,
        logger: ILogger | None = None,
    ) -> None:
        self.subscribers = tuple(subscribers)
        self.transport: Transport = transport or SchemeTransport()
        self.logger: ILogger = logger or get_logger("notify")

    def publish(self, event: RoutedEvent) -> NotificationReport:
        if event.category is not Category.PIPELINE or event.level != "run":
            return NotificationReport(skipped="not a run-level pipeline event")
        if event.status.upper() not in NOTIFIABLE_PIPELINE_STATES:
            return NotificationReport(skipped=f"state {event.status} is not notified")

        text = render(event.payload)
        subject = SUBJECT.format(
            pipeline=event.payload.get("pipeline", "unknown"),
            state=event.status,
        )
        return self._fan_out(subject, text)

    __call__ = publish

    def notify_text(self, text: str, *, subject: str = "Pipeline notice") -> NotificationReport:
        """Free-form operator message, e.g. a verdict that could not be posted."""
        return self._fan_out(subject, text)

    def _fan_out(self, subject: str, text: str) -> NotificationReport:
        report = NotificationReport()
        if not self.subscribers:
            self.logger.debug("notify.no_subscribers", subject=subject)
            report.skipped = "no subscribers"
            return report
        for address in self.subscribers:
            try:
                self.transport.send(address, subject, text)
            except Exception as e:
                report.failed[address] = str(e)
                self.logger.error(
                    "notify.send_failed",
                    address=address,
                    error=str(e),
                    exc_type=type(e).__name__,
                )
            else:
                report.sent.append(address)
        self.logger.info(
            "notify.sent", subject=subject, sent=len(report.sent), failed=len(report.failed)
        )
        return report
