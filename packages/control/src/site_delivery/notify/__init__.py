from .channel import MESSAGE, NotificationChannel, NotificationReport, render
from .transports import (
    LogTransport,
    SchemeTransport,
    SnsTransport,
    Transport,
    WebhookTransport,
)

__all__ = [
    "MESSAGE",
    "LogTransport",
    "NotificationChannel",
    "NotificationReport",
    "SchemeTransport",
    "SnsTransport",
    "Transport",
    "WebhookTransport",
    "render",
]
