from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError
from site_delivery.core import DeliveryFailure, ILogger, get_logger
from site_delivery.core.http import make_http_client, raise_for_status

SNS_PREFIX = "arn:aws:sns:"


@runtime_checkable
class Transport(Protocol):
    """Delivers one text message to one address. Raises DeliveryFailure."""

    def send(self, address: str, subject: str, text: str) -> None: ...


class SnsTransport:
    def __init__(self, *, client: Any = None, region: str | None = None) -> None:
        self.client = client or boto3.client("sns", region_name=region)

    def send(self, address: str, subject: str, text: str) -> None:
        try:
            self.client.publish(TopicArn=address, Subject=subject[:100], Message=text)
        except (ClientError, BotoCoreError) as e:
            raise DeliveryFailure(f"SNS publish to {address} failed: {e}") from e


class WebhookTransport:
    """Posts `{"text": ...}` to chat-style incoming webhooks."""

    def __init__(self, *, client: httpx.Client | None = None) -> None:
        self.client = client or make_http_client()

    def send(self, address: str, subject: str, text: str) -> None:
        try:
            resp = self.client.post(address, json={"text": text, "subject": subject})
        except httpx.HTTPError as e:
            raise DeliveryFailure(f"Webhook {address} unreachable: {e}") from e
        raise_for_status(resp)


class LogTransport:
    def __init__(self, logger: ILogger | None = None) -> None:
        self.logger: ILogger = logger or get_logger("notify")

    def send(self, address: str, subject: str, text: str) -> None:
        self.logger.info("notify.message", address=address, subject=subject, text=text)


class SchemeTransport:
    """
    Pick a transport from the shape of the address: SNS topic ARNs, http(s)
    webhooks, and anything else goes to the fallback.
    """

    def __init__(
        self,
        *,
        sns: Transport | None = None,
        webhook: Transport | None = None,
        fallback: Transport | None = None,
    ) -> None:
        self._sns = sns
        self._webhook = webhook
        self.fallback: Transport = fallback or LogTransport()

    @property
    def sns(self) -> Transport:
        if self._sns is None:
            self._sns = SnsTransport()
        return self._sns

    @property
    def webhook(self) -> Transport:
        if self._webhook is None:
            self._webhook = WebhookTransport()
        return self._webhook

    def resolve(self, address: str) -> Transport:
        if address.startswith(SNS_PREFIX):
            return self.sns
        if address.startswith(("https://", "http://")):
            return self.webhook
        return self.fallback

    def send(self, address: str, subject: str, text: str) -> None:
        self.resolve(address).send(address, subject, text)
