from __future__ import annotations

import httpx

from .errors import DeliveryFailure

USER_AGENT = "site-delivery/0.1"
GITHUB_MEDIA_TYPE = "application/vnd.github+json"


class HttpStatusError(DeliveryFailure):
    """
    An upstream API (hosted provider, chat webhook) answered with a
    non-success status.
    """

    def __init__(self, resp: httpx.Response) -> None:
        req = resp.request
        msg = f"HTTP {resp.status_code} for {req.method} {req.url}"
        if resp.text:
            msg += f" (body: {resp.text[:200]})"
        super().__init__(msg)
        self.method = req.method
        self.url = str(req.url)
        self.status_code = resp.status_code


def make_http_client(
    *,
    base_url: str = "",
    headers: dict[str, str] | None = None,
    timeout: httpx.Timeout | None = None,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    merged = {"User-Agent": USER_AGENT, **(headers or {})}
    return httpx.Client(
        base_url=base_url,
        headers=merged,
        timeout=timeout or httpx.Timeout(connect=5.0, read=30.0, write=30.0, pool=5.0),
        follow_redirects=True,
        transport=transport,
    )


def github_client(
    api_url: str, token: str, *, transport: httpx.BaseTransport | None = None
) -> httpx.Client:
    """Client for the hosted provider's REST API, authenticated by token."""
    return make_http_client(
        base_url=api_url,
        headers={"Accept": GITHUB_MEDIA_TYPE, "Authorization": f"Bearer {token}"},
        transport=transport,
    )


def raise_for_status(resp: httpx.Response) -> None:
    if not resp.is_success:
        raise HttpStatusError(resp)
