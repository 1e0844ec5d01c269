from __future__ import annotations

import httpx
import pytest
from site_delivery.core.http import (
    HttpStatusError,
    github_client,
    make_http_client,
    raise_for_status,
)


def test_client_sends_user_agent_and_raises_on_error_status() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(403, text="forbidden")

    client = make_http_client(
        base_url="https://api.example", transport=httpx.MockTransport(handler)
    )
    resp = client.get("/thing")

    assert seen[0].headers["User-Agent"].startswith("site-delivery/")
    with pytest.raises(HttpStatusError) as ei:
        raise_for_status(resp)
    assert ei.value.status_code == 403
    assert "forbidden" in str(ei.value)


def test_github_client_authenticates_with_token() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    github_client("https://api.github.test", "s3cret", transport=httpx.MockTransport(handler)).get(
        "/rate_limit"
    )
    assert seen[0].headers["Authorization"] == "Bearer s3cret"
    assert seen[0].headers["Accept"] == "application/vnd.github+json"
    assert seen[0].url.host == "api.github.test"
