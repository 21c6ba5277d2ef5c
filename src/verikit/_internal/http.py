"""Shared httpx plumbing: client construction and response decoding."""

import json
import logging
from typing import Any, Optional

import httpx

from verikit.errors import RemoteRejection, TransportError
from verikit.models import RemoteErrorBody

logger = logging.getLogger(__name__)


def user_agent() -> str:
    from verikit import __version__
    return f"verikit/{__version__}"


def build_async_client(timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """AsyncClient with the verikit User-Agent; transport is injectable for tests."""
    return httpx.AsyncClient(
        timeout=timeout,
        headers={"User-Agent": user_agent(), "Accept": "application/json"},
        transport=transport,
        follow_redirects=True,
    )


async def send(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """Send a request, mapping network failures to TransportError."""
    logger.debug("%s %s", method, url)
    try:
        return await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise TransportError(f"Network error calling {url}: {e}", details={"url": url})


def decode_json(response: httpx.Response, expect: Optional[type] = None) -> Any:
    """Decoded JSON body; with ``expect``, the top-level value must be that type."""
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        pass
    else:
        if expect is None or isinstance(body, expect):
            return body
    raise TransportError(
        f"Unexpected response format from {response.request.url} ({response.status_code})",
        details={"status_code": response.status_code},
    )


def raise_for_rejection(response: httpx.Response) -> None:
    """Reconstruct a RemoteRejection from a non-2xx service response."""
    if response.is_success:
        return
    try:
        body = RemoteErrorBody(**response.json())
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError, ValueError):
        body = RemoteErrorBody(
            custom_code=f"http_{response.status_code}",
            message=response.text or response.reason_phrase,
        )
    raise RemoteRejection(
        custom_code=body.custom_code,
        message=body.message,
        error_id=body.error_id,
        status_code=response.status_code,
    )
