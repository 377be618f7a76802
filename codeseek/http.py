"""Small JSON-over-HTTP helpers on top of `requests`.

`requests` is blocking; `post_json` runs the call in a worker thread so the
event loop stays free while the request is in flight.

Env vars:
  - CODESEEK_HTTP_TIMEOUT (default 30, seconds)
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, Dict, Optional

import requests

from .errors import MalformedResponse, RemoteTimeout, RemoteUnavailable

DEFAULT_TIMEOUT = float(os.getenv("CODESEEK_HTTP_TIMEOUT", "30"))


def _body_excerpt(r: requests.Response, limit: int = 800) -> str:
    try:
        return r.text[:limit]
    except Exception:
        return "<no body>"


def _post(
    session: requests.Session,
    url: str,
    payload: Dict[str, Any],
    source: str,
    timeout: float,
    headers: Optional[Dict[str, str]] = None,
) -> Any:
    try:
        r = session.post(url, json=payload, headers=headers, timeout=timeout)
    except requests.Timeout as e:
        raise RemoteTimeout(f"request to {url} timed out after {timeout}s", source, original_error=e) from e
    except requests.RequestException as e:
        raise RemoteUnavailable(f"request to {url} failed: {e}", source, original_error=e) from e

    if not 200 <= r.status_code < 300:
        raise RemoteUnavailable(
            f"HTTP {r.status_code} from {url}: {_body_excerpt(r)}",
            source,
            status_code=r.status_code,
        )

    try:
        return r.json()
    except ValueError as e:
        raise MalformedResponse(f"non-JSON response from {url}: {_body_excerpt(r, 200)}", source) from e


async def post_json(
    session: requests.Session,
    url: str,
    payload: Dict[str, Any],
    source: str,
    timeout: Optional[float] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Any:
    """
    POST a JSON payload and return the decoded JSON body.

    Args:
        session: Session used for the call (carries default headers).
        url: Full URL.
        payload: JSON-serializable request body.
        source: Name used to tag errors (provider name or endpoint).
        timeout: Request timeout in seconds (defaults to CODESEEK_HTTP_TIMEOUT).
        headers: Extra per-request headers.

    Returns:
        Parsed JSON body.

    Raises:
        RemoteTimeout: If the request timed out.
        RemoteUnavailable: On connection errors or non-2xx status.
        MalformedResponse: If the body is not JSON.
    """
    t = DEFAULT_TIMEOUT if timeout is None else timeout
    return await asyncio.to_thread(_post, session, url, payload, source, t, headers)
