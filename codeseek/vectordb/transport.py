"""Authenticated JSON-over-HTTP plumbing for the Milvus REST API (v2).

Every response is an envelope:
  {"code": 0, "data": ..., "message": "..."}

`code` 0 or 200 means success; anything else is a store-level error.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from ..errors import ConfigurationError, MalformedResponse, RemoteRejected
from ..http import post_json

logger = logging.getLogger(__name__)

API_PREFIX = "/v2/vectordb"
SUCCESS_CODES = (0, 200)


def normalize_address(address: str) -> str:
    """
    Turn a user supplied address into the REST base URL.

    Args:
        address: "host:port", "https://cluster.example.com/", ...

    Returns:
        Base URL ending in /v2/vectordb. Addresses without a scheme get https://.
    """
    a = address.strip()
    if not a.startswith(("http://", "https://")):
        a = f"https://{a}"
    return a.rstrip("/") + API_PREFIX


class RestTransport:
    """
    POSTs JSON envelopes to the store and unwraps them.

    Attributes:
        base_url: REST base URL (…/v2/vectordb).
        timeout: Per-request timeout in seconds (None: CODESEEK_HTTP_TIMEOUT).
    """

    def __init__(self, address: str, token: str, timeout: Optional[float] = None) -> None:
        if not address:
            raise ConfigurationError("Vector store address is required (set MILVUS_ADDRESS).")
        if not token:
            raise ConfigurationError("Vector store token is required (set MILVUS_TOKEN).")
        self.base_url = normalize_address(address)
        self.timeout = timeout
        self._token = token
        self._session: Optional[requests.Session] = None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            s = requests.Session()
            s.headers.update(
                {
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                    "Authorization": f"Bearer {self._token}",
                }
            )
            self._session = s
        return self._session

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    async def request(self, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Call an endpoint and return the success envelope.

        Args:
            endpoint: Path below the API prefix, e.g. "/collections/has".
            payload: JSON body.

        Returns:
            The decoded envelope (`code`, `data`, `message`).

        Raises:
            RemoteTimeout: If the request timed out.
            RemoteUnavailable: On connection errors or non-2xx status.
            MalformedResponse: If the body is not a JSON envelope.
            RemoteRejected: If the envelope carries an error code.
        """
        url = f"{self.base_url}{endpoint}"
        body = {k: v for k, v in (payload or {}).items() if v is not None}
        logger.debug("POST %s", endpoint)
        envelope = await post_json(self.session, url, body, endpoint, timeout=self.timeout)

        if not isinstance(envelope, dict) or "code" not in envelope:
            raise MalformedResponse("response is not a store envelope", source=endpoint)
        code = envelope.get("code")
        if code not in SUCCESS_CODES:
            message = envelope.get("message") or "Unknown error"
            raise RemoteRejected(message, source=endpoint, code=code)
        return envelope
