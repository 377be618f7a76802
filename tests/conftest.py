from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional
from unittest.mock import MagicMock

import pytest


def make_response(status: int = 200, payload: Any = None, text: Optional[str] = None) -> MagicMock:
    """A stand-in for `requests.Response`."""
    r = MagicMock()
    r.status_code = status
    if payload is None and text is not None:
        r.json.side_effect = ValueError("not json")
        r.text = text
    else:
        r.json.return_value = payload
        r.text = str(payload)
    return r


class FakeTransport:
    """Records store calls and answers from a per-endpoint table."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None) -> None:
        self.base_url = "https://milvus.test/v2/vectordb"
        self.responses: Dict[str, Any] = responses or {}
        self.calls: List[tuple] = []
        self.closed = False

    def count(self, endpoint: str) -> int:
        return sum(1 for e, _ in self.calls if e == endpoint)

    def payloads(self, endpoint: str) -> List[Dict[str, Any]]:
        return [p for e, p in self.calls if e == endpoint]

    async def request(self, endpoint: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.calls.append((endpoint, dict(payload or {})))
        answer = self.responses.get(endpoint, {"code": 0, "data": {}})
        if isinstance(answer, BaseException):
            raise answer
        if callable(answer):
            return answer(payload)
        return answer

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_transport() -> Callable[..., FakeTransport]:
    return FakeTransport


@pytest.fixture(autouse=True)
def _clean_hybrid_env(monkeypatch):
    monkeypatch.delenv("CODESEEK_HYBRID_MODE", raising=False)
    monkeypatch.delenv("HYBRID_MODE", raising=False)
