from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
import requests

from codeseek.errors import ConfigurationError, MalformedResponse, RemoteRejected, RemoteTimeout, RemoteUnavailable
from codeseek.vectordb.transport import RestTransport, normalize_address

from .conftest import make_response


def _transport(response=None, side_effect=None) -> RestTransport:
    t = RestTransport("https://milvus.test", "secret")
    t.session.post = MagicMock(return_value=response, side_effect=side_effect)
    return t


@pytest.mark.parametrize(
    "address, expected",
    [
        ("milvus.test:19530", "https://milvus.test:19530/v2/vectordb"),
        ("http://localhost:19530/", "http://localhost:19530/v2/vectordb"),
        ("https://in01.zilliz.com", "https://in01.zilliz.com/v2/vectordb"),
    ],
)
def test_normalize_address(address, expected):
    assert normalize_address(address) == expected


def test_missing_token_or_address():
    with pytest.raises(ConfigurationError):
        RestTransport("https://milvus.test", "")
    with pytest.raises(ConfigurationError):
        RestTransport("", "secret")


def test_session_carries_bearer_auth():
    t = RestTransport("https://milvus.test", "secret")
    assert t.session.headers["Authorization"] == "Bearer secret"
    assert t.session.headers["Content-Type"] == "application/json"


def test_success_envelope_and_payload():
    t = _transport(make_response(200, {"code": 0, "data": {"has": True}}))

    env = asyncio.run(t.request("/collections/has", {"collectionName": "c", "dbName": None}))

    assert env["data"] == {"has": True}
    args, kwargs = t.session.post.call_args
    assert args[0] == "https://milvus.test/v2/vectordb/collections/has"
    # None values are dropped
    assert kwargs["json"] == {"collectionName": "c"}


def test_code_200_is_success():
    t = _transport(make_response(200, {"code": 200, "data": []}))
    assert asyncio.run(t.request("/collections/list", {}))["data"] == []


def test_error_code_is_rejected():
    t = _transport(make_response(200, {"code": 1100, "message": "collection not found"}))

    with pytest.raises(RemoteRejected) as exc:
        asyncio.run(t.request("/entities/search", {}))
    assert exc.value.code == 1100
    assert exc.value.source == "/entities/search"
    assert "collection not found" in str(exc.value)


def test_missing_message_defaults():
    t = _transport(make_response(200, {"code": 5}))
    with pytest.raises(RemoteRejected, match="Unknown error"):
        asyncio.run(t.request("/collections/load", {}))


def test_non_envelope_is_malformed():
    t = _transport(make_response(200, ["not", "an", "envelope"]))
    with pytest.raises(MalformedResponse):
        asyncio.run(t.request("/collections/list", {}))


def test_http_error_is_unavailable():
    t = _transport(make_response(401, {"message": "unauthorized"}))
    with pytest.raises(RemoteUnavailable) as exc:
        asyncio.run(t.request("/collections/list", {}))
    assert exc.value.status_code == 401


def test_connection_error_is_unavailable():
    t = _transport(side_effect=requests.ConnectionError("refused"))
    with pytest.raises(RemoteUnavailable) as exc:
        asyncio.run(t.request("/collections/list", {}))
    assert isinstance(exc.value.original_error, requests.ConnectionError)


def test_timeout_is_remote_timeout():
    t = _transport(side_effect=requests.Timeout("slow"))
    with pytest.raises(RemoteTimeout):
        asyncio.run(t.request("/collections/list", {}))


def test_close_releases_session():
    t = RestTransport("https://milvus.test", "secret")
    s = t.session
    s.close = MagicMock()
    t.close()
    s.close.assert_called_once()
    assert t._session is None
