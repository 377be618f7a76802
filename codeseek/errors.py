"""Error types raised by codeseek.

Hierarchy:
  - CodeseekError
      - ConfigurationError: missing token, address, api key or collection name
      - RemoteError: anything that went wrong talking to a remote service
          - RemoteUnavailable: network failure or non-2xx HTTP status
              - RemoteTimeout: the request timed out
          - RemoteRejected: store envelope carried a non-success code
              - CollectionLimitExceeded: the store refuses to create more collections
          - MalformedResponse: 2xx response without the expected payload

A missing collection is not an error on the search path; the search context
returns an empty result list instead.
"""

from __future__ import annotations

from typing import Optional


COLLECTION_LIMIT_MESSAGE = (
    "Your vector database has reached its collection limit. "
    "Drop unused collections (`codeseek collections` / `codeseek drop NAME`) "
    "or upgrade your plan, then index again."
)


class CodeseekError(Exception):
    """Base class for every error raised by codeseek."""


class ConfigurationError(CodeseekError):
    """Required configuration is missing or invalid. Never retried."""


class RemoteError(CodeseekError):
    """
    Failure while talking to a remote service.

    Attributes:
        source: Provider name (e.g. "OpenAI") or store endpoint that failed.
        original_error: Underlying exception, when there is one.
    """

    def __init__(self, message: str, source: str, original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.source = source
        self.original_error = original_error

    def __str__(self) -> str:
        return f"[{self.source}] {self.message}"


class RemoteUnavailable(RemoteError):
    """Network, auth or non-2xx transport failure."""

    def __init__(
        self,
        message: str,
        source: str,
        status_code: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message, source, original_error=original_error)
        self.status_code = status_code


class RemoteTimeout(RemoteUnavailable):
    """The remote call exceeded its request timeout."""


class RemoteRejected(RemoteError):
    """The store answered with an error envelope (`code` not 0/200)."""

    def __init__(self, message: str, source: str, code: Optional[int] = None):
        super().__init__(message, source)
        self.code = code


class CollectionLimitExceeded(RemoteRejected):
    """The store refused to create a collection because of its collection quota."""

    def __init__(self, source: str, code: Optional[int] = None):
        super().__init__(COLLECTION_LIMIT_MESSAGE, source, code=code)


class MalformedResponse(RemoteError):
    """A successful response is missing the payload the contract promises."""
