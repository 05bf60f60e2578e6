"""
Error taxonomy and the tagged result type used across the research package.

Gateway calls never leak transport exceptions to their callers: every failure
is classified into an ``ErrorKind`` and carried either as a ``GatewayError``
or inside an ``Err`` result.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

import aiohttp

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure classes for external calls."""
    NETWORK = "network"
    PARSING = "parsing"
    NOT_FOUND = "not_found"
    RATE_LIMIT = "rate_limit"
    API = "api"
    CONFIGURATION = "configuration"


RETRYABLE_KINDS = frozenset({ErrorKind.NETWORK, ErrorKind.RATE_LIMIT})


def is_retryable(kind: ErrorKind) -> bool:
    return kind in RETRYABLE_KINDS


class RuleMasterError(Exception):
    """Base class for service errors."""


class GatewayError(RuleMasterError):
    """A classified failure from the external metadata service."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        status_code: Optional[int] = None,
        original: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.original = original

    @property
    def retryable(self) -> bool:
        return is_retryable(self.kind)

    def __repr__(self) -> str:
        return f"GatewayError(kind={self.kind.value!r}, message={self.message!r}, status_code={self.status_code!r})"


class ConfigurationError(RuleMasterError):
    """Missing or invalid configuration detected while constructing a service."""

    kind = ErrorKind.CONFIGURATION


class AnswerComposerError(RuleMasterError):
    """The LLM backend rejected or failed a request."""

    def __init__(self, message: str, status_code: Optional[int] = None, status_text: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.status_text = status_text


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: GatewayError

    @property
    def ok(self) -> bool:
        return False

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


Result = Union[Ok[T], Err]


def classify_status(status: int, body: str = "") -> Optional[GatewayError]:
    """Map an HTTP status to a gateway error, or None for 2xx."""
    if 200 <= status < 300:
        return None
    if status == 429:
        return GatewayError(ErrorKind.RATE_LIMIT, "Upstream rate limit exceeded", status_code=status)
    if status == 404:
        return GatewayError(ErrorKind.NOT_FOUND, "Upstream resource not found", status_code=status)
    detail = body.strip()[:200]
    message = f"Upstream returned HTTP {status}"
    if detail:
        message = f"{message}: {detail}"
    return GatewayError(ErrorKind.API, message, status_code=status)


def classify_exception(exc: BaseException) -> GatewayError:
    """Convert an arbitrary exception raised during an external call into a GatewayError."""
    if isinstance(exc, GatewayError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return GatewayError(ErrorKind.NETWORK, "Request timed out", original=exc)
    if isinstance(exc, aiohttp.ClientResponseError):
        classified = classify_status(exc.status, exc.message or "")
        if classified is not None:
            classified.original = exc
            return classified
    if isinstance(exc, (aiohttp.ClientError, ConnectionError, OSError)):
        return GatewayError(ErrorKind.NETWORK, f"Transport failure: {exc}", original=exc)
    return GatewayError(ErrorKind.API, f"Unexpected failure: {exc}", original=exc)
