from __future__ import annotations

import asyncio
import re
from enum import Enum

import httpx

RATE_LIMIT_PATTERN = re.compile(r"rate limit|429", re.IGNORECASE)
AUTH_PATTERN = re.compile(r"invalid api key|unauthorized|forbidden|401|403", re.IGNORECASE)
PAYMENT_PATTERN = re.compile(r"payment required|402|insufficient credit|no credit", re.IGNORECASE)

AUTH_STATUSES = frozenset({401, 403})


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    PAYMENT_REQUIRED = "payment_required"
    TIMEOUT = "timeout"
    TRANSIENT_UPSTREAM = "transient_upstream"
    NON_RETRYABLE = "non_retryable"
    ALL_PROVIDERS_EXHAUSTED = "all_providers_exhausted"


class GatewayError(RuntimeError):
    pass


class ProviderError(GatewayError):
    """A failure of one provider call, normalized to status + retryable."""

    def __init__(
        self,
        provider: str,
        message: str,
        status: int | None = None,
        retryable: bool = True,
        timeout: bool = False,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.message = message
        self.status = status
        self.retryable = retryable
        self.timeout = timeout

    @property
    def kind(self) -> ErrorKind:
        if self.status == 429:
            return ErrorKind.RATE_LIMITED
        if self.status in AUTH_STATUSES:
            return ErrorKind.UNAUTHORIZED
        if self.status == 402:
            return ErrorKind.PAYMENT_REQUIRED
        if self.timeout:
            return ErrorKind.TIMEOUT
        if self.retryable:
            return ErrorKind.TRANSIENT_UPSTREAM
        return ErrorKind.NON_RETRYABLE

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "status": self.status,
            "message": self.message,
            "retryable": self.retryable,
            "kind": self.kind.value,
        }

    def __repr__(self) -> str:
        return (
            f"ProviderError(provider={self.provider!r}, status={self.status!r}, "
            f"retryable={self.retryable!r}, message={self.message!r})"
        )


class AllProvidersFailedError(GatewayError):
    kind = ErrorKind.ALL_PROVIDERS_EXHAUSTED

    def __init__(self, attempted: list[str], last_error: ProviderError | None = None) -> None:
        if last_error is not None:
            message = f"All AI providers failed (last error from {last_error.provider}: {last_error.message})"
        else:
            message = "All AI providers failed (no provider was eligible)"
        super().__init__(message)
        self.attempted = attempted
        self.last_error = last_error


class RequestCancelledError(GatewayError):
    pass


def classify_error(provider: str, exc: BaseException) -> ProviderError:
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return ProviderError(provider, f"{provider} request timeout", retryable=True, timeout=True)
    if isinstance(exc, httpx.HTTPError):
        return provider_error_from_httpx(provider, provider, exc)

    message = str(exc) or type(exc).__name__
    if RATE_LIMIT_PATTERN.search(message):
        status = 429
    elif AUTH_PATTERN.search(message):
        status = 401
    elif PAYMENT_PATTERN.search(message):
        status = 402
    else:
        status = None
    retryable = status not in (401, 402)
    return ProviderError(provider, message, status=status, retryable=retryable)


def provider_error_from_httpx(provider: str, label: str, exc: httpx.HTTPError) -> ProviderError:
    if isinstance(exc, httpx.TimeoutException):
        return ProviderError(provider, f"{label} request timeout", retryable=True, timeout=True)

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        retryable = status == 429 or status >= 500
        if status in AUTH_STATUSES:
            retryable = False
        detail = _vendor_message(exc.response) or str(exc)
        return ProviderError(provider, f"{label} error: {detail}", status=status, retryable=retryable)

    return ProviderError(provider, f"{label} error: {exc}", retryable=True)


def _vendor_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if body.get("message"):
        return str(body["message"])
    return None
