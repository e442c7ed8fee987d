"""
Error classification for Noteflow.

Turns whatever an LLM/HTTP call raised into a structured classification:
kind, HTTP status (if any), retryable flag and a detail string for logs.

Classification is heuristic (status codes + keyword matching) and total:
classify() never raises, whatever it is given.
"""

import json
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, computed_field


class ErrorKind(str, Enum):
    """Closed set of error categories."""

    AUTHENTICATION = "authentication_error"
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMIT = "rate_limit_error"
    NETWORK = "network_error"
    TIMEOUT = "timeout_error"
    SERVER = "server_error"
    CLIENT = "client_error"
    PARSING = "parsing_error"
    UNKNOWN = "unknown_error"


RETRYABLE_KINDS = frozenset({
    ErrorKind.RATE_LIMIT,
    ErrorKind.NETWORK,
    ErrorKind.TIMEOUT,
    ErrorKind.SERVER,
    ErrorKind.PARSING,
    ErrorKind.UNKNOWN,  # an unrecognized error might be transient
})

AUTH_KEYWORDS = (
    "api key",
    "authentication",
    "unauthorized",
    "invalid api key",
    "forbidden",
    "权限",
    "认证",
    "密钥",
)

# With a 429 these are enough to tell quota apart from a plain rate limit
QUOTA_KEYWORDS_WITH_429 = ("quota", "credit", "balance", "billing", "usage limit")

QUOTA_KEYWORDS = (
    "quota exceeded",
    "credit",
    "balance",
    "billing",
    "usage limit",
    "配额",
    "额度",
    "余额",
)

RATE_LIMIT_KEYWORDS = ("rate limit", "too many requests", "请求过多", "频率限制")

NETWORK_KEYWORDS = ("network", "econnrefused", "enotfound")

TIMEOUT_KEYWORDS = ("timeout", "etimedout")

PARSING_KEYWORDS = ("json", "parse", "invalid response", "unexpected token", "解析", "格式")

STATUS_FIELDS = ("status", "status_code", "statusCode")

UNKNOWN_DETAIL = "unknown error"


class ErrorClassification(BaseModel):
    """
    Structured view of a failure.

    `retryable` is derived from `kind` and cannot be passed in.
    `original` is kept for logging/debugging and never serialized.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ErrorKind
    http_status: int | None = None
    detail: str = ""
    original: Any = Field(default=None, exclude=True, repr=False)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


def _lookup(value: Any, name: str) -> Any:
    """Read `name` as an attribute or mapping key. Never raises."""
    if value is None:
        return None
    try:
        if isinstance(value, dict):
            return value.get(name)
        return getattr(value, name, None)
    except Exception:
        return None


def _as_status(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if isinstance(value, int) and 100 <= value < 600:
        return value
    return None


def extract_status(error: Any) -> int | None:
    """
    Find an HTTP status on an error-like value.

    Fields checked, first hit wins:
    status, status_code, statusCode, response.status, response.status_code
    """
    for name in STATUS_FIELDS:
        status = _as_status(_lookup(error, name))
        if status is not None:
            return status

    response = _lookup(error, "response")
    if response is not None:
        for name in ("status", "status_code"):
            status = _as_status(_lookup(response, name))
            if status is not None:
                return status

    return None


def extract_message(error: Any) -> str:
    """
    Best-effort message text.

    Tries .message, .error.message, the value itself if it is a string,
    then str(value).
    """
    if error is None:
        return UNKNOWN_DETAIL

    message = _lookup(error, "message")
    if message:
        return _to_text(message)

    nested = _lookup(_lookup(error, "error"), "message")
    if nested:
        return _to_text(nested)

    if isinstance(error, str):
        return error

    return _to_text(error)


def _to_text(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        return f"<unprintable {type(value).__name__}>"


def _contains_any(haystack: str, needles: tuple[str, ...]) -> bool:
    return any(n in haystack for n in needles)


def _detect_kind(error: Any, status: int | None, text: str) -> ErrorKind:
    # Order matters: a 429 mentioning "quota" is a quota problem, not a rate limit.
    if status in (401, 403) or _contains_any(text, AUTH_KEYWORDS):
        return ErrorKind.AUTHENTICATION

    if status == 429 and _contains_any(text, QUOTA_KEYWORDS_WITH_429):
        return ErrorKind.QUOTA_EXCEEDED
    if _contains_any(text, QUOTA_KEYWORDS):
        return ErrorKind.QUOTA_EXCEEDED

    if status == 429 or _contains_any(text, RATE_LIMIT_KEYWORDS):
        return ErrorKind.RATE_LIMIT

    if _contains_any(text, NETWORK_KEYWORDS) or isinstance(
        error, (httpx.NetworkError, ConnectionError)
    ):
        return ErrorKind.NETWORK

    if _contains_any(text, TIMEOUT_KEYWORDS) or isinstance(
        error, (httpx.TimeoutException, TimeoutError)
    ):
        return ErrorKind.TIMEOUT

    if status is not None and 500 <= status < 600:
        return ErrorKind.SERVER

    if status is not None and 400 <= status < 500:
        return ErrorKind.CLIENT

    if _contains_any(text, PARSING_KEYWORDS) or isinstance(
        error, (json.JSONDecodeError, ValidationError)
    ):
        return ErrorKind.PARSING

    return ErrorKind.UNKNOWN


def classify(error: Any) -> ErrorClassification:
    """Classify any raised/returned error. Never raises."""
    try:
        status = extract_status(error)
        detail = extract_message(error)
        kind = _detect_kind(error, status, detail.lower())
    except Exception:
        return ErrorClassification(kind=ErrorKind.UNKNOWN, detail=UNKNOWN_DETAIL, original=error)

    return ErrorClassification(kind=kind, http_status=status, detail=detail, original=error)


def is_retryable(error: Any) -> bool:
    """Shortcut for classify(error).retryable."""
    return classify(error).retryable
