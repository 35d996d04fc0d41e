"""Classification of source failures into retry decisions."""

import re

import structlog
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import Timeout

from docsync.errors import ErrorCategory, FetchError

log = structlog.stdlib.get_logger()

RETRYABLE_CATEGORIES: frozenset[ErrorCategory] = frozenset(
    {
        ErrorCategory.NETWORK_ERROR,
        ErrorCategory.RATE_LIMIT_ERROR,
        ErrorCategory.SERVER_ERROR,
    }
)

_NETWORK_EXCEPTIONS = (RequestsConnectionError, Timeout, ConnectionError, TimeoutError)

_FILTER_KEYWORDS = (
    "filter",
    "should be defined",
    "cql",
    "validation",
    "could not parse",
)
_NETWORK_KEYWORDS = (
    "timeout",
    "timed out",
    "connection",
    "network",
    "name resolution",
    "curl",
    "ssl",
)
_RATE_LIMIT_KEYWORDS = ("rate limit", "rate-limit", "too many requests", "quota")
_SERVER_KEYWORDS = (
    "internal server error",
    "bad gateway",
    "service unavailable",
    "gateway timeout",
)
_AUTH_KEYWORDS = ("unauthorized", "authentication", "api key", "forbidden", "permission")
_NOT_FOUND_SUBJECTS = ("space", "database", "container", "page", "content")


def _status_code_pattern(codes: str) -> re.Pattern[str]:
    # A bare number is only a status when it reads like one: "status 503",
    # "http 503", or the "503 server error" form requests uses.
    return re.compile(
        rf"\b(?:status(?: code)?|http(?: status)?|error code)\s*[:=]?\s*(?:{codes})\b"
        rf"|\b(?:{codes})\s+(?:server|client) error\b"
    )


_RATE_LIMIT_CODE = _status_code_pattern("429")
_SERVER_CODE = _status_code_pattern(r"5\d\d")
_AUTH_CODE = _status_code_pattern("40[13]")
_NOT_FOUND_CODE = _status_code_pattern("404")


def extract_status_code(error: BaseException) -> int | None:
    """Best-effort HTTP status code of an exception."""
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status

    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status

    code = getattr(error, "code", None)
    if isinstance(code, int) and 100 <= code < 600:
        return code
    return None


class ErrorClassifier:
    """Turns raw fetch failures into an ErrorCategory and a retry decision.

    Status codes are consulted first. Without a usable code, connection and
    timeout exception types map to network errors, and finally the message is
    matched against keyword groups in precedence order: filter, network, rate
    limit, server, auth, not found.
    """

    def classify(self, error: BaseException) -> ErrorCategory:
        status = extract_status_code(error)
        message = str(error).lower()

        if isinstance(error, FetchError) and error.category is not ErrorCategory.UNKNOWN_ERROR:
            category: ErrorCategory | None = error.category
        else:
            category = self._classify_status(status)
        if category is None and isinstance(error, _NETWORK_EXCEPTIONS):
            category = ErrorCategory.NETWORK_ERROR
        if category is None:
            category = self._classify_message(message)

        log.debug(
            "error_classified",
            error_type=type(error).__name__,
            status_code=status,
            category=category.value,
        )
        return category

    def should_retry(self, category: ErrorCategory) -> bool:
        should_retry = category in RETRYABLE_CATEGORIES
        log.debug("retry_decision", category=category.value, should_retry=should_retry)
        return should_retry

    @staticmethod
    def _classify_status(status: int | None) -> ErrorCategory | None:
        if status is None:
            return None
        if status == 400:
            return ErrorCategory.FILTER_ERROR
        if status == 408:
            return ErrorCategory.NETWORK_ERROR
        if status == 429:
            return ErrorCategory.RATE_LIMIT_ERROR
        if 500 <= status < 600:
            return ErrorCategory.SERVER_ERROR
        if status in (401, 403):
            return ErrorCategory.AUTH_ERROR
        if status == 404:
            return ErrorCategory.SOURCE_NOT_FOUND_ERROR
        return None

    @staticmethod
    def _classify_message(message: str) -> ErrorCategory:
        if (
            any(keyword in message for keyword in _FILTER_KEYWORDS)
            or ("property" in message and "does not exist" in message)
            or ("timestamp" in message and "invalid" in message)
        ):
            return ErrorCategory.FILTER_ERROR

        if any(keyword in message for keyword in _NETWORK_KEYWORDS):
            return ErrorCategory.NETWORK_ERROR

        if _RATE_LIMIT_CODE.search(message) or any(
            keyword in message for keyword in _RATE_LIMIT_KEYWORDS
        ):
            return ErrorCategory.RATE_LIMIT_ERROR

        if _SERVER_CODE.search(message) or any(
            keyword in message for keyword in _SERVER_KEYWORDS
        ):
            return ErrorCategory.SERVER_ERROR

        if _AUTH_CODE.search(message) or any(keyword in message for keyword in _AUTH_KEYWORDS):
            return ErrorCategory.AUTH_ERROR

        if _NOT_FOUND_CODE.search(message) or (
            any(subject in message for subject in _NOT_FOUND_SUBJECTS)
            and ("not found" in message or "no such" in message)
        ):
            return ErrorCategory.SOURCE_NOT_FOUND_ERROR

        return ErrorCategory.UNKNOWN_ERROR
