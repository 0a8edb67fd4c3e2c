"""Error taxonomy for marking operations.

Remote completion failures are split by how the retry scheduler treats
them:

- RateLimitedError: retryable with exponential backoff
- TransientFailureError: retryable with linear backoff (network hiccups, timeouts)
- PayloadTooLargeError: never retried, the request itself is oversized

Provider exceptions that fit none of these are retried like transient
failures; once retries run out, the marking engine wraps them in
UnknownFailureError so callers still get the original message.
"""

from typing import Optional, Set, Union


# HTTP status codes reported by the completion provider
RATE_LIMIT_STATUS_CODES: Set[int] = {429}
PAYLOAD_TOO_LARGE_STATUS_CODES: Set[int] = {413}
TRANSIENT_STATUS_CODES: Set[int] = {
    408,  # Request timeout
    500,  # Server error
    502,  # Bad gateway
    503,  # Service unavailable
    504,  # Gateway timeout
}

_PAYLOAD_TOO_LARGE_PHRASES = (
    "context_length_exceeded",
    "context length",
    "too large",
    "too many tokens",
    "token limit",
    "exceeds the maximum",
)

_NETWORK_ERROR_PHRASES = (
    "timeout",
    "timed out",
    "connection",
    "network",
    "temporarily unavailable",
)


class MarkingError(Exception):
    """Base class for all marking failures."""


class MarkingValidationError(MarkingError):
    """Required input is missing or malformed at the orchestration boundary."""


class SizeLimitError(MarkingError):
    """A document or its chunk count exceeds processing bounds."""


class RemoteCompletionError(MarkingError):
    """Failure reported by the remote completion collaborator.

    Attributes:
        status_code: HTTP status reported by the provider, if known
        original_exception: Provider exception that caused this error
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_exception: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.original_exception = original_exception


class RateLimitedError(RemoteCompletionError):
    """Rate limit hit on the remote service."""


class PayloadTooLargeError(RemoteCompletionError):
    """The request payload itself is too large for the remote service."""


class TransientFailureError(RemoteCompletionError):
    """Generic retryable network or service failure."""


class UnknownFailureError(RemoteCompletionError):
    """Remote failure that fits no other category (e.g. a rejected API key)."""

    @classmethod
    def wrap(cls, exception: BaseException) -> "UnknownFailureError":
        return cls(
            str(exception) or type(exception).__name__,
            extract_status_code(exception),
            exception,
        )


def extract_status_code(exception: BaseException) -> Optional[int]:
    """Extract an HTTP status code from a provider exception.

    Checks ``status_code``, an integer ``code`` and ``response.status_code``
    in that order.
    """
    if hasattr(exception, "status_code"):
        value = getattr(exception, "status_code")
        if isinstance(value, int):
            return value

    if hasattr(exception, "code"):
        code = getattr(exception, "code")
        if isinstance(code, int):
            return code

    if hasattr(exception, "response"):
        response = getattr(exception, "response")
        status_code = getattr(response, "status_code", None)
        if isinstance(status_code, int):
            return status_code

    return None


def classify_provider_error(exception: BaseException) -> BaseException:
    """Map a provider exception onto the marking error taxonomy.

    Returns the original exception unchanged when it is already a
    MarkingError or does not match any known category.
    """
    if isinstance(exception, MarkingError):
        return exception

    status_code = extract_status_code(exception)
    message = str(exception)
    lowered = message.lower()

    if status_code in RATE_LIMIT_STATUS_CODES or "rate limit" in lowered:
        return RateLimitedError(f"Rate limit exceeded: {message}", status_code, exception)

    if status_code in PAYLOAD_TOO_LARGE_STATUS_CODES or (
        status_code == 400
        and any(phrase in lowered for phrase in _PAYLOAD_TOO_LARGE_PHRASES)
    ):
        return PayloadTooLargeError(
            "Document too large even after chunking. Please use a shorter document. "
            f"({message})",
            status_code,
            exception,
        )

    if status_code in TRANSIENT_STATUS_CODES:
        return TransientFailureError(message, status_code, exception)

    if status_code is None and any(phrase in lowered for phrase in _NETWORK_ERROR_PHRASES):
        return TransientFailureError(message, None, exception)

    return exception


# User-facing suggestions, chosen by substring match on the error message
SUGGEST_REDUCE_DOCUMENT = "Try using a shorter document or break it into smaller parts."
SUGGEST_REDUCE_BATCH = "Try processing fewer files at once; the system retries rate-limited requests automatically."
SUGGEST_CHECK_CONFIGURATION = "Check the GEMINI_API_KEY and model configuration."
SUGGEST_GENERIC = "The system includes automatic retry logic for temporary issues. Please try again."

_SUGGESTION_RULES = (
    (("too large", "timeout", "timed out", "chunk"), SUGGEST_REDUCE_DOCUMENT),
    (("rate limit", "batch", "resource", "quota"), SUGGEST_REDUCE_BATCH),
    (("api key", "api_key", "configuration", "not set", "not configured"), SUGGEST_CHECK_CONFIGURATION),
)


def suggest_fix(message: str) -> str:
    """Pick an actionable suggestion for an error message."""
    lowered = message.lower()
    for phrases, suggestion in _SUGGESTION_RULES:
        if any(phrase in lowered for phrase in phrases):
            return suggestion
    return SUGGEST_GENERIC


def describe_failure(error: Union[BaseException, str]) -> str:
    """Render an error as the original message plus a suggestion."""
    message = str(error) or type(error).__name__
    return f"{message}\n\nSuggestion: {suggest_fix(message)}"
