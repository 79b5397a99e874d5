"""Error taxonomy for the digest pipeline.

Extraction problems are recovered locally (a failed strategy yields nothing),
oracle problems are classified so the retry loop can pick a backoff, and only
``NothingExtractedError`` is terminal for a run.
"""

from typing import Any


class DigestError(Exception):
    """Base class for all pipeline errors."""


class ExtractionFailure(DigestError):
    """A single extraction strategy raised on a message.

    Recovered by treating the strategy as having produced nothing.
    """

    def __init__(self, message_id: str, strategy: str, cause: BaseException | None = None):
        self.message_id = message_id
        self.strategy = strategy
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Strategy {strategy} failed on message {message_id}{detail}")


class OracleError(DigestError):
    """Failure talking to the scoring oracle."""

    kind = "unknown"
    retryable = True

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class RateLimitError(OracleError):
    kind = "rate_limit"


class TokenLimitError(OracleError):
    kind = "token_limit"


class AuthenticationError(OracleError):
    kind = "auth"
    retryable = False


class OracleNetworkError(OracleError):
    kind = "network"


class UnknownOracleError(OracleError):
    kind = "unknown"


class MalformedOracleOutput(DigestError):
    """Oracle returned something that is not the expected JSON shape."""

    MAX_PAYLOAD = 500

    def __init__(self, reason: str, payload: Any = None):
        self.reason = reason
        text = payload if isinstance(payload, str) else repr(payload)
        self.payload = text[: self.MAX_PAYLOAD] if text else ""
        super().__init__(f"Malformed oracle output: {reason}")


class NothingExtractedError(DigestError):
    """No articles could be extracted from any message in the run."""


def _status_code(exc: BaseException) -> int | None:
    for attr in ("status_code", "status", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None)
    return value if isinstance(value, int) else None


def classify_oracle_error(exc: BaseException) -> OracleError:
    """Map an arbitrary client exception onto the oracle error taxonomy.

    Status codes are checked first, then message substrings. Already
    classified errors pass through unchanged.
    """
    if isinstance(exc, OracleError):
        return exc

    message = str(exc)
    lowered = message.lower()
    status = _status_code(exc)

    if status == 429 or "429" in message or "rate limit" in lowered or "quota" in lowered:
        return RateLimitError(message, exc)

    if (
        "token" in lowered
        or "context length" in lowered
        or "too long" in lowered
        or "exceeds" in lowered
    ):
        return TokenLimitError(message, exc)

    if (
        status in (401, 403)
        or "401" in message
        or "403" in message
        or "api key" in lowered
        or "unauthorized" in lowered
        or "forbidden" in lowered
    ):
        return AuthenticationError(message, exc)

    if isinstance(exc, (TimeoutError, ConnectionError)) or any(
        term in lowered
        for term in ("timeout", "timed out", "deadline exceeded", "abort", "network", "fetch", "connection")
    ):
        return OracleNetworkError(message, exc)

    return UnknownOracleError(message, exc)
