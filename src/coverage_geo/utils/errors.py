from typing import Any, Optional
from pydantic import ValidationError


class RequestPreconditionError(Exception):
    """Raised when a request is malformed and cannot be attempted at all.

    Carries an HTTP-ish status code so the wizard layer can map it directly
    (400 for missing/invalid fields, 404 when no county data exists).
    """
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        errors: list[dict[str, Any]] | None = None,
        original: ValidationError | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.errors = errors or []
        self.original = original
        super().__init__(message)

    @classmethod
    def from_validation_error(cls, source: str, e: ValidationError) -> "RequestPreconditionError":
        errors = e.errors()
        return cls(
            f"Validation failed for {len(errors)} field(s) of '{source}'",
            status_code=400,
            errors=errors,
            original=e,
        )

    def summary(self, limit: int = 5) -> str:
        """Human-readable summary of the first few validation issues."""
        if not self.errors:
            return self.message
        lines = []
        for err in self.errors[:limit]:
            loc = ".".join(str(p) for p in err.get("loc", []))
            lines.append(f"- {loc}: {err.get('msg')} ({err.get('type')})")
        if len(self.errors) > limit:
            lines.append(f"... ({len(self.errors) - limit} more)")
        return "\n".join(lines)


class ProviderError(Exception):
    """Base class for failures talking to a geocoding provider."""
    retryable: bool = False

    def __init__(self, provider: str, message: str, http_status: Optional[int] = None):
        self.provider = provider
        self.http_status = http_status
        super().__init__(f"[{provider}] {message}")


class ProviderRateLimitedError(ProviderError):
    """HTTP 429 or the provider's own over-quota signal."""
    retryable = True


class ProviderTransientError(ProviderError):
    """Timeouts, connection failures, 5xx and unreadable bodies."""
    retryable = True


class ProviderPermanentError(ProviderError):
    """Bad key or malformed request. Retrying will not help."""
    retryable = False
