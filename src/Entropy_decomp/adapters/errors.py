"""Exception hierarchy raised by model adapters and the adapter registry."""

from __future__ import annotations

from collections.abc import Sequence

from Entropy_decomp.utils.errors import FoundationError


class AdapterError(FoundationError):
    """Failure reported by a model provider adapter."""

    code = "ADAPTER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            retryable=retryable,
            status=status_code or 502,
            extra={"provider": provider} if provider else None,
        )
        self.status_code = status_code
        self.provider = provider


class RateLimitError(AdapterError):
    code = "RATE_LIMIT"
    retryable = True

    def __init__(
        self,
        message: str = "Provider rate limit exceeded",
        *,
        provider: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, status_code=429, provider=provider)
        self.retry_after = retry_after


class AuthenticationError(AdapterError):
    code = "AUTH_ERROR"

    def __init__(self, message: str = "Provider rejected credentials", *, provider: str | None = None) -> None:
        super().__init__(message, status_code=401, provider=provider)


class AdapterTimeoutError(AdapterError):
    code = "TIMEOUT"
    retryable = True

    def __init__(self, message: str = "Provider request timed out", *, provider: str | None = None) -> None:
        super().__init__(message, status_code=408, provider=provider)


class ModelNotFoundError(AdapterError):
    code = "MODEL_NOT_FOUND"

    def __init__(self, model: str, *, provider: str | None = None) -> None:
        super().__init__(f"Model not found: {model}", status_code=404, provider=provider)
        self.model = model


class AdapterUnavailableError(AdapterError):
    code = "SERVICE_UNAVAILABLE"
    retryable = True


class AdapterChainExhaustedError(AdapterError):
    """Raised when every candidate adapter failed for one completion.

    Code and retryability come from the last failure reported by a provider;
    fallback ids missing from the registry never decide them.
    """

    def __init__(self, message: str, errors: Sequence[BaseException]) -> None:
        last = self.decisive_error(errors)
        super().__init__(
            message,
            code=getattr(last, "code", None) or "ALL_ADAPTERS_FAILED",
            retryable=bool(getattr(last, "retryable", False)),
        )
        self.errors = list(errors)

    @staticmethod
    def decisive_error(errors: Sequence[BaseException]) -> BaseException | None:
        for error in reversed(errors):
            if not isinstance(error, UnknownAdapterError):
                return error
        return errors[-1] if errors else None


class UnknownAdapterError(FoundationError):
    code = "UNKNOWN_ADAPTER"

    def __init__(self, adapter_id: str) -> None:
        super().__init__(f"Adapter not found: {adapter_id}", status=404)
        self.adapter_id = adapter_id


__all__ = [
    "AdapterChainExhaustedError",
    "AdapterError",
    "AdapterTimeoutError",
    "AdapterUnavailableError",
    "AuthenticationError",
    "ModelNotFoundError",
    "RateLimitError",
    "UnknownAdapterError",
]
