from __future__ import annotations


class WhichLLMError(Exception):
    """Base class for every error raised by which-llm.

    ``stage`` names the resolution stage that produced the error when it was
    surfaced by the resolver ("local", "hosted" or "origin").
    """

    stage: str | None = None


class ConfigurationError(WhichLLMError):
    pass


class UnknownTableError(WhichLLMError):
    def __init__(self, name: str, available: list[str] | None = None):
        self.name = name
        self.available = available or []
        msg = f"Unknown table '{name}'"
        if self.available:
            msg += f". Available tables: {', '.join(self.available)}"
        super().__init__(msg)


class CacheError(WhichLLMError):
    pass


class CacheCorruptionError(CacheError):
    """A cache file exists but cannot be read back. Never surfaced to callers."""


class NetworkError(WhichLLMError):
    pass


class ManifestUnavailableError(NetworkError):
    pass


class HostedDataError(WhichLLMError):
    pass


class APIError(WhichLLMError):
    def __init__(self, status_code: int, message: str, response_body: str | None = None):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(f"HTTP {status_code}: {message}")


class AuthError(APIError):
    def __init__(self, status_code: int = 401, response_body: str | None = None):
        super().__init__(
            status_code,
            "invalid or expired API key. Check ARTIFICIAL_ANALYSIS_API_KEY or the active profile.",
            response_body,
        )


class RateLimitError(APIError):
    def __init__(self, reset_at: str | None = None, response_body: str | None = None):
        self.reset_at = reset_at
        super().__init__(429, f"rate limit exceeded, resets at {reset_at or 'unknown'}", response_body)


class OriginError(APIError):
    pass


class NoDataSourceAvailableError(WhichLLMError):
    def __init__(self, table: str):
        self.table = table
        super().__init__(
            f"No data source available for '{table}': no API key configured. "
            "Set ARTIFICIAL_ANALYSIS_API_KEY or configure a profile."
        )


def error_exit_code(err: BaseException) -> int:
    """Process exit code for a failed invocation. Every failure maps to 1."""
    return 1 if err is not None else 0


__all__ = [
    "WhichLLMError",
    "ConfigurationError",
    "UnknownTableError",
    "CacheError",
    "CacheCorruptionError",
    "NetworkError",
    "ManifestUnavailableError",
    "HostedDataError",
    "APIError",
    "AuthError",
    "RateLimitError",
    "OriginError",
    "NoDataSourceAvailableError",
    "error_exit_code",
]
