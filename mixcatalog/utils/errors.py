"""Custom exception hierarchy for mixcatalog.

All application exceptions inherit from :class:`MixCatalogError`, which
carries an optional ``provider_name`` so error handlers can identify which
source or backend (e.g. "youtube", "sqlite") caused the failure.

The hierarchy is organized by how the job processor reacts to it:

    MixCatalogError  (base -- catch-all for any mixcatalog error)
    +-- TransientIOError          (network/store timeouts -- retried with backoff)
    +-- ValidationError           (malformed payload -- failed, never retried)
    |   +-- RecordNotFoundError   (payload references a missing row)
    +-- UnsupportedProviderError  (unknown provider/worker -- fail fast)
    +-- ConfigurationError        (startup / missing config)

Ambiguous fuzzy matches are deliberately absent: they are reported as
warning log events and never interrupt processing.
"""


class MixCatalogError(Exception):
    """Base exception for all mixcatalog errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which source or backend triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[sqlite] database is locked``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Retryable errors
# ---------------------------------------------------------------------------

class TransientIOError(MixCatalogError):
    """Raised when a network call or store operation times out or is busy.

    The job processor retries the owning job with exponential backoff.
    """

    def __init__(
        self,
        message: str = "Transient I/O failure",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Terminal errors
# ---------------------------------------------------------------------------

class ValidationError(MixCatalogError):
    """Raised when a job payload or staged record is malformed.

    Jobs failing with this error are marked ``failed`` immediately.
    """

    def __init__(
        self,
        message: str = "Invalid payload",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RecordNotFoundError(ValidationError):
    """Raised when a payload references a staged record or job that does not exist."""

    def __init__(
        self,
        message: str = "Referenced record does not exist",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsupportedProviderError(MixCatalogError):
    """Raised for a provider or worker type with no registered handler.

    This always indicates a configuration bug, so it is never retried.
    """

    def __init__(
        self,
        message: str = "Unsupported provider",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(MixCatalogError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


TERMINAL_ERRORS: tuple[type[MixCatalogError], ...] = (ValidationError, UnsupportedProviderError)
