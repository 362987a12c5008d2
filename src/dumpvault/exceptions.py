"""Custom exception hierarchy for dumpvault."""

from typing import Any, Optional


class DumpVaultError(Exception):
    """Base exception for all dumpvault errors."""

    def __init__(
        self,
        message: str,
        *,
        correlation_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        """Initialize dumpvault error.

        Args:
            message: Error message
            correlation_id: Optional correlation ID for tracing
            context: Optional context dictionary with additional details
        """
        super().__init__(message)
        self.message = message
        self.correlation_id = correlation_id
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message."""
        parts = [self.message]
        if self.correlation_id:
            parts.append(f"[correlation_id={self.correlation_id}]")
        if self.context:
            parts.append(f"[context={self.context}]")
        return " ".join(parts)


class ConfigurationError(DumpVaultError):
    """Invalid or incomplete configuration (empty name pattern, wrong driver, ...)."""

    pass


class StorageError(DumpVaultError):
    """Listing, download, upload or delete failed in the remote store."""

    pass


class NotFoundError(DumpVaultError):
    """No remote artifact matches the requested mask."""

    pass


class UnsupportedFormatError(DumpVaultError):
    """Artifact extension is not one of .sql, .gz or .zip."""

    pass


class ExtractionError(DumpVaultError):
    """Corrupt archive or missing expected member."""

    pass


class FilterIOError(DumpVaultError):
    """Source or destination could not be opened while filtering tables."""

    pass


class ExternalToolError(DumpVaultError):
    """An external binary (mysqldump, mysql) failed."""

    def __init__(
        self,
        message: str,
        *,
        exit_code: Optional[int] = None,
        correlation_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, correlation_id=correlation_id, context=context)
        self.exit_code = exit_code


class DumpError(ExternalToolError):
    """The dump producer exited nonzero or left no usable file."""

    pass


class ImportFailureError(ExternalToolError):
    """The import consumer exited nonzero."""

    pass


class RestoreStageError(DumpVaultError):
    """A restore pipeline stage failed; wraps the underlying error."""

    def __init__(self, stage: str, cause: Exception) -> None:
        message = f"Restore failed during {stage}: {getattr(cause, 'message', str(cause))}"
        exit_code = getattr(cause, "exit_code", None)
        if exit_code is not None:
            message += f" (exit code {exit_code})"
        super().__init__(message, context=dict(getattr(cause, "context", {}) or {}))
        self.stage = stage
        self.cause = cause
        self.exit_code = exit_code
