"""Unit tests for exception classes."""

from dumpvault.exceptions import (
    ConfigurationError,
    DumpError,
    DumpVaultError,
    ExternalToolError,
    ExtractionError,
    FilterIOError,
    ImportFailureError,
    NotFoundError,
    RestoreStageError,
    StorageError,
    UnsupportedFormatError,
)


def test_dumpvault_error_basic() -> None:
    """Test basic DumpVaultError."""
    error = DumpVaultError("Test error")
    assert str(error) == "Test error"
    assert error.message == "Test error"
    assert error.correlation_id is None
    assert error.context == {}


def test_dumpvault_error_with_correlation_id() -> None:
    """Test DumpVaultError with correlation ID."""
    error = DumpVaultError("Test error", correlation_id="abc123")
    assert "abc123" in str(error)


def test_dumpvault_error_with_context() -> None:
    error = DumpVaultError("Test error", context={"bucket": "b"})
    assert error.context == {"bucket": "b"}
    assert "bucket" in str(error)


def test_error_hierarchy() -> None:
    """Test exception hierarchy."""
    for cls in (
        ConfigurationError,
        StorageError,
        NotFoundError,
        UnsupportedFormatError,
        ExtractionError,
        FilterIOError,
        ExternalToolError,
        RestoreStageError,
    ):
        assert issubclass(cls, DumpVaultError)
    assert issubclass(DumpError, ExternalToolError)
    assert issubclass(ImportFailureError, ExternalToolError)


def test_external_tool_error_exit_code() -> None:
    error = DumpError("mysqldump failed with code 2", exit_code=2)
    assert error.exit_code == 2
    assert error.message == "mysqldump failed with code 2"


def test_restore_stage_error_wraps_cause() -> None:
    cause = NotFoundError("File matching 'x*' not found in remote storage.", context={"mask": "x*"})
    error = RestoreStageError("search", cause)

    assert error.stage == "search"
    assert error.cause is cause
    assert error.exit_code is None
    assert error.message == (
        "Restore failed during search: File matching 'x*' not found in remote storage."
    )
    assert error.context == {"mask": "x*"}


def test_restore_stage_error_carries_exit_code() -> None:
    error = RestoreStageError("import", ImportFailureError("mysql import of a.sql failed", exit_code=1))

    assert error.exit_code == 1
    assert error.message.endswith("(exit code 1)")


def test_restore_stage_error_from_plain_exception() -> None:
    error = RestoreStageError("download", OSError("disk full"))
    assert error.message == "Restore failed during download: disk full"
