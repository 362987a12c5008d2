"""Unit tests for the S3 store."""

from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import boto3
import pytest
from boto3.exceptions import RetriesExceededError
from botocore.exceptions import ClientError, EndpointConnectionError
from botocore.stub import Stubber

from dumpvault.config import S3Config
from dumpvault.exceptions import StorageError
from dumpvault.s3_client import S3Store
from utils.retry import RetryConfig

NO_RETRY = RetryConfig(max_attempts=1)


def _client_error(code: str, operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def mock_s3_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def store(s3_config: S3Config, mock_s3_client: MagicMock) -> S3Store:
    """Store whose boto3 client is a mock."""
    store = S3Store(s3_config, retry_config=NO_RETRY)
    store._client = mock_s3_client
    return store


def test_store_init(s3_config: S3Config) -> None:
    """Test store initialization does not touch boto3."""
    store = S3Store(s3_config)
    assert store.config == s3_config
    assert store._client is None


@patch("boto3.Session")
def test_client_creation(mock_session: MagicMock, s3_config: S3Config) -> None:
    """Test S3 client is created lazily and cached."""
    mock_client = MagicMock()
    mock_session.return_value.client.return_value = mock_client

    store = S3Store(s3_config)

    assert store.client is mock_client
    assert store.client is mock_client
    mock_session.return_value.client.assert_called_once()


@patch("boto3.Session")
def test_client_with_custom_endpoint_and_credentials(mock_session: MagicMock) -> None:
    """Test endpoint and explicit credentials are passed to boto3."""
    config = S3Config(
        bucket="test-bucket",
        endpoint="http://localhost:9000",
        access_key_id="minioadmin",
        secret_access_key="minioadmin",
    )

    _ = S3Store(config).client

    mock_session.assert_called_once_with(
        aws_access_key_id="minioadmin",
        aws_secret_access_key="minioadmin",
    )
    call_kwargs = mock_session.return_value.client.call_args[1]
    assert call_kwargs["endpoint_url"] == "http://localhost:9000"


@patch("boto3.Session", side_effect=RuntimeError("no credentials"))
def test_client_creation_failure(mock_session: MagicMock, s3_config: S3Config) -> None:
    with pytest.raises(StorageError, match="Failed to create S3 client"):
        _ = S3Store(s3_config).client


def test_key_and_name_mapping(store: S3Store) -> None:
    assert store.key_for("backup.sql.gz") == "backups/backup.sql.gz"
    assert store.key_for("backups/backup.sql.gz") == "backups/backup.sql.gz"
    assert store.name_for("backups/daily/backup.sql") == "daily/backup.sql"
    assert store.name_for("elsewhere/backup.sql") == "elsewhere/backup.sql"


def test_key_mapping_without_prefix() -> None:
    store = S3Store(S3Config(bucket="test-bucket"))
    assert store.key_for("backup.sql") == "backup.sql"
    assert store.name_for("backup.sql") == "backup.sql"


def test_validate_access_success(store: S3Store, mock_s3_client: MagicMock) -> None:
    """Test bucket validation writes and removes a check object."""
    store.validate_access()

    mock_s3_client.head_bucket.assert_called_once_with(Bucket="test-bucket")
    check_key = mock_s3_client.put_object.call_args[1]["Key"]
    assert check_key.startswith("backups/dumpvault_write_check_")
    mock_s3_client.delete_object.assert_called_once_with(Bucket="test-bucket", Key=check_key)


@pytest.mark.parametrize(
    ("code", "message"),
    [
        ("404", "Bucket not found: test-bucket"),
        ("NoSuchBucket", "Bucket not found: test-bucket"),
        ("403", "Access denied to bucket: test-bucket"),
        ("SlowDown", "Bucket validation failed: SlowDown"),
    ],
)
def test_validate_access_errors(
    store: S3Store, mock_s3_client: MagicMock, code: str, message: str
) -> None:
    mock_s3_client.head_bucket.side_effect = _client_error(code, "HeadBucket")

    with pytest.raises(StorageError, match=message):
        store.validate_access()


def test_validate_access_read_only_bucket(store: S3Store, mock_s3_client: MagicMock) -> None:
    mock_s3_client.put_object.side_effect = _client_error("AccessDenied", "PutObject")

    with pytest.raises(StorageError, match="Access denied"):
        store.validate_access()


def test_validate_access_connection_error(store: S3Store, mock_s3_client: MagicMock) -> None:
    mock_s3_client.head_bucket.side_effect = EndpointConnectionError(endpoint_url="http://x")

    with pytest.raises(StorageError, match="S3 client error during bucket validation"):
        store.validate_access()


def test_list_artifacts(store: S3Store, mock_s3_client: MagicMock) -> None:
    """Test listing skips folder markers and sorts newest first."""
    paginator = MagicMock()
    paginator.paginate.return_value = [
        {
            "Contents": [
                {
                    "Key": "backups/",
                    "LastModified": datetime(2024, 1, 1, tzinfo=timezone.utc),
                    "Size": 0,
                },
                {
                    "Key": "backups/old.sql.gz",
                    "LastModified": datetime(2024, 1, 1, tzinfo=timezone.utc),
                    "Size": 10,
                },
            ]
        },
        {
            "Contents": [
                {
                    "Key": "backups/new.sql.gz",
                    "LastModified": datetime(2024, 1, 2, tzinfo=timezone.utc),
                    "Size": 20,
                },
            ]
        },
        {},
    ]
    mock_s3_client.get_paginator.return_value = paginator

    artifacts = store.list_artifacts()

    paginator.paginate.assert_called_once_with(Bucket="test-bucket", Prefix="backups/")
    assert [a.name for a in artifacts] == ["new.sql.gz", "old.sql.gz"]
    assert artifacts[0].id == "backups/new.sql.gz"
    assert artifacts[0].size == 20


def test_list_artifacts_failure(store: S3Store, mock_s3_client: MagicMock) -> None:
    mock_s3_client.get_paginator.return_value.paginate.side_effect = _client_error(
        "AccessDenied", "ListObjectsV2"
    )

    with pytest.raises(StorageError, match="S3 list failed: AccessDenied"):
        store.list_artifacts()


def test_list_retries_transient_errors(s3_config: S3Config, mock_s3_client: MagicMock) -> None:
    """Test listing is retried before giving up."""
    store = S3Store(s3_config, retry_config=RetryConfig(max_attempts=2, initial_delay=0.0))
    store._client = mock_s3_client
    paginator = MagicMock()
    paginator.paginate.side_effect = [
        _client_error("SlowDown", "ListObjectsV2"),
        [{"Contents": []}],
    ]
    mock_s3_client.get_paginator.return_value = paginator

    assert store.list_artifacts() == []
    assert paginator.paginate.call_count == 2


def test_download(store: S3Store, mock_s3_client: MagicMock, tmp_path: Path) -> None:
    target = tmp_path / "nested" / "backup.sql.gz"

    store.download("backups/backup.sql.gz", target)

    assert target.parent.is_dir()
    mock_s3_client.download_file.assert_called_once_with(
        Bucket="test-bucket", Key="backups/backup.sql.gz", Filename=str(target)
    )


def test_download_failure(store: S3Store, mock_s3_client: MagicMock, tmp_path: Path) -> None:
    mock_s3_client.download_file.side_effect = _client_error("404", "HeadObject")

    with pytest.raises(StorageError, match="S3 download failed: 404") as exc_info:
        store.download("backups/missing.sql", tmp_path / "missing.sql")

    assert exc_info.value.context["key"] == "backups/missing.sql"


def test_delete(store: S3Store, mock_s3_client: MagicMock) -> None:
    store.delete("backups/old.sql.gz")
    mock_s3_client.delete_object.assert_called_once_with(
        Bucket="test-bucket", Key="backups/old.sql.gz"
    )


def test_delete_failure_is_not_retried(s3_config: S3Config, mock_s3_client: MagicMock) -> None:
    store = S3Store(s3_config, retry_config=RetryConfig(max_attempts=5, initial_delay=0.0))
    store._client = mock_s3_client
    mock_s3_client.delete_object.side_effect = _client_error("AccessDenied", "DeleteObject")

    with pytest.raises(StorageError, match="S3 delete failed: AccessDenied"):
        store.delete("backups/old.sql.gz")

    assert mock_s3_client.delete_object.call_count == 1


def test_upload(store: S3Store, mock_s3_client: MagicMock, tmp_path: Path) -> None:
    """Test upload sends the storage class and verifies the size."""
    local = tmp_path / "dump.sql.gz"
    local.write_bytes(b"x" * 128)
    mock_s3_client.head_object.return_value = {"ContentLength": 128}

    result = store.upload(local, "backup_1.sql.gz")

    assert result == {"bucket": "test-bucket", "key": "backups/backup_1.sql.gz", "size": 128}
    mock_s3_client.upload_file.assert_called_once_with(
        Filename=str(local),
        Bucket="test-bucket",
        Key="backups/backup_1.sql.gz",
        ExtraArgs={"StorageClass": "STANDARD"},
    )


def test_upload_size_mismatch(store: S3Store, mock_s3_client: MagicMock, tmp_path: Path) -> None:
    local = tmp_path / "dump.sql"
    local.write_bytes(b"x" * 128)
    mock_s3_client.head_object.return_value = {"ContentLength": 64}

    with pytest.raises(StorageError, match="size mismatch"):
        store.upload(local, "backup_1.sql")


@pytest.fixture
def stubbed_store(s3_config: S3Config):
    """Store backed by a real boto3 client whose responses are stubbed."""
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    store = S3Store(s3_config, retry_config=NO_RETRY)
    store._client = client
    with Stubber(client) as stubber:
        yield store, stubber


def test_upload_failure(stubbed_store, tmp_path: Path) -> None:
    """Test an upload rejected by S3 surfaces as StorageError with the S3 code."""
    store, stubber = stubbed_store
    stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
    local = tmp_path / "dump.sql"
    local.write_bytes(b"x")

    with pytest.raises(StorageError, match="S3 upload failed: AccessDenied") as exc_info:
        store.upload(local, "backup_1.sql")

    assert exc_info.value.context["key"] == "backups/backup_1.sql"


def test_download_failure_from_transfer_layer(stubbed_store, tmp_path: Path) -> None:
    store, stubber = stubbed_store
    stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)

    with pytest.raises(StorageError, match="S3 download failed: 404"):
        store.download("backups/missing.sql", tmp_path / "missing.sql")


def test_download_retries_exhausted(store: S3Store, mock_s3_client: MagicMock, tmp_path: Path) -> None:
    """Test the transfer manager giving up on a flaky connection."""
    mock_s3_client.download_file.side_effect = RetriesExceededError(
        last_exception=ConnectionResetError("reset by peer")
    )

    with pytest.raises(StorageError, match="S3 download failed: RetriesExceededError"):
        store.download("backups/backup.sql.gz", tmp_path / "backup.sql.gz")


def test_download_retries_exhausted_is_retried(
    s3_config: S3Config, mock_s3_client: MagicMock, tmp_path: Path
) -> None:
    store = S3Store(s3_config, retry_config=RetryConfig(max_attempts=2, initial_delay=0.0))
    store._client = mock_s3_client
    mock_s3_client.download_file.side_effect = [
        RetriesExceededError(last_exception=ConnectionResetError("reset by peer")),
        None,
    ]

    store.download("backups/backup.sql.gz", tmp_path / "backup.sql.gz")

    assert mock_s3_client.download_file.call_count == 2
