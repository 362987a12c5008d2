"""S3-backed remote store for backup files."""

import time
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import boto3
from boto3.exceptions import Boto3Error, RetriesExceededError
from botocore.exceptions import BotoCoreError, ClientError
from structlog import BoundLogger

from dumpvault.artifacts import RemoteArtifact
from dumpvault.config import S3Config
from dumpvault.exceptions import StorageError
from utils.logging import get_logger
from utils.retry import RetryConfig, retry_sync

T = TypeVar("T")


def _error_code(error: Exception) -> str:
    # The transfer manager wraps the ClientError it got from S3
    if isinstance(error, Boto3Error) and isinstance(error.__context__, ClientError):
        error = error.__context__
    if isinstance(error, ClientError):
        return str(error.response.get("Error", {}).get("Code", "Unknown"))
    return type(error).__name__


class S3Store:
    """List, fetch, upload and delete backups under one bucket prefix."""

    def __init__(
        self,
        config: S3Config,
        logger: Optional[BoundLogger] = None,
        retry_config: Optional[RetryConfig] = None,
    ) -> None:
        """Initialize S3 store.

        Args:
            config: S3 configuration
            logger: Optional logger instance
            retry_config: Retry policy for transient S3 failures
        """
        self.config = config
        self.logger = logger or get_logger("s3")
        self._client: Optional[Any] = None
        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            initial_delay=1.0,
            max_delay=30.0,
            exponential_base=2.0,
            jitter=True,
            retryable_exceptions=(ClientError, BotoCoreError, RetriesExceededError),
        )

    @property
    def client(self) -> Any:
        """Get or create S3 client."""
        if self._client is None:
            try:
                credentials = self.config.get_credentials()

                if credentials:
                    session = boto3.Session(
                        aws_access_key_id=credentials["aws_access_key_id"],
                        aws_secret_access_key=credentials["aws_secret_access_key"],
                    )
                else:
                    session = boto3.Session()

                s3_kwargs: dict[str, Any] = {
                    "service_name": "s3",
                    "region_name": self.config.region,
                }
                if self.config.endpoint:
                    s3_kwargs["endpoint_url"] = self.config.endpoint

                self._client = session.client(**s3_kwargs)
                self.logger.debug(
                    "S3 client initialized",
                    bucket=self.config.bucket,
                    endpoint=self.config.endpoint or "AWS S3",
                    region=self.config.region,
                )
            except Exception as e:
                raise StorageError(
                    f"Failed to create S3 client: {e}",
                    context={"bucket": self.config.bucket},
                ) from e

        return self._client

    def key_for(self, name: str) -> str:
        """Full object key of a backup called ``name``."""
        name = name.lstrip("/")
        folder = self.config.folder
        if folder and name.startswith(folder):
            return name
        return f"{folder}{name}"

    def name_for(self, key: str) -> str:
        """Backup name of an object key (the key relative to the folder)."""
        folder = self.config.folder
        return key[len(folder) :] if folder and key.startswith(folder) else key

    def _call(self, operation: str, func: Callable[[], T], **context: Any) -> T:
        """Run an S3 call with retries, translating failures to StorageError."""
        try:
            return retry_sync(func, config=self.retry_config, logger=self.logger)
        except (ClientError, BotoCoreError, Boto3Error) as e:
            code = _error_code(e)
            raise StorageError(
                f"S3 {operation} failed: {code}",
                context={"bucket": self.config.bucket, "error_code": code, **context},
            ) from e

    def validate_access(self) -> None:
        """Check that the bucket exists and backups can be written to it.

        Raises:
            StorageError: If the bucket is missing, unreachable or read-only
        """
        try:
            self.client.head_bucket(Bucket=self.config.bucket)
            self.logger.debug("Bucket exists and is accessible", bucket=self.config.bucket)

            # MinIO rejects keys with leading dots, keep the key alphanumeric
            check_key = self.key_for(f"dumpvault_write_check_{int(time.time())}.tmp")
            self.client.put_object(Bucket=self.config.bucket, Key=check_key, Body=b"dumpvault")
            self.client.delete_object(Bucket=self.config.bucket, Key=check_key)

            self.logger.debug("Bucket write permissions validated", bucket=self.config.bucket)

        except ClientError as e:
            error_code = _error_code(e)
            if error_code in ("404", "NoSuchBucket"):
                message = f"Bucket not found: {self.config.bucket}"
            elif error_code in ("403", "AccessDenied"):
                message = f"Access denied to bucket: {self.config.bucket}"
            else:
                message = f"Bucket validation failed: {error_code}"
            raise StorageError(message, context={"bucket": self.config.bucket}) from e
        except (BotoCoreError, Boto3Error) as e:
            raise StorageError(
                f"S3 client error during bucket validation: {e}",
                context={"bucket": self.config.bucket},
            ) from e

    def list_artifacts(self) -> list[RemoteArtifact]:
        """List backups in the folder, newest first.

        Folder placeholder objects (keys ending in ``/``) are skipped.

        Raises:
            StorageError: If listing fails
        """
        prefix = self.config.folder

        def _list() -> list[RemoteArtifact]:
            artifacts = []
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.config.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    key = obj["Key"]
                    if key.endswith("/"):
                        continue
                    artifacts.append(
                        RemoteArtifact(
                            id=key,
                            name=self.name_for(key),
                            modified_at=obj["LastModified"],
                            size=obj.get("Size", 0),
                        )
                    )
            return artifacts

        artifacts = self._call("list", _list, prefix=prefix)
        artifacts.sort(key=lambda a: a.modified_at, reverse=True)

        self.logger.debug(
            "S3 objects listed",
            bucket=self.config.bucket,
            prefix=prefix,
            count=len(artifacts),
        )
        return artifacts

    def download(self, artifact_id: str, local_path: Path) -> None:
        """Download a backup to ``local_path``.

        Raises:
            StorageError: If download fails
        """
        local_path.parent.mkdir(parents=True, exist_ok=True)
        self.logger.debug(
            "Downloading file from S3",
            bucket=self.config.bucket,
            key=artifact_id,
            local_path=str(local_path),
        )
        self._call(
            "download",
            lambda: self.client.download_file(
                Bucket=self.config.bucket,
                Key=artifact_id,
                Filename=str(local_path),
            ),
            key=artifact_id,
            local_path=str(local_path),
        )

    def delete(self, artifact_id: str) -> None:
        """Delete one backup. Not retried: deletion is best-effort per file.

        Raises:
            StorageError: If the delete call fails
        """
        try:
            self.client.delete_object(Bucket=self.config.bucket, Key=artifact_id)
        except (ClientError, BotoCoreError, Boto3Error) as e:
            code = _error_code(e)
            raise StorageError(
                f"S3 delete failed: {code}",
                context={"bucket": self.config.bucket, "key": artifact_id, "error_code": code},
            ) from e
        self.logger.debug("Object deleted", bucket=self.config.bucket, key=artifact_id)

    def upload(self, file_path: Path, remote_name: str) -> dict[str, Any]:
        """Upload a local file as backup ``remote_name`` and verify its size.

        Args:
            file_path: Local file path
            remote_name: Backup name relative to the folder

        Returns:
            Dictionary with upload metadata (bucket, key, size)

        Raises:
            StorageError: If upload or verification fails
        """
        key = self.key_for(remote_name)
        file_size = file_path.stat().st_size

        self.logger.debug(
            "Starting file upload",
            bucket=self.config.bucket,
            key=key,
            size=file_size,
        )

        # upload_file switches to multipart on its own for large dumps
        self._call(
            "upload",
            lambda: self.client.upload_file(
                Filename=str(file_path),
                Bucket=self.config.bucket,
                Key=key,
                ExtraArgs={"StorageClass": self.config.storage_class},
            ),
            key=key,
        )

        response = self._call(
            "head_object",
            lambda: self.client.head_object(Bucket=self.config.bucket, Key=key),
            key=key,
        )
        actual_size = response.get("ContentLength", 0)
        if actual_size != file_size:
            raise StorageError(
                f"Upload verification failed: size mismatch "
                f"(expected {file_size}, got {actual_size})",
                context={"bucket": self.config.bucket, "key": key},
            )

        self.logger.debug("File upload successful", bucket=self.config.bucket, key=key)
        return {"bucket": self.config.bucket, "key": key, "size": file_size}
