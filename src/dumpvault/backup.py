"""Create a dump, optionally gzip it and upload it to the backup folder."""

from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from dumpvault.compressor import Compressor
from dumpvault.config import BackupConfig
from dumpvault.exceptions import DumpVaultError
from dumpvault.mysql_tools import MysqlDumper
from dumpvault.s3_client import S3Store
from utils.logging import get_logger


class BackupRunner:
    """Runs one backup: dump → compress → upload → remove local files."""

    def __init__(
        self,
        config: BackupConfig,
        store: S3Store,
        dumper: MysqlDumper,
        compressor: Optional[Compressor] = None,
        progress: Optional[Callable[[str], None]] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.dumper = dumper
        self.logger = logger or get_logger("backup")
        self.compressor = compressor or Compressor(
            compression_level=config.compression_level, logger=self.logger
        )
        self.progress = progress or (lambda message: None)

    def run(self, now: datetime) -> dict[str, Any]:
        """Back up the database as of ``now``.

        Args:
            now: Time rendered into the ``{timestamp}`` placeholder

        Returns:
            Dictionary with remote_name, key, size and compressed

        Raises:
            DumpError: If the dump cannot be produced
            DumpVaultError: If compression fails
            StorageError: If the upload fails
        """
        timestamp = now.strftime(self.config.timestamp_format)
        dump_path = self.config.render_temp_path(timestamp)
        remote_name = self.config.render_name(timestamp)
        gz_path = dump_path.with_name(dump_path.name + ".gz")
        log = self.logger.bind(remote_name=remote_name)

        try:
            self.progress("Creating MySQL dump...")
            self.dumper.dump(dump_path)
            self.progress(f"Dump created at: {dump_path}")

            upload_path = dump_path
            if self.config.compress:
                self.progress("Compressing dump with gzip...")
                self.compressor.compress_file(dump_path, gz_path)
                upload_path = gz_path
                if not remote_name.endswith(".gz"):
                    remote_name += ".gz"
                self.progress(f"Compressed file: {gz_path}")

            self.progress("Uploading dump...")
            result = self.store.upload(upload_path, remote_name)
        except DumpVaultError:
            log.error("Backup failed", dump_path=str(dump_path))
            raise
        finally:
            self._remove_local(dump_path, gz_path)

        log.info("Backup uploaded", key=result["key"], size=result["size"])
        return {
            "remote_name": remote_name,
            "key": result["key"],
            "size": result["size"],
            "compressed": self.config.compress,
        }

    def _remove_local(self, *paths: Path) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                self.logger.warning("Failed to remove temporary file", path=str(path), error=str(e))
