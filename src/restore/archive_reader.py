"""Turn a downloaded backup (.sql, .gz or .zip) into plain SQL files."""

import shutil
import zipfile
from pathlib import Path, PurePosixPath
from typing import Optional

import structlog

from dumpvault.compressor import Compressor
from dumpvault.exceptions import DumpVaultError, ExtractionError, UnsupportedFormatError
from utils.logging import get_logger

SUPPORTED_EXTENSIONS = (".sql", ".gz", ".zip")
CHUNK_SIZE = 1024 * 1024


class ArchiveReader:
    """Dispatches on the file extension and extracts dump files into a work dir."""

    def __init__(
        self,
        compressor: Optional[Compressor] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        self.logger = logger or get_logger("archive_reader")
        self.compressor = compressor or Compressor(chunk_size=CHUNK_SIZE, logger=self.logger)

    def prepare_sql_files(self, local_path: Path, work_dir: Path) -> list[Path]:
        """SQL files contained in ``local_path``, in archive order.

        Args:
            local_path: Downloaded backup file
            work_dir: Directory receiving extracted files

        Returns:
            One path for .sql and .gz, one path per .sql entry for .zip

        Raises:
            UnsupportedFormatError: If the extension is not .sql, .gz or .zip
            ExtractionError: If the archive is corrupt or holds no .sql entry
        """
        extension = local_path.suffix.lower()
        if extension not in SUPPORTED_EXTENSIONS:
            raise UnsupportedFormatError(
                f"Unsupported file type: {extension or '(none)'}",
                context={"file": local_path.name},
            )

        if extension == ".sql":
            return [local_path]

        work_dir.mkdir(parents=True, exist_ok=True)
        if extension == ".gz":
            return [self._gunzip(local_path, work_dir)]
        return self._unzip_sql_files(local_path, work_dir)

    def _gunzip(self, gz_path: Path, work_dir: Path) -> Path:
        target = work_dir / gz_path.name[: -len(".gz")]
        try:
            size = self.compressor.decompress_file(gz_path, target)
        except DumpVaultError as e:
            target.unlink(missing_ok=True)
            raise ExtractionError(
                f"Unable to decompress archive {gz_path.name}: {e.message}",
                context={"archive": str(gz_path)},
            ) from e

        self.logger.debug("Archive decompressed", archive=gz_path.name, target=str(target), size=size)
        return target

    def _unzip_sql_files(self, zip_path: Path, work_dir: Path) -> list[Path]:
        extracted: list[Path] = []
        try:
            with zipfile.ZipFile(zip_path) as archive:
                for entry in archive.infolist():
                    if entry.is_dir() or PurePosixPath(entry.filename).suffix.lower() != ".sql":
                        continue
                    # Entries are flattened to their base name inside the work dir
                    target = work_dir / PurePosixPath(entry.filename).name
                    if target not in extracted:
                        extracted.append(target)
                    with archive.open(entry) as src, open(target, "wb") as dst:
                        shutil.copyfileobj(src, dst, CHUNK_SIZE)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, EOFError) as e:
            self._discard(extracted)
            raise ExtractionError(
                f"Unable to extract ZIP {zip_path.name}: {e}",
                context={"archive": str(zip_path)},
            ) from e

        if not extracted:
            raise ExtractionError(
                "No .sql files found inside ZIP.",
                context={"archive": str(zip_path)},
            )

        self.logger.debug("ZIP extracted", archive=zip_path.name, files=len(extracted))
        return extracted

    def _discard(self, paths: list[Path]) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                self.logger.warning("Failed to remove partial file", path=str(path), error=str(e))
