"""Streaming gzip compression of dump files."""

import gzip
import shutil
import zlib
from pathlib import Path
from typing import Optional

import structlog

from dumpvault.exceptions import DumpVaultError
from utils.logging import get_logger

CHUNK_SIZE = 512 * 1024


class Compressor:
    """Gzips and gunzips files chunk by chunk, never loading them whole."""

    def __init__(
        self,
        compression_level: int = 9,
        chunk_size: int = CHUNK_SIZE,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        """Initialize compressor.

        Args:
            compression_level: Gzip compression level (1-9, default: 9)
            chunk_size: Bytes copied per read
            logger: Optional logger instance
        """
        if not 1 <= compression_level <= 9:
            raise ValueError(f"Compression level must be between 1 and 9, got {compression_level}")

        self.compression_level = compression_level
        self.chunk_size = chunk_size
        self.logger = logger or get_logger("compressor")

    def compress_file(self, source: Path, destination: Path) -> tuple[int, int]:
        """Gzip ``source`` into ``destination``.

        Returns:
            Tuple of (uncompressed_size, compressed_size)

        Raises:
            DumpVaultError: If the source is missing or the output is empty
        """
        if not source.is_file():
            raise DumpVaultError(
                f"Source file not found for compression: {source}",
                context={"source": str(source)},
            )

        try:
            with open(source, "rb") as src, gzip.open(
                destination, "wb", compresslevel=self.compression_level
            ) as dst:
                shutil.copyfileobj(src, dst, self.chunk_size)
        except OSError as e:
            raise DumpVaultError(
                f"Compression failed: {e}",
                context={"source": str(source), "destination": str(destination)},
            ) from e

        uncompressed_size = source.stat().st_size
        compressed_size = destination.stat().st_size if destination.is_file() else 0
        if compressed_size == 0:
            raise DumpVaultError(
                f"Compressed file not created or empty: {destination}",
                context={"destination": str(destination)},
            )

        compression_ratio = (
            (1 - compressed_size / uncompressed_size) * 100 if uncompressed_size > 0 else 0
        )
        self.logger.debug(
            "Compression completed",
            uncompressed_size=uncompressed_size,
            compressed_size=compressed_size,
            compression_ratio=f"{compression_ratio:.1f}%",
            level=self.compression_level,
        )
        return uncompressed_size, compressed_size

    def decompress_file(self, source: Path, destination: Path) -> int:
        """Gunzip ``source`` into ``destination``.

        Returns:
            Size of the decompressed file

        Raises:
            DumpVaultError: If the archive cannot be read or is corrupt
        """
        try:
            with gzip.open(source, "rb") as src, open(destination, "wb") as dst:
                shutil.copyfileobj(src, dst, self.chunk_size)
        except (OSError, EOFError, zlib.error) as e:
            raise DumpVaultError(
                f"Decompression failed: {e}",
                context={"source": str(source), "destination": str(destination)},
            ) from e

        return destination.stat().st_size
