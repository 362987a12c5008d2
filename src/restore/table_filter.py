"""Table-level filtering of mysqldump output.

Two shapes of input are handled:

* several files, one table each (extracted from a ZIP): whole files are kept
  or dropped by their base name;
* one big dump: the file is rewritten line by line, dropping the blocks of
  unselected tables. Only the current line is ever held in memory.

A table block starts at any of the markers mysqldump writes before a table's
statements and lasts until the next marker or an ``UNLOCK TABLES;`` line.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import structlog

from dumpvault.exceptions import FilterIOError
from utils.logging import get_logger
from utils.masks import matches_any

# Checked in this order on every line; the first hit names the table
BLOCK_MARKERS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        rb"^-- Table structure for table `([^`]+)`",
        rb"^DROP TABLE IF EXISTS `([^`]+)`",
        rb"^CREATE TABLE `([^`]+)`",
        rb"^LOCK TABLES `([^`]+)`",
        rb"^INSERT INTO `([^`]+)`",
    )
)
BLOCK_TERMINATOR = b"UNLOCK TABLES;"
FILTERED_PREFIX = "filtered-"


@dataclass(frozen=True)
class TableSelection:
    """Which tables a restore keeps.

    A table is selected when it matches one of ``only`` (or ``only`` is empty)
    and matches none of ``except_``. Matching is case-insensitive.
    """

    only: tuple[str, ...] = ()
    except_: tuple[str, ...] = ()

    @classmethod
    def from_lists(
        cls, only: Optional[Sequence[str]] = None, except_: Optional[Sequence[str]] = None
    ) -> "TableSelection":
        return cls(only=tuple(only or ()), except_=tuple(except_ or ()))

    @property
    def is_empty(self) -> bool:
        return not self.only and not self.except_

    def select(self, table: str) -> bool:
        if self.only and not matches_any(table, self.only):
            return False
        return not (self.except_ and matches_any(table, self.except_))


@dataclass
class DumpBlockCursor:
    """Where the scan of a single dump currently is."""

    current_table: Optional[str] = None
    emitting: bool = True

    def enter(self, table: str, selection: TableSelection) -> None:
        self.current_table = table
        self.emitting = selection.select(table)

    def reset(self) -> None:
        self.current_table = None
        self.emitting = True

    def should_write(self) -> bool:
        return self.current_table is None or self.emitting


def detect_table(line: bytes) -> Optional[str]:
    """Name of the table a block marker line introduces, if it is one."""
    for marker in BLOCK_MARKERS:
        match = marker.match(line)
        if match:
            return match.group(1).decode("utf-8", errors="replace")
    return None


class TableFilter:
    """Narrows a set of dump files down to the selected tables."""

    def __init__(
        self,
        selection: TableSelection,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        self.selection = selection
        self.logger = logger or get_logger("table_filter")

    def filter_files(self, files: Sequence[Path], work_dir: Path) -> list[Path]:
        """Apply the selection to the files of one restore.

        Args:
            files: Dump files from the archive reader
            work_dir: Directory receiving the rewritten single-file dump

        Returns:
            The files to import, possibly empty

        Raises:
            FilterIOError: If a dump cannot be read or written
        """
        if self.selection.is_empty or not files:
            return list(files)

        if len(files) > 1:
            return self.filter_multi_files(files)

        source = files[0]
        filtered = self.filter_single_file(source, work_dir / f"{FILTERED_PREFIX}{source.name}")
        return [filtered] if filtered is not None else []

    def filter_multi_files(self, files: Sequence[Path]) -> list[Path]:
        """Keep the files whose base name is a selected table."""
        kept = [f for f in files if self.selection.select(f.stem.lower())]
        self.logger.debug(
            "Per-table files filtered",
            total=len(files),
            kept=[f.name for f in kept],
        )
        return kept

    def filter_single_file(self, source: Path, destination: Path) -> Optional[Path]:
        """Copy ``source`` to ``destination`` without the unselected table blocks.

        Returns:
            ``destination``, or None when nothing was written (the empty
            file is removed)

        Raises:
            FilterIOError: If either file cannot be opened, read or written
        """
        cursor = DumpBlockCursor()
        written = 0
        try:
            with open(source, "rb") as src, open(destination, "wb") as dst:
                for line in src:
                    table = detect_table(line)
                    if table is not None:
                        cursor.enter(table, self.selection)

                    if cursor.should_write():
                        dst.write(line)
                        written += len(line)

                    if cursor.current_table is not None and line.strip().upper() == BLOCK_TERMINATOR:
                        cursor.reset()
        except OSError as e:
            raise FilterIOError(
                f"Unable to open files for filtering: {e}",
                context={"source": str(source), "destination": str(destination)},
            ) from e

        if written == 0:
            destination.unlink(missing_ok=True)
            self.logger.debug("Filtered dump is empty", source=source.name)
            return None

        self.logger.debug(
            "Dump filtered",
            source=source.name,
            destination=destination.name,
            bytes_written=written,
        )
        return destination


def filter_sql_files(
    files: Sequence[Path],
    selection: TableSelection,
    work_dir: Path,
    logger: Optional[structlog.BoundLogger] = None,
) -> list[Path]:
    """Shortcut for ``TableFilter(selection).filter_files(files, work_dir)``."""
    return TableFilter(selection, logger=logger).filter_files(files, work_dir)
