"""Restore utility: fetch a backup, narrow it to selected tables, import it."""

from restore.archive_reader import ArchiveReader
from restore.restore_engine import RestoreOrchestrator, RestoreOutcome, RestoreState
from restore.table_filter import TableFilter, TableSelection

__all__ = [
    "ArchiveReader",
    "RestoreOrchestrator",
    "RestoreOutcome",
    "RestoreState",
    "TableFilter",
    "TableSelection",
]
