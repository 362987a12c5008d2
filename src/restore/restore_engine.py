"""Restore pipeline: find → download → extract → filter → import → clean up."""

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Callable, Optional

import structlog

from dumpvault.artifacts import RemoteArtifact
from dumpvault.exceptions import DumpVaultError, NotFoundError, RestoreStageError
from dumpvault.mysql_tools import MysqlImporter
from dumpvault.s3_client import S3Store
from restore.archive_reader import ArchiveReader
from restore.table_filter import TableFilter, TableSelection
from utils.logging import get_logger
from utils.masks import compile_mask


class RestoreState(StrEnum):
    """Pipeline states; a run only ever moves forward."""

    SEARCHING = "searching"
    FOUND = "found"
    NOT_FOUND = "not_found"
    DOWNLOADED = "downloaded"
    EXTRACTED = "extracted"
    FILTERED = "filtered"
    EMPTY = "empty"
    IMPORTED = "imported"
    CLEANED_UP = "cleaned_up"


@dataclass
class RestoreOutcome:
    """Result of a finished (successful) restore run."""

    state: RestoreState
    artifact: RemoteArtifact
    files: list[Path] = field(default_factory=list)
    imported: list[Path] = field(default_factory=list)
    message: str = ""
    history: list[RestoreState] = field(default_factory=list)


def find_latest(artifacts: list[RemoteArtifact], mask: str) -> Optional[RemoteArtifact]:
    """First artifact whose name matches ``mask``.

    The listing is newest first, so this is the latest matching backup.
    """
    predicate = compile_mask(mask)
    for artifact in artifacts:
        if predicate(artifact.name):
            return artifact
    return None


class RestoreOrchestrator:
    """Restores one backup into the configured database.

    Every stage either completes or ends the run with a RestoreStageError
    naming the stage. Nothing is rolled back: files of a failed run stay in
    the work dir for inspection.
    """

    def __init__(
        self,
        store: S3Store,
        importer: MysqlImporter,
        work_dir: Path,
        reader: Optional[ArchiveReader] = None,
        progress: Optional[Callable[[str], None]] = None,
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        """Initialize restore orchestrator.

        Args:
            store: Remote store to search and download from
            importer: Import step fed with every remaining file
            work_dir: Per-run temporary directory (exclusive to this run)
            reader: Archive reader (default: ArchiveReader())
            progress: Callback receiving human-readable progress lines
            logger: Optional logger instance
        """
        self.store = store
        self.importer = importer
        self.work_dir = work_dir
        self.logger = logger or get_logger("restore")
        self.reader = reader or ArchiveReader(logger=self.logger)
        self.progress = progress or (lambda message: None)
        self.history: list[RestoreState] = []
        self._created: list[Path] = []

    @property
    def state(self) -> Optional[RestoreState]:
        return self.history[-1] if self.history else None

    def _enter(self, state: RestoreState) -> None:
        self.history.append(state)
        self.logger.debug("Restore state changed", state=str(state))

    def run(
        self,
        mask: str,
        selection: Optional[TableSelection] = None,
        keep_temp: bool = False,
    ) -> RestoreOutcome:
        """Restore the latest backup matching ``mask``.

        Args:
            mask: Wildcard mask for the backup name
            selection: Tables to restore (None or empty: all)
            keep_temp: Leave downloaded and extracted files in place

        Returns:
            Outcome in state EMPTY or CLEANED_UP (IMPORTED when keep_temp is set)

        Raises:
            RestoreStageError: If any stage fails, including no matching backup
        """
        selection = selection or TableSelection()
        self.history = []
        self._created = []

        artifact = self._search(mask)
        local_path = self._download(artifact)
        files = self._extract(local_path)
        files = self._filter(files, selection)

        if not files:
            self._enter(RestoreState.EMPTY)
            message = "No SQL files left after filtering."
            self.progress(message)
            return RestoreOutcome(
                state=RestoreState.EMPTY,
                artifact=artifact,
                message=message,
                history=list(self.history),
            )

        imported = self._import(files)
        self.progress("Restore completed successfully.")

        if keep_temp:
            self.progress("Skipping cleanup as requested (--keep-temp).")
        else:
            self.cleanup()

        return RestoreOutcome(
            state=self.state,
            artifact=artifact,
            files=files,
            imported=imported,
            message="Restore completed successfully.",
            history=list(self.history),
        )

    def _search(self, mask: str) -> RemoteArtifact:
        self._enter(RestoreState.SEARCHING)
        self.progress(f"Searching remote storage for mask: {mask}")
        try:
            artifact = find_latest(self.store.list_artifacts(), mask)
        except DumpVaultError as e:
            raise RestoreStageError("search", e) from e

        if artifact is None:
            self._enter(RestoreState.NOT_FOUND)
            error = NotFoundError(
                f"File matching '{mask}' not found in remote storage.",
                context={"mask": mask},
            )
            raise RestoreStageError("search", error) from error

        self._enter(RestoreState.FOUND)
        self.progress(f"Found: {artifact.name} (modified: {artifact.modified_at.isoformat()})")
        return artifact

    def _download(self, artifact: RemoteArtifact) -> Path:
        # Nested names ("daily/x.sql.gz") land flat in the work dir
        local_path = self.work_dir / Path(artifact.name).name
        self.progress("Downloading file...")
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            self.store.download(artifact.id, local_path)
        except (OSError, DumpVaultError) as e:
            raise RestoreStageError("download", e) from e

        self._created.append(local_path)
        self._enter(RestoreState.DOWNLOADED)
        self.progress(f"Saved to: {local_path}")
        return local_path

    def _extract(self, local_path: Path) -> list[Path]:
        try:
            files = self.reader.prepare_sql_files(local_path, self.work_dir)
        except DumpVaultError as e:
            raise RestoreStageError("extraction", e) from e

        self._created.extend(f for f in files if f not in self._created)
        self._enter(RestoreState.EXTRACTED)
        return files

    def _filter(self, files: list[Path], selection: TableSelection) -> list[Path]:
        if not selection.is_empty:
            self.progress(
                f"Filtering tables (only: {', '.join(selection.only) or '-'}; "
                f"except: {', '.join(selection.except_) or '-'})"
            )
        try:
            files = TableFilter(selection, logger=self.logger).filter_files(files, self.work_dir)
        except DumpVaultError as e:
            raise RestoreStageError("table filtering", e) from e

        self._created.extend(f for f in files if f not in self._created)
        self._enter(RestoreState.FILTERED)
        return files

    def _import(self, files: list[Path]) -> list[Path]:
        imported = []
        for path in files:
            self.progress(f"Importing: {path.name}")
            try:
                self.importer.import_file(path)
            except DumpVaultError as e:
                raise RestoreStageError("import", e) from e
            imported.append(path)

        self._enter(RestoreState.IMPORTED)
        return imported

    def cleanup(self) -> list[Path]:
        """Remove the files this run created; the work dir itself stays.

        Failures are logged per file and never raised.

        Returns:
            Paths that were removed
        """
        removed: list[Path] = []
        root = self.work_dir.resolve()
        if root == Path(root.anchor):
            self.progress("Cleanup skipped: restore directory resolves to a filesystem root.")
            self.logger.warning("Cleanup skipped, work dir is a filesystem root", work_dir=str(root))
            self._enter(RestoreState.CLEANED_UP)
            return removed

        self.progress("Cleaning up current-run temporary files...")
        for path in self._created:
            try:
                if path.resolve().parent != root or not path.is_file():
                    continue
                path.unlink()
                removed.append(path)
            except OSError as e:
                self.logger.warning("Failed to remove temporary file", path=str(path), error=str(e))
                self.progress(f"Cleanup failed for {path.name}: {e}")

        self._enter(RestoreState.CLEANED_UP)
        return removed
