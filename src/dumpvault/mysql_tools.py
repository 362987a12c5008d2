"""mysqldump / mysql wrappers used to produce and import dump files."""

import os
import subprocess
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Optional

import structlog

from dumpvault.config import DatabaseConfig
from dumpvault.exceptions import ConfigurationError, DumpError, ImportFailureError
from utils.logging import get_logger

SUPPORTED_DRIVER = "mysql"


def _check_database(db_config: DatabaseConfig) -> None:
    if db_config.driver != SUPPORTED_DRIVER:
        raise ConfigurationError(
            f"The database connection is not MySQL (driver: {db_config.driver}).",
            context={"driver": db_config.driver},
        )
    if not db_config.name:
        raise ConfigurationError("Database name is empty. Please configure database.name")


def _connection_args(db_config: DatabaseConfig) -> list[str]:
    args = []
    if db_config.host:
        args.append(f"--host={db_config.host}")
    if db_config.port:
        args.append(f"--port={db_config.port}")
    if db_config.user:
        args.append(f"--user={db_config.user}")
    return args


def _child_env(db_config: DatabaseConfig) -> dict[str, str]:
    """Environment for the client tools; the password never shows up in ps."""
    try:
        password = db_config.get_password()
    except ValueError as e:
        raise ConfigurationError(str(e)) from e

    env = dict(os.environ)
    if password:
        env["MYSQL_PWD"] = password
    return env


def _tail(output: Optional[bytes], limit: int = 2000) -> str:
    if not output:
        return ""
    return output.decode("utf-8", errors="replace").strip()[-limit:]


class MysqlDumper:
    """Produces a dump of one database with mysqldump."""

    def __init__(
        self,
        db_config: DatabaseConfig,
        exclude_tables: Iterable[str] = (),
        executable: str = "mysqldump",
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        _check_database(db_config)
        self.db_config = db_config
        self.exclude_tables = [t.strip() for t in exclude_tables if t.strip()]
        self.executable = executable
        self.logger = logger or get_logger("mysqldump")

    def build_command(self, path: Path) -> list[str]:
        """Command line for dumping into ``path``."""
        database = self.db_config.name
        command = [self.executable, *_connection_args(self.db_config), database]
        command.extend(f"--ignore-table={database}.{table}" for table in self.exclude_tables)
        # --result-file instead of shell redirection keeps the output byte-exact
        command.append(f"--result-file={path}")
        return command

    def dump(self, path: Path) -> Path:
        """Write a dump of the configured database to ``path``.

        Raises:
            DumpError: If mysqldump fails or leaves no dump behind
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        command = self.build_command(path)

        self.logger.debug(
            "Running mysqldump",
            database=self.db_config.name,
            path=str(path),
            excluded=self.exclude_tables,
        )
        try:
            result = subprocess.run(
                command,
                env=_child_env(self.db_config),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=False,
            )
        except OSError as e:
            raise DumpError(
                f"Unable to run {self.executable}: {e}",
                context={"executable": self.executable},
            ) from e

        if result.returncode != 0:
            message = f"mysqldump failed with code {result.returncode}"
            detail = _tail(result.stderr) or _tail(result.stdout)
            if detail:
                message += f": {detail}"
            raise DumpError(message, exit_code=result.returncode)

        if not path.is_file() or path.stat().st_size == 0:
            raise DumpError(f"Dump file was not created: {path}", context={"path": str(path)})

        self.logger.debug("Dump created", path=str(path), size=path.stat().st_size)
        return path


class MysqlImporter:
    """Feeds dump files to the mysql client, one file per invocation."""

    def __init__(
        self,
        db_config: DatabaseConfig,
        executable: str = "mysql",
        logger: Optional[structlog.BoundLogger] = None,
    ) -> None:
        _check_database(db_config)
        self.db_config = db_config
        self.executable = executable
        self.logger = logger or get_logger("mysql_import")

    def build_command(self) -> list[str]:
        return [self.executable, *_connection_args(self.db_config), self.db_config.name]

    def import_file(self, path: Path) -> None:
        """Import one dump file.

        Raises:
            ImportFailureError: If mysql cannot be started or exits nonzero
        """
        self.logger.debug("Importing dump", path=str(path), database=self.db_config.name)
        try:
            with open(path, "rb") as stdin:
                result = subprocess.run(
                    self.build_command(),
                    stdin=stdin,
                    stderr=subprocess.PIPE,
                    env=_child_env(self.db_config),
                    check=False,
                )
        except OSError as e:
            raise ImportFailureError(
                f"Unable to run {self.executable} for {path.name}: {e}",
                context={"file": str(path)},
            ) from e

        if result.returncode != 0:
            message = f"mysql import of {path.name} failed"
            detail = _tail(result.stderr)
            if detail:
                message += f": {detail}"
            raise ImportFailureError(message, exit_code=result.returncode)

    def import_files(self, paths: Sequence[Path]) -> list[Path]:
        """Import files in order, stopping at the first failure."""
        imported = []
        for path in paths:
            self.import_file(path)
            imported.append(path)
        return imported
