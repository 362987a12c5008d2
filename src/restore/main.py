"""CLI command for restoring a backup from remote storage."""

import sys
from pathlib import Path
from typing import Optional

import click

from dumpvault.config import DumpVaultConfig
from dumpvault.exceptions import DumpVaultError
from dumpvault.mysql_tools import MysqlImporter
from dumpvault.s3_client import S3Store
from restore.restore_engine import RestoreOrchestrator, RestoreState
from restore.table_filter import TableSelection
from utils.masks import parse_mask_list
from utils.output import print_error, print_step, print_success, print_warning


@click.command()
@click.argument("mask")
@click.option(
    "--only",
    default=None,
    help="Comma-separated list of tables to restore (supports * wildcard)",
)
@click.option(
    "--except",
    "except_",
    default=None,
    help="Comma-separated list of tables to exclude (supports * wildcard)",
)
@click.option(
    "--keep-temp",
    is_flag=True,
    default=False,
    help="Keep downloaded/extracted temporary files, skip cleanup at the end",
)
@click.option(
    "--work-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Temporary directory for this run (overrides restore.temp_dir)",
)
@click.pass_context
def restore(
    ctx: click.Context,
    mask: str,
    only: Optional[str],
    except_: Optional[str],
    keep_temp: bool,
    work_dir: Optional[Path],
) -> None:
    """Restore the latest backup whose name matches MASK.

    MASK is a file name or wildcard mask, e.g. 'mysql_backup_*.sql.gz'.

    Examples:

    \b
    # Restore the newest backup
    dumpvault -c config.yaml restore 'mysql_backup_*'

    \b
    # Restore only the users table and every table starting with orders_
    dumpvault -c config.yaml restore 'mysql_backup_*' --only users,orders_*

    \b
    # Restore everything but the log tables, keep the files for inspection
    dumpvault -c config.yaml restore 'mysql_backup_2024*' --except 'logs_*' --keep-temp
    """
    config: DumpVaultConfig = ctx.obj["config"]
    logger = ctx.obj["logger"]
    selection = TableSelection.from_lists(parse_mask_list(only), parse_mask_list(except_))

    try:
        importer = MysqlImporter(config.database, executable=config.tools.mysql_path, logger=logger)
        orchestrator = RestoreOrchestrator(
            store=S3Store(config.s3, logger=logger),
            importer=importer,
            work_dir=work_dir or Path(config.restore.temp_dir),
            progress=print_step,
            logger=logger,
        )
        outcome = orchestrator.run(mask, selection=selection, keep_temp=keep_temp)
    except DumpVaultError as e:
        print_error(e.message)
        sys.exit(1)

    if outcome.state == RestoreState.EMPTY:
        print_warning(outcome.message)
        return

    print_success(f"Restored {len(outcome.imported)} file(s) from {outcome.artifact.name}")
