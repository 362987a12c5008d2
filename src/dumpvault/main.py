"""Main entry point for the dumpvault CLI."""

import sys
from datetime import datetime
from pathlib import Path

import click

from dumpvault.backup import BackupRunner
from dumpvault.cleanup import CleanupRunner
from dumpvault.config import DumpVaultConfig, load_config
from dumpvault.exceptions import ConfigurationError, DumpVaultError
from dumpvault.mysql_tools import MysqlDumper
from dumpvault.retention import RetentionPlanner
from dumpvault.s3_client import S3Store
from restore.main import restore
from utils.logging import bind_run_context, configure_logging, quiet_third_party_loggers
from utils.output import (
    format_size,
    print_error,
    print_header,
    print_info,
    print_step,
    print_success,
    print_summary,
    print_table,
    print_warning,
)


@click.group()
@click.option(
    "--config",
    "-c",
    required=True,
    envvar="DUMPVAULT_CONFIG",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (YAML); defaults to $DUMPVAULT_CONFIG",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Log level",
)
@click.option(
    "--log-format",
    default="console",
    type=click.Choice(["console", "json"], case_sensitive=False),
    help="Log format: 'console' for human-readable output, 'json' for structured logs (default: console)",
)
@click.pass_context
def cli(ctx: click.Context, config: Path, verbose: bool, log_level: str, log_format: str) -> None:
    """Back up a MySQL database to S3-compatible storage, prune old backups, restore them."""
    effective_log_level = "DEBUG" if verbose else log_level
    logger = configure_logging(
        log_level=effective_log_level,
        log_format=log_format.lower(),
        command=ctx.invoked_subcommand,
    )
    if verbose:
        quiet_third_party_loggers()

    try:
        dumpvault_config = load_config(config)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e.message}")
        sys.exit(1)

    bind_run_context(bucket=dumpvault_config.s3.bucket, database=dumpvault_config.database.name)

    if verbose:
        logger.debug("Configuration loaded", config_path=str(config))

    ctx.obj = {
        "config": dumpvault_config,
        "logger": logger,
    }


def _store(ctx: click.Context) -> S3Store:
    config: DumpVaultConfig = ctx.obj["config"]
    return S3Store(config.s3, logger=ctx.obj["logger"])


@cli.command()
@click.pass_context
def authorize(ctx: click.Context) -> None:
    """Check credentials and write access to the backup bucket."""
    config: DumpVaultConfig = ctx.obj["config"]
    print_step(f"Checking access to bucket '{config.s3.bucket}'...")
    try:
        _store(ctx).validate_access()
    except DumpVaultError as e:
        print_error(f"Authorization failed: {e.message}")
        sys.exit(1)

    print_success(f"Bucket '{config.s3.bucket}' is reachable and writable.")
    print_info("You can now run the backup command: dumpvault backup")


@cli.command()
@click.pass_context
def backup(ctx: click.Context) -> None:
    """Create a MySQL dump and upload it."""
    config: DumpVaultConfig = ctx.obj["config"]
    logger = ctx.obj["logger"]
    try:
        dumper = MysqlDumper(
            config.database,
            exclude_tables=config.backup.exclude_tables,
            executable=config.tools.mysqldump_path,
            logger=logger,
        )
        runner = BackupRunner(
            config.backup,
            store=_store(ctx),
            dumper=dumper,
            progress=print_step,
            logger=logger,
        )
        result = runner.run(datetime.now())
    except DumpVaultError as e:
        print_error(f"Backup failed: {e.message}")
        sys.exit(1)

    print_success(f'Backup uploaded successfully as "{result["remote_name"]}"')


@cli.command()
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Show which backups would be deleted without deleting them",
)
@click.pass_context
def cleanup(ctx: click.Context, dry_run: bool) -> None:
    """Remove outdated backups according to the retention tiers."""
    config: DumpVaultConfig = ctx.obj["config"]
    try:
        runner = CleanupRunner(
            config.backup.name_pattern,
            store=_store(ctx),
            progress=print_step,
            logger=ctx.obj["logger"],
        )
        stats = runner.run(datetime.now().astimezone(), dry_run=dry_run)
    except DumpVaultError as e:
        print_error(f"Cleanup failed: {e.message}")
        sys.exit(1)

    if stats["planned"]:
        print_summary(stats, title="Cleanup (dry run)" if dry_run else "Cleanup")
    if stats["failed"]:
        print_warning(f"{stats['failed']} backup(s) could not be deleted.")
    print_success("Cleanup completed.")


@cli.command(name="list")
@click.option(
    "--all",
    "show_all",
    is_flag=True,
    default=False,
    help="Show every object in the backup folder, not only names matching the pattern",
)
@click.pass_context
def list_backups(ctx: click.Context, show_all: bool) -> None:
    """List backups in remote storage, newest first."""
    config: DumpVaultConfig = ctx.obj["config"]
    try:
        artifacts = _store(ctx).list_artifacts()
    except DumpVaultError as e:
        print_error(f"Failed to list files: {e.message}")
        sys.exit(1)

    if not show_all:
        selected = RetentionPlanner(config.backup.name_pattern).select(artifacts)
        artifacts = list(reversed(selected))

    if not artifacts:
        print_info("No backups found.")
        return

    print_header(f"Backups in s3://{config.s3.bucket}/{config.s3.folder}")
    print_table(
        ["Name", "Modified", "Size"],
        [
            [a.name, a.modified_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip(), format_size(a.size)]
            for a in artifacts
        ],
    )


cli.add_command(restore)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
