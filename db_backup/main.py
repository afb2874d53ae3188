import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from . import __version__
from .backup_manager import BackupService
from .config import (
    DEFAULT_CONFIG_PATH, build_database_config, build_storage_config, load_config,
    resolve_slack_webhook,
)
from .databases import get_database_connection
from .logger import get_logger, setup_logging
from .metrics import export_metrics
from .notifications import SlackNotifier
from .restore_manager import run_restore
from .storage import get_storage_provider

EXIT_FAILURE = 1

logger = get_logger(__name__)


def _database_arguments() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    group = parent.add_argument_group("database")
    group.add_argument("-d", "--database", dest="engine",
                       choices=["mongodb", "postgresql", "mysql", "sqlite"],
                       help="Database engine (default: mongodb)")
    group.add_argument("-H", "--host", help="Database host")
    group.add_argument("-p", "--port", type=int, help="Database port")
    group.add_argument("-u", "--username", help="Database username")
    group.add_argument("-w", "--password", help="Database password")
    group.add_argument("-n", "--name", help="Database name")
    group.add_argument("--connection-string", help="Full connection URI, overrides host/port/credentials")
    return parent


def _storage_arguments() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    group = parent.add_argument_group("storage")
    group.add_argument("-s", "--storage", dest="storage_kind", choices=["local", "s3"],
                       help="Storage type (default: local)")
    group.add_argument("--storage-path", help="Local storage directory or S3 bucket name")
    group.add_argument("--aws-access-key", help="AWS access key ID (env: AWS_ACCESS_KEY_ID)")
    group.add_argument("--aws-secret-key", help="AWS secret access key (env: AWS_SECRET_ACCESS_KEY)")
    group.add_argument("--aws-region", help="AWS region (env: AWS_REGION)")
    group.add_argument("--aws-endpoint-url", help="Endpoint of an S3-compatible service (env: AWS_ENDPOINT_URL)")
    return parent


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="db-backup",
        description="Database backup utility supporting multiple databases and storage options",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # MongoDB backup to ./backups
  db-backup backup --database mongodb --host localhost --port 27017 --name shop

  # PostgreSQL backup to S3
  db-backup backup --database postgresql --name shop --storage s3 --storage-path my-bucket

  # Restore a compressed backup, dropping existing data first
  db-backup restore --database mongodb --name shop --file backups/<ts>/mongodb-backup-<ts>.gz --overwrite
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="YAML configuration file")
    parser.add_argument("--log-level", help="Logging level (env: LOG_LEVEL)")
    parser.add_argument("--metrics-file", help="Write Prometheus metrics to this file on exit")

    database = _database_arguments()
    storage = _storage_arguments()
    subparsers = parser.add_subparsers(dest="command", required=True)

    backup = subparsers.add_parser("backup", parents=[database, storage], help="Perform a database backup")
    backup.add_argument("-t", "--type", default="full", choices=["full", "incremental", "differential"],
                        help="Backup type")
    backup.add_argument("-c", "--compress", action=argparse.BooleanOptionalAction, default=True,
                        help="Compress the backup file with gzip")
    backup.add_argument("--exclude-table", action="append", dest="exclude_tables",
                        help="Table or collection to leave out (repeatable)")
    backup.add_argument("--slack-webhook", help="Slack webhook URL for notifications (env: SLACK_WEBHOOK_URL)")
    backup.add_argument("--staging-dir", help="Directory for temporary backup files (default: temp)")
    backup.add_argument("--keep-local", action="store_true", help="Keep the staged backup after upload")

    restore = subparsers.add_parser("restore", parents=[database, storage], help="Restore a database from backup")
    source = restore.add_mutually_exclusive_group(required=True)
    source.add_argument("-f", "--file", help="Local backup file path")
    source.add_argument("--remote-key", help="Key of a backup in the configured storage")
    restore.add_argument("--overwrite", action="store_true", help="Drop existing data before restoring")
    restore.add_argument("--table", action="append", dest="selected_tables",
                         help="Only restore this table or collection (repeatable)")

    list_parser = subparsers.add_parser("list", parents=[storage], help="List stored backups")
    list_parser.add_argument("--prefix", help="Only list keys under this prefix")
    list_parser.add_argument("-n", "--name", help="Database name, used as the default S3 prefix")

    return parser


def _database_config(args, file_config):
    return build_database_config({
        "engine": args.engine,
        "host": args.host,
        "port": args.port,
        "username": args.username,
        "password": args.password,
        "database": args.name,
        "connection_string": args.connection_string,
    }, file_config)


def _storage_config(args, file_config, database_name):
    return build_storage_config({
        "kind": args.storage_kind,
        "path": args.storage_path,
        "credential_overrides": {
            "access_key_id": args.aws_access_key,
            "secret_access_key": args.aws_secret_key,
            "region": args.aws_region,
            "endpoint_url": args.aws_endpoint_url,
        },
    }, file_config, database_name)


def backup_command(args, file_config) -> None:
    db_config = _database_config(args, file_config)
    storage_config = _storage_config(args, file_config, db_config.database)

    service = BackupService(
        get_database_connection(db_config),
        get_storage_provider(storage_config),
        storage_config,
        notifier=SlackNotifier(resolve_slack_webhook(args.slack_webhook, file_config)),
        staging_root=args.staging_dir or file_config.get("staging_dir", "temp"),
        keep_local=args.keep_local,
    )

    logger.info(f"Starting backup process: type={args.type}, engine={db_config.engine}")
    remote_path = service.perform_backup(args.type, args.compress, args.exclude_tables)
    logger.info(f"Backup completed successfully: {remote_path}")
    print(remote_path)


def restore_command(args, file_config) -> None:
    db_config = _database_config(args, file_config)
    connection = get_database_connection(db_config)

    storage = None
    if args.remote_key:
        storage = get_storage_provider(_storage_config(args, file_config, db_config.database))

    logger.info(f"Starting restore process: file={args.file or args.remote_key}")
    run_restore(
        connection,
        file_path=args.file,
        overwrite=args.overwrite,
        selected_tables=args.selected_tables,
        storage=storage,
        remote_key=args.remote_key,
    )
    logger.info("Restore completed successfully")


def list_command(args, file_config) -> None:
    storage_config = _storage_config(args, file_config, args.name)
    storage = get_storage_provider(storage_config)
    prefix = args.prefix if args.prefix is not None else storage_config.base_path
    for key in storage.list(prefix or None):
        print(key)


COMMANDS = {
    "backup": backup_command,
    "restore": restore_command,
    "list": list_command,
}


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        file_config = load_config(args.config)
    except Exception as e:
        setup_logging(args.log_level)
        logger.error(f"Could not load configuration: {e}")
        return EXIT_FAILURE

    setup_logging(args.log_level or file_config.get("log_level"))

    exit_code = 0
    try:
        COMMANDS[args.command](args, file_config)
    except Exception as e:
        logger.error(f"{args.command.capitalize()} failed: {type(e).__name__}: {e}", exc_info=logger.isEnabledFor(logging.DEBUG))
        exit_code = EXIT_FAILURE
    finally:
        if args.metrics_file:
            try:
                export_metrics(args.metrics_file)
            except OSError as e:
                logger.error(f"Failed to write metrics file {args.metrics_file}: {e}")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
