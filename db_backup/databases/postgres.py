from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..errors import DatabaseConnectionError, DumpError, RestoreError
from ..logger import get_logger
from ..runner import CommandRunner
from ..schemas import BackupOptions, DatabaseConfig, RestoreOptions
from ..utils import utc_now
from .base import (
    DatabaseConnection, artifact_path, finalize_artifact, log_backup_start,
    log_restore_start, prepared_restore_input, run_tool,
)

logger = get_logger(__name__)


class PostgresConnection(DatabaseConnection):
    """PostgreSQL through the pg_dump/pg_restore/pg_isready client tools."""

    engine = "postgresql"

    def __init__(self, config: DatabaseConfig, runner: Optional[CommandRunner] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.config = config
        self.runner = runner or CommandRunner()
        self.clock = clock
        self.connected = False

    def _env(self) -> Dict[str, str]:
        # pg tools only read the password from the environment
        return {"PGPASSWORD": self.config.password} if self.config.password else {}

    def _connection_args(self) -> List[str]:
        if self.config.connection_string:
            return [f"--dbname={self.config.connection_string}"]

        args = []
        if self.config.host:
            args.append(f"--host={self.config.host}")
        if self.config.port:
            args.append(f"--port={self.config.port}")
        if self.config.username:
            args.append(f"--username={self.config.username}")
        args.append(f"--dbname={self.config.database}")
        return args

    def _secrets(self):
        return [self.config.password, self.config.connection_string]

    def connect(self) -> None:
        if self.config.port is not None and not 0 < self.config.port < 65536:
            raise DatabaseConnectionError(f"Invalid PostgreSQL port: {self.config.port}")
        self.connected = True
        logger.info(f"Using PostgreSQL database '{self.config.database}'")

    def disconnect(self) -> None:
        self.connected = False

    def test(self) -> bool:
        if not self.connected:
            self.connect()
        try:
            result = self.runner.run(
                ["pg_isready", *self._connection_args()], env=self._env(), secrets=self._secrets()
            )
        except OSError as e:
            raise DatabaseConnectionError(f"Could not start pg_isready: {e}") from e
        if not result.ok:
            logger.error(f"PostgreSQL connection test failed: {result.stdout.strip() or result.stderr.strip()}")
        return result.ok

    def build_dump_command(self, output_path: str, exclude_tables: Optional[List[str]] = None) -> List[str]:
        cmd = ["pg_dump", *self._connection_args(), "--format=c"]
        for table in exclude_tables or []:
            cmd.append(f"--exclude-table={table}")
        cmd.append(f"--file={output_path}")
        return cmd

    def build_restore_command(self, input_path: str, options: RestoreOptions) -> List[str]:
        cmd = ["pg_restore", *self._connection_args()]
        if options.overwrite:
            cmd.extend(["--clean", "--if-exists"])
        for table in options.selected_tables or []:
            cmd.append(f"--table={table}")
        cmd.append(input_path)
        return cmd

    def backup(self, options: BackupOptions) -> str:
        log_backup_start(logger, options)
        try:
            raw_path = artifact_path(self.engine, options.destination, self.clock, options.timestamp)
            cmd = self.build_dump_command(raw_path, options.exclude_tables)
            run_tool(self.runner, cmd, self.engine, DumpError, env=self._env(), secrets=self._secrets())
            return finalize_artifact(raw_path, options.compress, logger)
        except Exception as e:
            logger.error(f"PostgreSQL backup failed: {e}")
            raise

    def restore(self, file_path: str, options: RestoreOptions) -> None:
        log_restore_start(logger, file_path, options)
        try:
            with prepared_restore_input(file_path, logger) as input_path:
                cmd = self.build_restore_command(input_path, options)
                run_tool(self.runner, cmd, self.engine, RestoreError, env=self._env(), secrets=self._secrets())
        except Exception as e:
            logger.error(f"PostgreSQL restore failed: {e}")
            raise
        logger.info("PostgreSQL restore completed successfully")
