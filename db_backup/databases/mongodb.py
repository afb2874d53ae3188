from typing import Callable, List, Optional
from datetime import datetime
from urllib.parse import quote_plus

from pymongo import MongoClient
from pymongo.errors import ConfigurationError, PyMongoError

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

SERVER_SELECTION_TIMEOUT_MS = 5000


class MongoDBConnection(DatabaseConnection):
    engine = "mongodb"

    def __init__(self, config: DatabaseConfig, runner: Optional[CommandRunner] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.config = config
        self.runner = runner or CommandRunner()
        self.clock = clock
        self.client: Optional[MongoClient] = None

    def _uri(self) -> str:
        if self.config.connection_string:
            return self.config.connection_string
        host = self.config.host or "localhost"
        port = self.config.port or 27017
        credentials = ""
        if self.config.username:
            credentials = quote_plus(self.config.username)
            if self.config.password:
                credentials += ":" + quote_plus(self.config.password)
            credentials += "@"
        uri = f"mongodb://{credentials}{host}:{port}/{self.config.database}"
        if self.config.username:
            uri += "?authSource=admin"
        return uri

    def connect(self) -> None:
        try:
            self.client = MongoClient(self._uri(), serverSelectionTimeoutMS=SERVER_SELECTION_TIMEOUT_MS)
        except (ConfigurationError, ValueError, TypeError) as e:
            logger.error(f"Invalid MongoDB connection settings: {e}")
            raise DatabaseConnectionError(f"Invalid MongoDB connection settings: {e}") from e
        logger.info(f"Connected to MongoDB database '{self.config.database}'")

    def disconnect(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
            logger.info("Disconnected from MongoDB")

    def test(self) -> bool:
        if self.client is None:
            self.connect()
        try:
            self.client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.error(f"MongoDB connection test failed: {e}")
            return False

    def _connection_args(self) -> List[str]:
        if self.config.connection_string:
            return [f"--uri={self.config.connection_string}"]

        args = []
        if self.config.host:
            args.append(f"--host={self.config.host}")
        if self.config.port:
            args.append(f"--port={self.config.port}")
        if self.config.username:
            args.append(f"--username={self.config.username}")
            args.append("--authenticationDatabase=admin")
        if self.config.password:
            args.append(f"--password={self.config.password}")
        return args

    def _secrets(self):
        return [self.config.password, self.config.connection_string]

    def build_dump_command(self, output_path: str, exclude_tables: Optional[List[str]] = None) -> List[str]:
        cmd = ["mongodump", *self._connection_args(), f"--db={self.config.database}"]
        for collection in exclude_tables or []:
            cmd.append(f"--excludeCollection={collection}")
        cmd.append(f"--archive={output_path}")
        return cmd

    def build_restore_command(self, input_path: str, options: RestoreOptions) -> List[str]:
        cmd = ["mongorestore", *self._connection_args()]
        for collection in options.selected_tables or []:
            cmd.append(f"--nsInclude={self.config.database}.{collection}")
        if options.overwrite:
            cmd.append("--drop")
        cmd.append(f"--archive={input_path}")
        return cmd

    def backup(self, options: BackupOptions) -> str:
        log_backup_start(logger, options)
        try:
            raw_path = artifact_path(self.engine, options.destination, self.clock, options.timestamp)
            cmd = self.build_dump_command(raw_path, options.exclude_tables)
            result = run_tool(self.runner, cmd, self.engine, DumpError, secrets=self._secrets())
            if result.stderr:
                logger.debug(f"mongodump output: {result.stderr.strip()}")
            return finalize_artifact(raw_path, options.compress, logger)
        except Exception as e:
            logger.error(f"MongoDB backup failed: {e}")
            raise

    def restore(self, file_path: str, options: RestoreOptions) -> None:
        log_restore_start(logger, file_path, options)
        try:
            with prepared_restore_input(file_path, logger) as input_path:
                cmd = self.build_restore_command(input_path, options)
                run_tool(self.runner, cmd, self.engine, RestoreError, secrets=self._secrets())
        except Exception as e:
            logger.error(f"MongoDB restore failed: {e}")
            raise
        logger.info("MongoDB restore completed successfully")
