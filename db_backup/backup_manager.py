import os
import shutil
import time
from datetime import datetime
from typing import Callable, List, Optional

from .databases import DatabaseConnection
from .logger import get_logger
from .metrics import (
    BACKUPS_TOTAL, BACKUP_DURATION_SECONDS, BACKUP_SIZE_BYTES, BACKUP_LAST_STATUS,
    record_disk_space,
)
from .notifications import SlackNotifier
from .schemas import BackupOptions, NotificationPayload, StorageConfig
from .storage import StorageProvider
from .utils import format_timestamp, join_key, utc_now

logger = get_logger(__name__)


class BackupService:
    """
    Runs one backup end to end: dump, optional compression, upload, notification.

    Each run works in its own timestamped staging directory and remote prefix, so
    concurrent runs share no mutable state.
    """

    def __init__(
        self,
        database: DatabaseConnection,
        storage: StorageProvider,
        storage_config: StorageConfig,
        notifier: Optional[SlackNotifier] = None,
        staging_root: str = "temp",
        clock: Callable[[], datetime] = utc_now,
        keep_local: bool = False,
    ):
        self.database = database
        self.storage = storage
        self.storage_config = storage_config
        self.notifier = notifier
        self.staging_root = staging_root
        self.clock = clock
        self.keep_local = keep_local

    @property
    def engine(self) -> str:
        return getattr(self.database, "engine", type(self.database).__name__)

    def perform_backup(self, backup_type: str = "full", compress: bool = True,
                       exclude_tables: Optional[List[str]] = None) -> str:
        start_time = time.monotonic()
        timestamp = format_timestamp(self.clock())
        staging_dir = os.path.join(self.staging_root, timestamp)
        logger.info(f"Starting {backup_type} backup run {timestamp} (staging: {staging_dir})")

        try:
            backup_path = self.database.backup(BackupOptions(
                type=backup_type,
                compress=compress,
                destination=staging_dir,
                exclude_tables=exclude_tables,
                timestamp=timestamp,
            ))
            BACKUP_SIZE_BYTES.labels(engine=self.engine).set(os.path.getsize(backup_path))
            record_disk_space(staging_dir)

            remote_path = self._upload_to_storage(backup_path, timestamp)
        except Exception as e:
            duration = time.monotonic() - start_time
            logger.error(f"Backup failed after {duration:.2f}s: {e}")
            BACKUPS_TOTAL.labels(engine=self.engine, status="failed").inc()
            BACKUP_LAST_STATUS.labels(engine=self.engine).set(0)
            self._send_notification(NotificationPayload(
                status="failure",
                type=backup_type,
                error=str(e) or type(e).__name__,
            ))
            raise

        duration = time.monotonic() - start_time
        logger.info(f"Backup completed successfully: type={backup_type}, duration={duration:.2f}s, remote_path={remote_path}")
        BACKUPS_TOTAL.labels(engine=self.engine, status="completed").inc()
        BACKUP_DURATION_SECONDS.labels(engine=self.engine).observe(duration)
        BACKUP_LAST_STATUS.labels(engine=self.engine).set(1)

        if not self.keep_local:
            logger.debug(f"Removing staging directory: {staging_dir}")
            shutil.rmtree(staging_dir, ignore_errors=True)

        self._send_notification(NotificationPayload(
            status="success",
            type=backup_type,
            duration=duration,
            remote_path=remote_path,
        ))
        return remote_path

    def _upload_to_storage(self, local_path: str, timestamp: str) -> str:
        remote_path = join_key(self.storage_config.base_path, timestamp, os.path.basename(local_path))
        locator = self.storage.upload(local_path, remote_path)
        logger.info(f"Uploaded {local_path} to {locator}")
        return remote_path

    def _send_notification(self, payload: NotificationPayload) -> None:
        if self.notifier is None:
            return
        # A failed notification must never replace the run's own result or error
        try:
            self.notifier.notify(payload)
        except Exception as e:
            logger.error(f"Failed to send {payload.status} notification: {e}")
