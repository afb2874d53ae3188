from typing import Optional


class BackupError(Exception):
    """Base class for every error raised by db_backup."""


class ToolError(BackupError):
    """An external dump/restore tool failed or could not be started."""

    def __init__(self, message: str, exit_code: Optional[int] = None,
                 stderr: str = "", summary: Optional[str] = None):
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr
        self.summary = summary


class DatabaseConnectionError(BackupError, ConnectionError):
    pass


class DumpError(ToolError):
    pass


class RestoreError(ToolError):
    pass


class CompressionError(BackupError):
    pass


class StorageError(BackupError):
    pass


class UploadError(StorageError):
    pass


class DownloadError(StorageError):
    pass


class NotificationError(BackupError):
    """Never propagated past the notifier; see notifications.SlackNotifier."""
