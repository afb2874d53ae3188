import os
import shutil
import tempfile
from typing import List, Optional

from .databases import DatabaseConnection
from .logger import get_logger
from .metrics import RESTORES_TOTAL
from .schemas import RestoreOptions
from .storage import StorageProvider

logger = get_logger(__name__)


def run_restore(
    connection: DatabaseConnection,
    file_path: Optional[str] = None,
    overwrite: bool = False,
    selected_tables: Optional[List[str]] = None,
    storage: Optional[StorageProvider] = None,
    remote_key: Optional[str] = None,
    download_dir: str = os.path.join("temp", "restore"),
) -> None:
    """
    Restores a database from a local backup file, or from `remote_key` after
    downloading it from `storage`. Each download lands in its own temporary
    directory below `download_dir`, which is removed afterwards.
    """
    if bool(file_path) == bool(remote_key):
        raise ValueError("Exactly one of file_path or remote_key must be given")
    if remote_key and storage is None:
        raise ValueError("A storage provider is required to restore from a remote key")

    engine = getattr(connection, "engine", type(connection).__name__)
    options = RestoreOptions(overwrite=overwrite, selected_tables=selected_tables)
    run_dir = None
    try:
        if remote_key:
            os.makedirs(download_dir, exist_ok=True)
            run_dir = tempfile.mkdtemp(prefix="restore-", dir=download_dir)
            downloaded = os.path.join(run_dir, os.path.basename(remote_key))
            logger.info(f"Downloading {remote_key} to {downloaded}")
            storage.download(remote_key, downloaded)
            file_path = downloaded

        connection.restore(file_path, options)
        RESTORES_TOTAL.labels(engine=engine, status="completed").inc()
        logger.info(f"Restore of {remote_key or file_path} completed successfully.")
    except Exception as e:
        RESTORES_TOTAL.labels(engine=engine, status="failed").inc()
        logger.error(f"Restore of {remote_key or file_path} failed: {e}")
        raise
    finally:
        if run_dir:
            logger.debug(f"Removing restore download directory: {run_dir}")
            shutil.rmtree(run_dir, ignore_errors=True)
