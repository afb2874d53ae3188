import os
import shutil
from typing import List, Optional

from ..errors import DownloadError, StorageError, UploadError
from ..logger import get_logger
from ..schemas import StorageConfig
from .base import StorageProvider

logger = get_logger(__name__)


class LocalStorage(StorageProvider):
    def __init__(self, config: StorageConfig):
        self.base_path = os.path.abspath(config.root or ".")

    def _resolve(self, remote_key: str) -> str:
        full_path = os.path.abspath(os.path.join(self.base_path, remote_key))
        if os.path.commonpath([full_path, self.base_path]) != self.base_path:
            raise StorageError(f"Key escapes the storage directory: {remote_key}")
        return full_path

    def upload(self, local_path: str, remote_key: str) -> str:
        final_destination = self._resolve(remote_key)
        try:
            os.makedirs(os.path.dirname(final_destination), exist_ok=True)
            shutil.copyfile(local_path, final_destination)
        except OSError as e:
            logger.error(f"File upload failed for {remote_key}: {e}")
            raise UploadError(f"Failed to copy {local_path} to {final_destination}: {e}") from e
        logger.info(f"File uploaded successfully to {final_destination}")
        return final_destination

    def download(self, remote_key: str, local_path: str) -> None:
        source = self._resolve(remote_key)
        try:
            os.makedirs(os.path.dirname(os.path.abspath(local_path)), exist_ok=True)
            shutil.copyfile(source, local_path)
        except OSError as e:
            logger.error(f"File download failed for {remote_key}: {e}")
            raise DownloadError(f"Failed to copy {source} to {local_path}: {e}") from e
        logger.info(f"File downloaded successfully to {local_path}")

    def delete(self, remote_key: str) -> None:
        full_path = self._resolve(remote_key)
        try:
            os.remove(full_path)
        except OSError as e:
            logger.error(f"File deletion failed for {remote_key}: {e}")
            raise StorageError(f"Failed to delete {full_path}: {e}") from e
        logger.info(f"File deleted successfully: {full_path}")

    def list(self, prefix: Optional[str] = None) -> List[str]:
        search_path = self._resolve(prefix) if prefix else self.base_path
        if not os.path.isdir(search_path):
            return []

        keys = []
        for dirpath, _dirnames, filenames in os.walk(search_path):
            for filename in filenames:
                relative = os.path.relpath(os.path.join(dirpath, filename), self.base_path)
                keys.append(relative.replace(os.sep, "/"))
        return sorted(keys)
