import abc
from typing import List, Optional


class StorageProvider(abc.ABC):
    @abc.abstractmethod
    def upload(self, local_path: str, remote_key: str) -> str:
        """Store `local_path` under `remote_key` and return the backend's locator for it."""

    @abc.abstractmethod
    def download(self, remote_key: str, local_path: str) -> None:
        pass

    @abc.abstractmethod
    def delete(self, remote_key: str) -> None:
        pass

    @abc.abstractmethod
    def list(self, prefix: Optional[str] = None) -> List[str]:
        pass
