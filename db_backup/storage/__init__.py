from typing import Dict, Type

from ..schemas import StorageConfig
from .base import StorageProvider
from .local import LocalStorage
from .s3 import S3Storage

PROVIDERS: Dict[str, Type[StorageProvider]] = {
    "local": LocalStorage,
    "s3": S3Storage,
}


def get_storage_provider(config: StorageConfig) -> StorageProvider:
    try:
        provider_cls = PROVIDERS[config.kind]
    except KeyError:
        raise ValueError(f"Unsupported storage type: {config.kind}") from None
    return provider_cls(config)


__all__ = ["StorageProvider", "LocalStorage", "S3Storage", "PROVIDERS", "get_storage_provider"]
