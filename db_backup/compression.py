import gzip
import os
import shutil
import zlib

from .errors import CompressionError
from .logger import get_logger

logger = get_logger(__name__)

GZIP_SUFFIX = ".gz"
CHUNK_SIZE = 64 * 1024


def _remove_partial(path: str):
    if os.path.exists(path):
        logger.debug(f"Removing partial output: {path}")
        os.remove(path)


def compress_file(source_path: str, target_path: str, chunk_size: int = CHUNK_SIZE) -> str:
    """
    Streams `source_path` through gzip into `target_path` in bounded chunks.

    The source is left untouched. A partially written target is removed on failure.
    """
    logger.debug(f"Compressing {source_path} -> {target_path}")
    try:
        with open(source_path, "rb") as src, gzip.open(target_path, "wb") as dst:
            shutil.copyfileobj(src, dst, chunk_size)
    except (OSError, zlib.error) as e:
        _remove_partial(target_path)
        raise CompressionError(f"Failed to compress {source_path}: {e}") from e
    return target_path


def decompress_file(source_path: str, target_path: str, chunk_size: int = CHUNK_SIZE) -> str:
    logger.debug(f"Decompressing {source_path} -> {target_path}")
    try:
        with gzip.open(source_path, "rb") as src, open(target_path, "wb") as dst:
            shutil.copyfileobj(src, dst, chunk_size)
    except (OSError, EOFError, zlib.error) as e:
        # gzip.BadGzipFile is an OSError subclass
        _remove_partial(target_path)
        raise CompressionError(f"Failed to decompress {source_path}: {e}") from e
    return target_path
