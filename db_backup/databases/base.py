import abc
import logging
import os
import subprocess
import tempfile
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterable, Iterator, Mapping, Optional, Sequence, Type

from ..compression import GZIP_SUFFIX, compress_file, decompress_file
from ..error_parser import parse_tool_error
from ..errors import DumpError, RestoreError, ToolError
from ..runner import CommandRunner
from ..schemas import BackupOptions, CommandResult, RestoreOptions
from ..utils import format_timestamp


class DatabaseConnection(abc.ABC):
    """Capabilities every supported database engine provides."""

    @abc.abstractmethod
    def connect(self) -> None:
        pass

    @abc.abstractmethod
    def disconnect(self) -> None:
        pass

    @abc.abstractmethod
    def test(self) -> bool:
        """Return False when the database does not answer a liveness probe."""

    @abc.abstractmethod
    def backup(self, options: BackupOptions) -> str:
        """Dump the database into options.destination and return the artifact path."""

    @abc.abstractmethod
    def restore(self, file_path: str, options: RestoreOptions) -> None:
        pass


def log_backup_start(logger: logging.Logger, options: BackupOptions):
    logger.info(
        f"Starting database backup: type={options.type}, destination={options.destination}, "
        f"compress={options.compress}, exclude_tables={options.exclude_tables or []}"
    )


def log_restore_start(logger: logging.Logger, file_path: str, options: RestoreOptions):
    logger.info(
        f"Starting database restore: file={file_path}, "
        f"selected_tables={options.selected_tables or []}, overwrite={options.overwrite}"
    )


def artifact_path(engine: str, destination: str, clock: Callable[[], datetime],
                  timestamp: Optional[str] = None) -> str:
    """
    Creates the staging directory and returns <destination>/<engine>-backup-<timestamp>.

    A caller-supplied timestamp is used as is so the artifact name matches the run that
    staged it; the clock is only read when none is given.
    """
    os.makedirs(destination, exist_ok=True)
    return os.path.join(destination, f"{engine}-backup-{timestamp or format_timestamp(clock())}")


def run_tool(runner: CommandRunner, args: Sequence[str], engine: str,
             error_cls: Type[ToolError], env: Optional[Mapping[str, str]] = None,
             secrets: Iterable[Optional[str]] = ()) -> CommandResult:
    """Run a dump/restore tool, turning spawn failures and non-zero exits into `error_cls`."""
    tool = args[0]
    try:
        result = runner.run(args, env=env, secrets=secrets)
    except OSError as e:
        raise error_cls(f"Could not start {tool}: {e}", summary=str(e)) from e
    except subprocess.TimeoutExpired as e:
        raise error_cls(f"{tool} timed out after {e.timeout}s") from e

    if not result.ok:
        summary = parse_tool_error(result.stderr, engine)
        raise error_cls(
            f"{tool} failed with exit code {result.exit_code}: {summary}",
            exit_code=result.exit_code,
            stderr=result.stderr,
            summary=summary,
        )
    return result


def finalize_artifact(raw_path: str, compress: bool, logger: logging.Logger) -> str:
    """
    Checks that the dump produced `raw_path` and optionally replaces it with a gzip copy.

    The raw artifact is deleted only once the compressed file is completely written; a
    CompressionError leaves it on disk.
    """
    if not os.path.isfile(raw_path):
        raise DumpError(f"Dump finished but produced no artifact at {raw_path}")

    if not compress:
        return raw_path

    compressed_path = raw_path + GZIP_SUFFIX
    compress_file(raw_path, compressed_path)
    try:
        os.remove(raw_path)
    except OSError as e:
        # compressed_path is already complete here
        logger.warning(f"Could not remove raw dump {raw_path}: {e}")
    logger.info(f"Compressed backup written to {compressed_path}")
    return compressed_path


@contextmanager
def prepared_restore_input(file_path: str, logger: logging.Logger) -> Iterator[str]:
    """
    Yields a path a restore tool can read. Compressed inputs are decompressed into a
    sibling temporary file that is removed on exit; the original file is never touched.
    """
    if not os.path.isfile(file_path):
        raise RestoreError(f"Backup file not found: {file_path}")

    if not file_path.endswith(GZIP_SUFFIX):
        yield file_path
        return

    directory = os.path.dirname(os.path.abspath(file_path))
    prefix = os.path.basename(file_path)[:-len(GZIP_SUFFIX)] + "."
    fd, temp_path = tempfile.mkstemp(prefix=prefix, suffix=".restore", dir=directory)
    os.close(fd)
    try:
        decompress_file(file_path, temp_path)
        yield temp_path
    finally:
        if os.path.exists(temp_path):
            logger.debug(f"Removing temporary restore file: {temp_path}")
            os.remove(temp_path)
