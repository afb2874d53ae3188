import os
import subprocess
from typing import Iterable, Mapping, Optional, Sequence

from .logger import get_logger
from .schemas import CommandResult

logger = get_logger(__name__)

REDACTED = "<REDACTED>"


def redact_command(args: Sequence[str], secrets: Iterable[Optional[str]] = ()) -> str:
    """Render an argument vector for logging with any secret values masked."""
    secrets = [s for s in secrets if s]
    rendered = []
    for arg in args:
        for secret in secrets:
            arg = arg.replace(secret, REDACTED)
        rendered.append(arg)
    return " ".join(rendered)


class CommandRunner:
    """
    Runs external executables from an argument vector. Nothing goes through a shell,
    so values containing shell metacharacters are passed through literally.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def run(self, args: Sequence[str], env: Optional[Mapping[str, str]] = None,
            secrets: Iterable[Optional[str]] = ()) -> CommandResult:
        """
        Execute `args` and wait for it to exit.

        Raises OSError when the executable cannot be spawned and
        subprocess.TimeoutExpired when the configured timeout elapses. The child
        process is killed if the wait is interrupted for any reason.
        """
        logger.debug(f"Executing command: {redact_command(args, secrets)}")

        full_env = None
        if env:
            full_env = os.environ.copy()
            full_env.update(env)

        process = subprocess.Popen(
            list(args),
            env=full_env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
        try:
            stdout, stderr = process.communicate(timeout=self.timeout)
        except BaseException:
            # Timeouts, KeyboardInterrupt and SystemExit must not orphan the tool
            process.kill()
            process.communicate()
            raise

        result = CommandResult(
            exit_code=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        logger.debug(f"Command {args[0]} exited with code {result.exit_code}")
        return result
