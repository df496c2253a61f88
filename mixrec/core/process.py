"""Supervision of a single FFmpeg recording process.

TranscoderProcess pairs the spawn with a guaranteed release: a graceful
"q" on stdin with a bounded wait, then a kill. Used as a context manager
it force-kills on exit if the process is still alive.
"""

import logging
import subprocess
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Self

from mixrec.exceptions import SpawnFailedError

logger = logging.getLogger(__name__)

QUIT_COMMAND = "q\n"
DEFAULT_STOP_TIMEOUT = 5.0


class TranscoderProcess:
    """A running FFmpeg process with an open stdin for graceful stop.

    Args:
        binary: FFmpeg executable.
        args: Arguments after the executable.
        popen: Callable with subprocess.Popen's signature (injectable for tests).

    Example:
        with TranscoderProcess(binary, args) as process:
            ...
            process.stop()
    """

    def __init__(
        self,
        binary: Path,
        args: Sequence[str],
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self._binary = binary
        self._args = list(args)
        self._popen = popen
        self._process: subprocess.Popen | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        if self._process is None:
            return None
        return self._process.poll()

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def spawn(self) -> None:
        """Start FFmpeg with stdin piped and its output discarded.

        Raises:
            SpawnFailedError: If the process cannot be created.
        """
        if self._process is not None:
            logger.warning("Transcoder already spawned (pid %s)", self.pid)
            return

        kwargs = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

        try:
            self._process = self._popen(
                [str(self._binary), *self._args],
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **kwargs,
            )
        except (OSError, ValueError) as e:
            raise SpawnFailedError(f"Failed to start {self._binary}: {e}") from e
        logger.info("Started transcoder (pid %s)", self.pid)

    def stop(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> int | None:
        """Ask FFmpeg to quit, waiting up to timeout before killing it.

        A process that cannot be written to falls through to kill(). An
        interrupt during the graceful wait kills the process before it
        propagates.

        Returns:
            The process exit code, or None if it could not be reaped.
        """
        process = self._process
        if process is None:
            return None

        if process.poll() is not None:
            logger.info("Transcoder already exited with code %s", process.returncode)
            return process.returncode

        try:
            if process.stdin is not None:
                process.stdin.write(QUIT_COMMAND.encode("ascii"))
                process.stdin.flush()
                process.stdin.close()
            returncode = process.wait(timeout=timeout)
            logger.info("Transcoder exited with code %s", returncode)
            return returncode
        except subprocess.TimeoutExpired:
            logger.warning("Transcoder did not exit within %.1f seconds, killing", timeout)
        except (OSError, ValueError) as e:
            # Broken pipe / closed stdin: the process is going or gone.
            logger.info("Could not send quit to transcoder (%s), terminating", e)
        except BaseException:
            self.kill()
            raise

        return self.kill()

    def kill(self) -> int | None:
        """Force-terminate the process. Failures are logged, not raised."""
        process = self._process
        if process is None:
            return None

        try:
            if process.poll() is None:
                process.kill()
            returncode = process.wait(timeout=DEFAULT_STOP_TIMEOUT)
            logger.info("Transcoder terminated (code %s)", returncode)
            return returncode
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.error("Error killing transcoder (pid %s): %s", process.pid, e)
            return None
        finally:
            self._close_stdin(process)

    @staticmethod
    def _close_stdin(process: subprocess.Popen) -> None:
        if process.stdin is None or process.stdin.closed:
            return
        try:
            process.stdin.close()
        except OSError as e:
            logger.debug("Error closing transcoder stdin: %s", e)

    def __enter__(self) -> Self:
        self.spawn()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: object,
    ) -> None:
        if self.is_running:
            self.kill()
