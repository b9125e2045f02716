"""Scoped process handles and the registry of detached processes.

A `ProcessHandle` owns a child process and the files its output is
written to. Used as a context manager it guarantees that a process
still running when the block exits, normally or by an exception, is
terminated and that every file is closed.

Detached processes are not awaited: their handles are handed to the
process-wide `registry`, which reclaims them at interpreter exit.
"""

import atexit
import logging
import subprocess
from tempfile import TemporaryFile
from threading import Lock
from typing import IO, TYPE_CHECKING, NamedTuple, Self

from playmaster.errors import RunCancelled
from playmaster.names import to_snake_case

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path
    from threading import Event
    from types import TracebackType

logger = logging.getLogger(__name__)

#: Interval between cancellation checks while waiting, in seconds.
POLL_INTERVAL = 0.1

#: Grace period between terminate and kill, in seconds.
TERMINATE_TIMEOUT = 5.0

#: Number of output lines kept in diagnostics.
TAIL_LINES = 20


class CompletedCommand(NamedTuple):
    """Exit status and merged output of a finished command."""

    exit_code: int
    output: str

    @property
    def ok(self) -> bool:
        """Whether the command exited with status zero."""
        return self.exit_code == 0

    def tail(self, lines: int = TAIL_LINES) -> str:
        """Return the last lines of the output."""
        return '\n'.join(self.output.rstrip().splitlines()[-lines:])


class ProcessHandle:
    """Owned child process.

    Attributes:
        name: Name used in logs.
        process: Underlying `Popen` object.
    """

    def __init__(self, name: str, process: 'subprocess.Popen[bytes]', *,
                 streams: 'Sequence[IO[bytes]]' = (),
                 output: IO[bytes] | None = None) -> None:
        """Initialize a handle.

        Args:
            name: Name used in logs.
            process: Started child process.
            streams: Files owned by the handle, closed with it.
            output: Seekable file holding the merged output, if captured.
        """
        self.name = name
        self.process = process
        self.streams = tuple(streams)
        self.output = output

    @classmethod
    def capture(cls, name: str, argv: 'Sequence[str]', *,
                env: 'Mapping[str, str] | None' = None,
                cwd: 'Path | str | None' = None) -> Self:
        """Start a process with stdout and stderr captured to a temporary file.

        Raises:
            OSError: If the process cannot be started.
        """
        output = TemporaryFile()
        try:
            process = subprocess.Popen(  # noqa: S603
                list(argv),
                stdin=subprocess.DEVNULL,
                stdout=output,
                stderr=subprocess.STDOUT,
                env=env,
                cwd=cwd,
            )
        except OSError:
            output.close()
            raise

        return cls(name, process, streams=(output,), output=output)

    @classmethod
    def detach(cls, name: str, argv: 'Sequence[str]', *,
               log_dir: 'Path',
               env: 'Mapping[str, str] | None' = None,
               cwd: 'Path | str | None' = None) -> Self:
        """Start a process in its own session with output sent to log files.

        The process does not receive the terminal's interrupt signal. Log
        files are named after the snake_cased process name and appended
        to, so processes sharing a name keep each other's output.

        Raises:
            OSError: If the log files cannot be opened or the process
                cannot be started.
        """
        log_dir.mkdir(parents=True, exist_ok=True)
        stem = to_snake_case(name) or 'process'

        stdout = (log_dir / f'{stem}.stdout.log').open('ab')
        try:
            stderr = (log_dir / f'{stem}.stderr.log').open('ab')
        except OSError:
            stdout.close()
            raise

        try:
            process = subprocess.Popen(  # noqa: S603
                list(argv),
                stdin=subprocess.DEVNULL,
                stdout=stdout,
                stderr=stderr,
                env=env,
                cwd=cwd,
                start_new_session=True,
            )
        except OSError:
            stdout.close()
            stderr.close()
            raise

        return cls(name, process, streams=(stdout, stderr))

    @property
    def pid(self) -> int:
        """Process identifier."""
        return self.process.pid

    @property
    def running(self) -> bool:
        """Whether the process has not exited yet."""
        return self.process.poll() is None

    def wait(self, cancel: 'Event | None' = None) -> int:
        """Block until the process exits.

        Args:
            cancel: Event observed while waiting.

        Returns:
            Exit status.

        Raises:
            RunCancelled: If the event is set before the process exits;
                the process is terminated first.
        """
        while True:
            try:
                return self.process.wait(timeout=POLL_INTERVAL)
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    self.terminate()
                    raise RunCancelled(f'Cancelled while waiting for {self.name!r}') from None

    def result(self, cancel: 'Event | None' = None) -> CompletedCommand:
        """Wait for the process and return its status and captured output."""
        exit_code = self.wait(cancel)

        return CompletedCommand(exit_code, self.read_output())

    def read_output(self) -> str:
        """Return the captured output, or an empty string."""
        if self.output is None or self.output.closed:
            return ''

        self.output.seek(0)
        return self.output.read().decode('utf-8', errors='replace')

    def terminate(self) -> None:
        """Terminate the process, killing it if it does not exit in time."""
        if not self.running:
            return

        logger.debug('Terminating %s (pid %d)', self.name, self.pid)
        self.process.terminate()
        try:
            self.process.wait(timeout=TERMINATE_TIMEOUT)
        except subprocess.TimeoutExpired:
            self.process.kill()
            self.process.wait()

    def close(self) -> None:
        """Close the owned files."""
        for stream in self.streams:
            stream.close()

    def __enter__(self) -> Self:
        """Enter the handle scope."""
        return self

    def __exit__(self, exc_type: type[BaseException] | None,
                 exc_value: BaseException | None,
                 traceback: 'TracebackType | None') -> None:
        """Terminate the process if still running and close its files."""
        try:
            self.terminate()
        finally:
            self.close()


class ProcessRegistry:
    """Process-wide registry of detached processes.

    Handles are never awaited. At interpreter exit finished processes
    are reclaimed and processes still running are reported and left
    alone.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self.handles: list[ProcessHandle] = []
        self.lock = Lock()

    def add(self, handle: ProcessHandle) -> None:
        """Take ownership of a detached process handle."""
        with self.lock:
            self.handles.append(handle)

    def reap(self) -> list[ProcessHandle]:
        """Reclaim every registered handle.

        Returns:
            Handles whose process was still running.
        """
        with self.lock:
            handles, self.handles = self.handles, []

        running = []
        for handle in handles:
            if handle.running:
                logger.warning(
                    'Asynchronous hook %r (pid %d) is still running',
                    handle.name, handle.pid,
                )
                running.append(handle)
            else:
                logger.debug(
                    'Asynchronous hook %r exited with status %s',
                    handle.name, handle.process.returncode,
                )
            handle.close()

        return running


#: Registry of detached processes of this interpreter.
registry = ProcessRegistry()

atexit.register(registry.reap)
