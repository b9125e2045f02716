"""Execution contexts.

An execution context is the capability through which hooks, probes and
test invocations start processes. The local context runs them on this
machine; the remote channel (see `playmaster.runtime.remote`) runs them
on the target over one shared connection. Callers never branch on the
mode: they receive a context and use it.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar, Self

from .process import ProcessHandle

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path
    from threading import Event
    from types import TracebackType

    from playmaster.settings import Settings

    from .process import CompletedCommand

logger = logging.getLogger(__name__)

SHELL = ('sh', '-c')


class ExecutionContext(ABC):
    """Base class of execution contexts.

    Attributes:
        settings: Runtime settings.
    """

    #: Whether processes run on a remote target.
    remote: ClassVar[bool] = False

    def __init__(self, settings: 'Settings') -> None:
        """Initialize a context.

        Args:
            settings: Runtime settings.
        """
        self.settings = settings

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable location of the context."""

    @abstractmethod
    def start(self, name: str, argv: 'Sequence[str]', *,
              env: 'Mapping[str, str] | None' = None,
              cwd: 'str | None' = None) -> ProcessHandle:
        """Start a process with captured output.

        Raises:
            OSError: If the process cannot be started.
        """

    @abstractmethod
    def launch(self, name: str, argv: 'Sequence[str]', *,
               env: 'Mapping[str, str] | None' = None,
               cwd: 'str | None' = None) -> ProcessHandle:
        """Start a detached process logging to the log directory.

        Raises:
            OSError: If the process cannot be started.
        """

    @abstractmethod
    def stage(self, root: 'Path', paths: 'Sequence[str]') -> str:
        """Make project files available to the context.

        Args:
            root: Local project root.
            paths: Root-relative paths needed by the test runner.

        Returns:
            Working directory of the project within the context.
        """

    def run(self, name: str, argv: 'Sequence[str]', *,
            env: 'Mapping[str, str] | None' = None,
            cwd: 'str | None' = None,
            cancel: 'Event | None' = None) -> 'CompletedCommand':
        """Run a process to completion.

        The process is terminated if the wait is cancelled or
        interrupted.

        Raises:
            OSError: If the process cannot be started.
            RunCancelled: If the cancel event is set while waiting.
        """
        logger.debug('Running %s in %s: %s', name, self.description, ' '.join(argv))
        with self.start(name, argv, env=env, cwd=cwd) as handle:
            return handle.result(cancel)

    def shell(self, command: str) -> list[str]:
        """Return the argument vector running a shell command."""
        return [*SHELL, command]

    def close(self) -> None:  # noqa: B027
        """Release resources held by the context."""

    def __enter__(self) -> Self:
        """Enter the context scope."""
        return self

    def __exit__(self, exc_type: type[BaseException] | None,
                 exc_value: BaseException | None,
                 traceback: 'TracebackType | None') -> None:
        """Close the context."""
        self.close()


class LocalContext(ExecutionContext):
    """Runs processes on this machine, in the project root by default.

    Attributes:
        root: Local project root.
    """

    def __init__(self, settings: 'Settings', root: 'Path') -> None:
        """Initialize a local context.

        Args:
            settings: Runtime settings.
            root: Local project root.
        """
        super().__init__(settings)
        self.root = root

    @property
    def description(self) -> str:
        """Human-readable location of the context."""
        return 'local context'

    def environment(self, env: 'Mapping[str, str] | None' = None) -> dict[str, str]:
        """Return the process environment overridden by `env`."""
        return {**os.environ, **(env or {})}

    def start(self, name: str, argv: 'Sequence[str]', *,
              env: 'Mapping[str, str] | None' = None,
              cwd: 'str | None' = None) -> ProcessHandle:
        """Start a local process with captured output."""
        return ProcessHandle.capture(
            name,
            argv,
            env=self.environment(env),
            cwd=cwd or self.root,
        )

    def launch(self, name: str, argv: 'Sequence[str]', *,
               env: 'Mapping[str, str] | None' = None,
               cwd: 'str | None' = None) -> ProcessHandle:
        """Start a detached local process."""
        return ProcessHandle.detach(
            name,
            argv,
            log_dir=self.root / self.settings.log_dir,
            env=self.environment(env),
            cwd=cwd or self.root,
        )

    def stage(self, root: 'Path', paths: 'Sequence[str]') -> str:  # noqa: ARG002
        """Return the project root; local runs need no copy."""
        return str(root)
