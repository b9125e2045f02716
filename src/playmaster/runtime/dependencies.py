"""Environment prerequisite verification.

Each dependency is probed by running its version command through a
shell, taking the first version token of the output and comparing it
with the declared minimal version. Probes are independent and run
concurrently; the verdict is available only once all of them finish.
Unsatisfied dependencies may then be installed and probed again.
"""

import logging
import shlex
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import StrEnum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from pydantic import Field

from playmaster.errors import DependencyError
from playmaster.models import SchemaModel
from playmaster.schema import Dependency  # noqa: TC001

from .semver import extract_version, is_at_least

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from threading import Event

    from .context import ExecutionContext

logger = logging.getLogger(__name__)

MAX_WORKERS = 8

#: Directory downloaded installation files are saved to.
DOWNLOAD_DIR = PurePosixPath('/tmp')  # noqa: S108


class DependencyStatus(StrEnum):
    """Outcome of a dependency probe."""

    SATISFIED = 'satisfied'
    UNSATISFIED = 'unsatisfied'
    COMMAND_FAILED = 'command_failed'


class DependencyResult(SchemaModel):
    """Result of probing one dependency."""

    dependency: Dependency
    status: DependencyStatus
    found: str | None = Field(
        default=None,
        description='Version token extracted from the probe output.',
    )
    exit_code: int | None = Field(
        default=None,
        description='Exit status of a failed probe; `None` if it never started.',
    )
    output: str = ''

    @property
    def ok(self) -> bool:
        """Whether the dependency is satisfied."""
        return self.status == DependencyStatus.SATISFIED

    def describe(self) -> str:
        """Return a one-line human-readable verdict."""
        name = self.dependency.name
        required = self.dependency.min_version

        match self.status:
            case DependencyStatus.SATISFIED:
                return f'{name} {self.found} (>= {required})'
            case DependencyStatus.UNSATISFIED if self.found is None:
                return f'{name}: no version found in probe output, required >= {required}'
            case DependencyStatus.UNSATISFIED:
                return f'{name}: found {self.found}, required >= {required}'

        if self.exit_code is None:
            return f'{name}: probe could not be started: {self.output}'

        return f'{name}: probe exited with status {self.exit_code}'


class DependencyVerifier:
    """Probes the declared dependencies in an execution context.

    An unsatisfied dependency declaring an installation is offered for
    installation through the `confirm` callback and probed again once
    installed.

    Attributes:
        context: Context the probes and installations run in.
        cancel: Cancellation event observed while waiting on processes.
        confirm: Callback accepting or declining an installation; when
            `None`, installations are never attempted.
    """

    def __init__(self, context: 'ExecutionContext', *,
                 cancel: 'Event | None' = None,
                 confirm: 'Callable[[Dependency], bool] | None' = None) -> None:
        """Initialize a verifier.

        Args:
            context: Context the probes run in.
            cancel: Cancellation event.
            confirm: Installation confirmation callback.
        """
        self.context = context
        self.cancel = cancel
        self.confirm = confirm

    def check(self, dependency: Dependency, *, path: str | None = None) -> DependencyResult:
        """Probe a single dependency.

        Args:
            dependency: Dependency to probe.
            path: Directory prepended to `PATH` for the probe.
        """
        command = dependency.version_command
        if path is not None:
            command = f'{export_path(path)}; {command}'

        try:
            result = self.context.run(
                f'probe-{dependency.name}',
                self.context.shell(command),
                cancel=self.cancel,
            )
        except OSError as base:
            return DependencyResult(
                dependency=dependency,
                status=DependencyStatus.COMMAND_FAILED,
                output=str(base),
            )

        if not result.ok:
            return DependencyResult(
                dependency=dependency,
                status=DependencyStatus.COMMAND_FAILED,
                exit_code=result.exit_code,
                output=result.tail(),
            )

        found = extract_version(result.output)
        satisfied = found is not None and is_at_least(found, dependency.min_version)

        return DependencyResult(
            dependency=dependency,
            status=DependencyStatus.SATISFIED if satisfied else DependencyStatus.UNSATISFIED,
            found=found,
            output=result.tail(),
        )

    def verify(self, dependencies: 'Sequence[Dependency]') -> list[DependencyResult]:
        """Probe every dependency concurrently.

        Returns:
            Results in declared order, once every probe has finished.
        """
        if not dependencies:
            return []

        results: dict[int, DependencyResult] = {}
        with ThreadPoolExecutor(max_workers=min(MAX_WORKERS, len(dependencies))) as pool:
            futures = {
                pool.submit(self.check, dependency): index
                for index, dependency in enumerate(dependencies)
            }
            for future in as_completed(futures):
                result = future.result()
                logger.debug('Dependency %s', result.describe())
                results[futures[future]] = result

        return [results[index] for index in range(len(dependencies))]

    def install(self, result: DependencyResult) -> DependencyResult:
        """Offer the installation of an unsatisfied dependency.

        The file of a URL source is downloaded into `DOWNLOAD_DIR`, then
        the setup command runs with `{{file}}` replaced by its path. The
        binary directory is persisted into `~/.bashrc`.

        Returns:
            Result of probing the dependency again, or the given result
            when there is nothing to install or the installation was
            declined.

        Raises:
            DependencyError: If an installation step fails.
        """
        dependency = result.dependency
        spec = dependency.install
        if result.ok or spec is None:
            return result

        if self.confirm is None or not self.confirm(dependency):
            logger.warning('Installation of %s declined', spec.tool)
            return result

        logger.info('Installing %s for %s', spec.tool, dependency.name)
        setup = spec.setup
        if spec.source is not None:
            url = spec.source.resolve(spec.version)
            target = str(DOWNLOAD_DIR / (PurePosixPath(urlsplit(url).path).name or spec.tool))
            self.run_step(spec.tool, f'download-{dependency.name}', [
                'curl', '-fsSL', '--retry', '3', '-o', target, url,
            ])
            if setup is not None:
                setup = setup.replace('{{file}}', shlex.quote(target))

        if setup is not None:
            self.run_step(spec.tool, f'setup-{dependency.name}', self.context.shell(setup))

        if spec.bin_path is not None:
            line = shlex.quote(export_path(spec.bin_path))
            self.run_step(spec.tool, f'path-{dependency.name}', self.context.shell(
                f'touch ~/.bashrc && (grep -qxF {line} ~/.bashrc || printf "%s\\n" {line} >> ~/.bashrc)',
            ))

        logger.info('Installed %s', spec.tool)
        return self.check(dependency, path=spec.bin_path)

    def run_step(self, tool: str, name: str, argv: 'Sequence[str]') -> None:
        """Run one installation step.

        Raises:
            DependencyError: If the step cannot be started or fails.
        """
        try:
            result = self.context.run(name, argv, cancel=self.cancel)
        except OSError as base:
            raise DependencyError(f'Installation of {tool} failed: {name} could not be started: {base}') from base

        if not result.ok:
            raise DependencyError(
                f'Installation of {tool} failed: {name} exited with status {result.exit_code}\n'
                f'{result.tail()}',
            )

    def ensure(self, dependencies: 'Sequence[Dependency]') -> list[DependencyResult]:
        """Probe every dependency and require all of them to be satisfied.

        Unsatisfied dependencies with an installation are offered for
        installation one at a time, in declared order.

        Raises:
            DependencyError: Listing every unsatisfied or failed probe.
        """
        results = [self.install(result) for result in self.verify(dependencies)]
        failures = [result for result in results if not result.ok]
        if failures:
            raise DependencyError(
                'Unsatisfied dependencies:\n' + '\n'.join(
                    f'    {result.describe()}'
                    for result in failures
                ),
            )

        for result in results:
            logger.info('Dependency %s', result.describe())

        return results


def export_path(directory: str) -> str:
    """Return the shell statement prepending a directory to `PATH`.

    Relative directories, and directories starting with `~`, are taken
    from the home directory of the context.
    """
    if directory.startswith('/'):
        quoted = shlex.quote(directory)
    else:
        quoted = '"$HOME"/' + shlex.quote(directory.removeprefix('~').lstrip('/') or '.')

    return f'export PATH={quoted}:"$PATH"'
