"""External test runners.

A runner invokes one generated test case at a time through an
execution context and turns the outcome into a `CaseResult`. A test
that runs and fails is a test failure; a runner that cannot be started
is a `RunnerError`.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from re import compile as regexp
from typing import TYPE_CHECKING, ClassVar

from playmaster.codegen import GENERATED_DIR
from playmaster.errors import RunnerError
from playmaster.schema import ProjectType

from .results import CaseResult, TestFailure

if TYPE_CHECKING:
    from threading import Event

    from playmaster.core import Project
    from playmaster.schema import TestCase, TestFile

    from .context import ExecutionContext
    from .process import CompletedCommand

logger = logging.getLogger(__name__)

#: Step marker printed by generated tests before each step.
STEP_MARKER = regexp(r'playmaster:step:(\d+)')

_REGEX_SPECIALS = regexp(r'([\\^$.|?*+()\[\]{}])')


def escape_pattern(text: str) -> str:
    """Escape a literal for a test name filter."""
    return _REGEX_SPECIALS.sub(r'\\\1', text)


def last_step(output: str) -> int | None:
    """Return the index of the last step marker in a runner output."""
    markers = STEP_MARKER.findall(output)
    if not markers:
        return None

    return int(markers[-1])


class TestRunner(ABC):
    """Base class of external test runners.

    Attributes:
        cancel: Cancellation event observed while a test runs.
        workdir: Project directory in the execution context, set by
            `prepare`.
    """

    __test__ = False

    project_type: ClassVar[ProjectType]

    def __init__(self, *, cancel: 'Event | None' = None) -> None:
        """Initialize a runner.

        Args:
            cancel: Cancellation event.
        """
        self.cancel = cancel
        self.workdir: str | None = None

    @abstractmethod
    def prepare(self, project: 'Project', context: 'ExecutionContext') -> None:
        """Make the project runnable in a context.

        Raises:
            RunnerError: If the project cannot be prepared.
        """

    @abstractmethod
    def command(self, feature: 'TestFile', case: 'TestCase') -> list[str]:
        """Return the argument vector running one test case."""

    def run_case(self, feature: 'TestFile', case: 'TestCase',
                 context: 'ExecutionContext') -> CaseResult:
        """Run one test case and classify its outcome.

        Raises:
            RunnerError: If the runner cannot be started.
            RunCancelled: If the run is cancelled while the test runs.
        """
        result = self.execute(f'test-{feature.suite_name}', self.command(feature, case), context)
        if result.ok:
            logger.info('PASSED %s / %s', feature.name, case.name)
            return CaseResult(feature=feature.name, case_name=case.name)

        failure = TestFailure(
            feature=feature.name,
            case_name=case.name,
            step_index=last_step(result.output),
            message=result.tail(),
        )
        logger.error('FAILED %s', failure)

        return CaseResult(feature=feature.name, case_name=case.name, failure=failure)

    def execute(self, name: str, argv: list[str],
                context: 'ExecutionContext') -> 'CompletedCommand':
        """Run a runner command in the project directory.

        Raises:
            RunnerError: If the command cannot be started.
        """
        try:
            return context.run(name, argv, cwd=self.workdir, cancel=self.cancel)
        except OSError as base:
            raise RunnerError(f'Can not start {argv[0]!r}: {base}') from base


class FlutterRunner(TestRunner):
    """Runs generated suites with `flutter test` on the Linux desktop device."""

    project_type = ProjectType.FLUTTER

    #: Project paths the runner needs in a remote context.
    SYNC_PATHS = ('integration_test', 'test_driver', 'lib', 'linux', 'pubspec.yaml')

    DEVICE = 'linux'

    def prepare(self, project: 'Project', context: 'ExecutionContext') -> None:
        """Stage the project and fetch its packages."""
        self.workdir = context.stage(project.root, self.SYNC_PATHS)

        result = self.execute('flutter-pub-get', ['flutter', 'pub', 'get'], context)
        if not result.ok:
            raise RunnerError(f'flutter pub get failed ({result.exit_code}):\n{result.tail()}')

    def command(self, feature: 'TestFile', case: 'TestCase') -> list[str]:
        """Return the `flutter test` invocation of one test case."""
        suite = PurePosixPath(GENERATED_DIR, f'{feature.suite_name}.dart')
        name = f'^{escape_pattern(feature.name)} {escape_pattern(case.name)}$'

        return ['flutter', 'test', str(suite), '--name', name, '-d', self.DEVICE]


_RUNNERS: dict[ProjectType, type[TestRunner]] = {
    FlutterRunner.project_type: FlutterRunner,
}


def get_runner(project_type: ProjectType, *, cancel: 'Event | None' = None) -> TestRunner:
    """Return a runner for a project type.

    Raises:
        RunnerError: If no runner supports the project type.
    """
    if (runner := _RUNNERS.get(project_type)) is None:
        raise RunnerError(f'No test runner for project type {project_type!r}')

    return runner(cancel=cancel)
