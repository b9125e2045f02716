"""Run states, test outcomes and the final run report."""

from dataclasses import dataclass, field
from enum import IntEnum, StrEnum

from playmaster.errors import DependencyError, GenerationError, LoadError, PlaymasterError


class RunState(StrEnum):
    """States of the execution state machine, in transition order."""

    INIT = 'init'
    LOADED = 'loaded'
    DEPENDENCIES_VERIFIED = 'dependencies_verified'
    CONNECTED = 'connected'
    SYSTEM_PREPARED = 'system_prepared'
    RUNNING = 'running'
    COMPLETED = 'completed'
    ABORTED = 'aborted'


class ExitCode(IntEnum):
    """Process exit statuses, kept distinct for scripted callers."""

    OK = 0
    TESTS_FAILED = 1
    INVALID_PROJECT = 2
    DEPENDENCIES_FAILED = 3
    INFRASTRUCTURE_FAILED = 4


@dataclass(frozen=True)
class TestFailure:
    """Failed test case.

    Attributes:
        feature: Name of the test file.
        case_name: Name of the test case.
        step_index: Zero-based index of the failing step, if known.
        message: Tail of the runner output.
    """

    __test__ = False

    feature: str
    case_name: str
    step_index: int | None
    message: str

    def __str__(self) -> str:
        """Return a one-line summary."""
        step = 'unknown step' if self.step_index is None else f'step {self.step_index + 1}'
        return f'{self.feature} / {self.case_name}: failed at {step}'


@dataclass(frozen=True)
class CaseResult:
    """Outcome of one executed test case."""

    feature: str
    case_name: str
    failure: TestFailure | None = None

    @property
    def passed(self) -> bool:
        """Whether the case passed."""
        return self.failure is None


@dataclass
class RunReport:
    """Aggregated outcome of a run.

    Attributes:
        state: Current state of the run.
        history: Every state entered, in order.
        cases: Outcomes of executed test cases.
        diagnostics: Failures recorded in best-effort stages.
        error: Fatal error that aborted the run, if any.
    """

    state: RunState = RunState.INIT
    history: list[RunState] = field(default_factory=lambda: [RunState.INIT])
    cases: list[CaseResult] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)
    error: PlaymasterError | None = None

    def enter(self, state: RunState) -> None:
        """Transition to a new state."""
        self.state = state
        self.history.append(state)

    @property
    def passed(self) -> list[CaseResult]:
        """Passed test cases."""
        return [case for case in self.cases if case.passed]

    @property
    def failed(self) -> list[TestFailure]:
        """Failures of failed test cases."""
        return [case.failure for case in self.cases if case.failure is not None]

    @property
    def exit_code(self) -> ExitCode:
        """Exit status classifying the run."""
        if self.state == RunState.ABORTED:
            if isinstance(self.error, (LoadError, GenerationError)):
                return ExitCode.INVALID_PROJECT
            if isinstance(self.error, DependencyError):
                return ExitCode.DEPENDENCIES_FAILED
            return ExitCode.INFRASTRUCTURE_FAILED

        if self.failed:
            return ExitCode.TESTS_FAILED

        return ExitCode.OK
