"""Execution state machine.

The orchestrator composes loading, generation, dependency
verification, the remote channel, hook stages and the test runner into
one run:

    Init -> Loaded -> DependenciesVerified -> [Connected] -> SystemPrepared
         -> Running -> Completed

Any fatal error moves the run to Aborted. Once the run reached Running,
an abort still attempts the `after_all` hooks. Test failures are
recorded and never abort the run.
"""

import logging
from typing import TYPE_CHECKING

from playmaster.codegen import generate, write_artifacts
from playmaster.errors import HookError, PlaymasterError, RunCancelled
from playmaster.schema import HookType

from .dependencies import DependencyVerifier
from .hooks import HookScheduler
from .results import RunReport, RunState
from .runners import get_runner

if TYPE_CHECKING:
    from collections.abc import Callable
    from threading import Event

    from playmaster.core import ProjectLoader
    from playmaster.schema import Dependency, TestCase, TestFile

    from .context import ExecutionContext
    from .process import ProcessRegistry
    from .remote import RemoteProvider
    from .runners import TestRunner

logger = logging.getLogger(__name__)


class Orchestrator:
    """Drives one full test pass.

    Attributes:
        loader: Project loader.
        local: Local execution context.
        remote_provider: Provider of the remote channel; `None` in
            local mode.
        runner: Test runner; chosen by project type when `None`.
        setup_only: Stop once the system is prepared.
        cancel: Cancellation event observed between test cases and while
            waiting on blocking processes.
        confirm_install: Installation confirmation callback.
    """

    def __init__(self, loader: 'ProjectLoader', *,
                 local: 'ExecutionContext',
                 remote_provider: 'RemoteProvider | None' = None,
                 runner: 'TestRunner | None' = None,
                 setup_only: bool = False,
                 cancel: 'Event | None' = None,
                 processes: 'ProcessRegistry | None' = None,
                 confirm_install: 'Callable[[Dependency], bool] | None' = None) -> None:
        """Initialize an orchestrator.

        Args:
            loader: Project loader.
            local: Local execution context.
            remote_provider: Remote channel provider for remote mode.
            runner: Test runner override.
            setup_only: Stop after the system preparation stages.
            cancel: Cancellation event.
            processes: Registry for asynchronous hooks.
            confirm_install: Callback accepting the installation of an
                unsatisfied dependency; installations are skipped when
                `None`.
        """
        self.loader = loader
        self.local = local
        self.remote_provider = remote_provider
        self.runner = runner
        self.setup_only = setup_only
        self.cancel = cancel
        self.processes = processes
        self.confirm_install = confirm_install

    def run(self) -> RunReport:
        """Run the state machine to a final state.

        Returns:
            Report of the run; never raises for run failures.
        """
        report = RunReport()
        state = _RunScope(report, self.local)

        try:
            self.execute(state)

        except PlaymasterError as error:
            self.abort(state, error)

        except KeyboardInterrupt:
            self.abort(state, RunCancelled('Interrupted'))

        finally:
            if state.scheduler is not None:
                report.diagnostics = list(state.scheduler.diagnostics)
            if state.context is not self.local:
                state.context.close()

        return report

    def execute(self, state: '_RunScope') -> None:
        """Run every transition of a successful pass."""
        report = state.report

        project = self.loader.load()
        write_artifacts(project.root, generate(project))
        report.enter(RunState.LOADED)

        verifier = DependencyVerifier(self.local, cancel=self.cancel, confirm=self.confirm_install)
        verifier.ensure(project.config.dependencies)
        report.enter(RunState.DEPENDENCIES_VERIFIED)

        scheduler = state.scheduler = HookScheduler(
            project.config,
            cancel=self.cancel,
            processes=self.processes,
        )

        if self.remote_provider is not None:
            scheduler.run_stage(HookType.CONNECT, self.local)
            state.context = self.remote_provider.connect()
            report.enter(RunState.CONNECTED)

        scheduler.run_stage(HookType.VERIFY_SYSTEM, state.context)
        scheduler.run_stage(HookType.PREPARE_SYSTEM, state.context)
        report.enter(RunState.SYSTEM_PREPARED)

        if self.setup_only:
            logger.info('System prepared, skipping tests')
            report.enter(RunState.COMPLETED)
            return

        report.enter(RunState.RUNNING)
        scheduler.run_stage(HookType.BEFORE_ALL, state.context)

        runner = self.runner or get_runner(project.config.project_type, cancel=self.cancel)
        runner.prepare(project, state.context)

        for feature, case in project.cases():
            self.check_cancelled()
            self.run_case(runner, scheduler, feature, case, state)

        state.after_all_attempted = True
        scheduler.run_stage(HookType.AFTER_ALL, state.context)
        report.enter(RunState.COMPLETED)

        logger.info(
            'Run completed: %d passed, %d failed',
            len(report.passed), len(report.failed),
        )

    def run_case(self, runner: 'TestRunner', scheduler: HookScheduler,
                 feature: 'TestFile', case: 'TestCase',
                 state: '_RunScope') -> None:
        """Run one test case between its `before_test` and `after_test` hooks.

        The case result is recorded before `after_test` runs, so a failing
        cleanup hook never drops it. The `after_test` hooks run whatever
        happens before them. When an earlier error is propagating, a
        failure of `after_test` is only logged so the earlier error is the
        one reported.
        """
        context = state.context

        logger.info('Running %s / %s', feature.name, case.name)
        try:
            scheduler.run_stage(HookType.BEFORE_TEST, context)
            state.report.cases.append(runner.run_case(feature, case, context))

        except BaseException:
            try:
                scheduler.run_stage(HookType.AFTER_TEST, context)
            except HookError as cleanup:
                logger.error('after_test failed after an earlier error: %s', cleanup)  # noqa: TRY400
            raise

        scheduler.run_stage(HookType.AFTER_TEST, context)

    def abort(self, state: '_RunScope', error: PlaymasterError) -> None:
        """Move the run to Aborted and attempt the `after_all` hooks."""
        report = state.report
        reached_running = RunState.RUNNING in report.history

        report.error = error
        report.enter(RunState.ABORTED)
        logger.error('Run aborted: %s', error)

        if not reached_running or state.after_all_attempted or state.scheduler is None:
            return

        state.after_all_attempted = True
        try:
            state.scheduler.run_stage(HookType.AFTER_ALL, state.context, best_effort=True)
        except (PlaymasterError, KeyboardInterrupt) as cleanup:
            logger.error('after_all failed during abort: %s', cleanup)  # noqa: TRY400

    def check_cancelled(self) -> None:
        """Raise if cancellation was requested.

        Raises:
            RunCancelled: If the cancel event is set.
        """
        if self.cancel is not None and self.cancel.is_set():
            raise RunCancelled('Run cancelled')


class _RunScope:
    """Mutable bookkeeping of a single run."""

    def __init__(self, report: RunReport, context: 'ExecutionContext') -> None:
        self.report = report
        self.context = context
        self.scheduler: HookScheduler | None = None
        self.after_all_attempted = False
