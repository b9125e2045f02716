"""Tests for the execution state machine."""

from threading import Event
from typing import TYPE_CHECKING

import pytest

from playmaster.codegen import GENERATED_DIR
from playmaster.errors import (
    DependencyError,
    HookError,
    LoadError,
    RemoteConnectionError,
    RunCancelled,
    RunnerError,
)
from playmaster.runtime import CompletedCommand, ExitCode, Orchestrator, RunState

from tests.conftest import CONFIG_CONTENT, PROJECT_ROOT

if TYPE_CHECKING:
    from collections.abc import Callable

    from pytest_mock import MockerFixture

    from playmaster.core import ProjectLoader
    from playmaster.runtime import ProcessRegistry

    from tests.conftest import FakeContext

HOOKS_CONTENT = CONFIG_CONTENT + '''
hooks:
  - {name: connect, hook_type: connect, command: vpn-up}
  - {name: verify, hook_type: verify_system, command: check}
  - {name: prepare, hook_type: prepare_system, command: install}
  - {name: before_all, hook_type: before_all, command: seed}
  - {name: before_test, hook_type: before_test, command: reset}
  - {name: after_test, hook_type: after_test, command: collect}
  - {name: after_all, hook_type: after_all, command: teardown}
'''

INSTALL_CONTENT = CONFIG_CONTENT + '''    install:
      tool: flutter
      version: 3.29.2
      source: {type: url, url: 'https://example.com/flutter_linux_{{version}}-stable.tar.xz'}
      setup: tar -xJf {{file}} -C ~/playmaster
'''

SUITE = 'test-first_time_user_experience_test'

FLUTTER_OK = CompletedCommand(0, 'Flutter 3.29.2 • channel stable')

FULL_PASS = [
    'probe-flutter',
    'verify',
    'prepare',
    'before_all',
    'flutter-pub-get',
    'before_test',
    SUITE,
    'after_test',
    'after_all',
]


@pytest.fixture
def orchestrator(project_loader: 'Callable[..., ProjectLoader]',
                 fake_context: 'Callable[..., FakeContext]',
                 processes: 'ProcessRegistry') -> 'Callable[..., tuple[Orchestrator, FakeContext]]':
    """Provide a factory of orchestrators over the sample project with hooks."""
    def create(results: dict | None = None, *,
               files: dict | None = None,
               **kwargs) -> 'tuple[Orchestrator, FakeContext]':  # noqa: ANN003
        local = fake_context({'probe-flutter': FLUTTER_OK, **(results or {})})
        loader = project_loader({'playmaster.yaml': HOOKS_CONTENT, **(files or {})})

        return Orchestrator(loader, local=local, processes=processes, **kwargs), local

    return create


def test_run_passes(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]') -> None:
    """Run every stage in order and complete with all cases passed."""
    runner, local = orchestrator()

    report = runner.run()

    assert report.history == [
        RunState.INIT,
        RunState.LOADED,
        RunState.DEPENDENCIES_VERIFIED,
        RunState.SYSTEM_PREPARED,
        RunState.RUNNING,
        RunState.COMPLETED,
    ]
    assert report.exit_code == ExitCode.OK
    assert [case.case_name for case in report.passed] == ['Successful Login']
    assert local.names == FULL_PASS
    assert local.staged[0][0] == PROJECT_ROOT
    assert not local.closed

    (_, argv, _) = local.calls[FULL_PASS.index(SUITE)]
    assert argv[:3] == ['flutter', 'test', 'integration_test/generated/first_time_user_experience_test.dart']
    assert (PROJECT_ROOT / GENERATED_DIR / 'first_time_user_experience_test.dart').is_file()


def test_test_failure(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]') -> None:
    """Record a failing case with its step and keep running."""
    output = 'playmaster:step:0\nplaymaster:step:1\nplaymaster:step:2\nExpected: exactly one matching candidate'
    runner, local = orchestrator({SUITE: CompletedCommand(1, output)})

    report = runner.run()

    assert report.state == RunState.COMPLETED
    assert report.exit_code == ExitCode.TESTS_FAILED
    (failure,) = report.failed
    assert failure.step_index == 2
    assert failure.message.endswith('Expected: exactly one matching candidate')
    assert str(failure) == 'First Time User Experience / Successful Login: failed at step 3'
    assert local.names == FULL_PASS


def test_dependency_failure(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]') -> None:
    """Abort before any hook when a dependency is unsatisfied."""
    runner, local = orchestrator({'probe-flutter': CompletedCommand(0, 'Flutter 3.28.0')})

    report = runner.run()

    assert report.history == [RunState.INIT, RunState.LOADED, RunState.ABORTED]
    assert isinstance(report.error, DependencyError)
    assert report.exit_code == ExitCode.DEPENDENCIES_FAILED
    assert local.names == ['probe-flutter']


def test_load_failure(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]') -> None:
    """Abort on an invalid project without running anything."""
    runner, local = orchestrator(files={'feature_test/broken.yaml': 'name: [broken'})

    report = runner.run()

    assert report.history == [RunState.INIT, RunState.ABORTED]
    assert isinstance(report.error, LoadError)
    assert report.exit_code == ExitCode.INVALID_PROJECT
    assert local.calls == []
    assert not (PROJECT_ROOT / GENERATED_DIR).exists()


def test_before_test_failure(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]') -> None:
    """Skip the case, run after_test and after_all, then abort."""
    runner, local = orchestrator({'before_test': CompletedCommand(1, 'database locked')})

    report = runner.run()

    assert report.state == RunState.ABORTED
    assert isinstance(report.error, HookError)
    assert report.error.stage == 'before_test'
    assert report.exit_code == ExitCode.INFRASTRUCTURE_FAILED
    assert report.cases == []
    assert local.names == [name for name in FULL_PASS if name != SUITE]


def test_prepare_system_failure(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]') -> None:
    """Abort without after_all when the run never started."""
    runner, local = orchestrator({'prepare': CompletedCommand(2, '')})

    report = runner.run()

    assert report.exit_code == ExitCode.INFRASTRUCTURE_FAILED
    assert local.names == ['probe-flutter', 'verify', 'prepare']


def test_best_effort_diagnostics(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]') -> None:
    """Report verify_system and after_all failures without aborting."""
    runner, local = orchestrator({
        'verify': CompletedCommand(1, 'low disk'),
        'after_all': FileNotFoundError('teardown'),
    })

    report = runner.run()

    assert report.exit_code == ExitCode.OK
    assert len(report.diagnostics) == 2
    assert local.names == FULL_PASS


def test_runner_failure(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]') -> None:
    """Abort when the runner cannot prepare and still run after_all."""
    runner, local = orchestrator({'flutter-pub-get': CompletedCommand(1, 'pub failed')})

    report = runner.run()

    assert isinstance(report.error, RunnerError)
    assert report.exit_code == ExitCode.INFRASTRUCTURE_FAILED
    assert local.names == ['probe-flutter', 'verify', 'prepare', 'before_all', 'flutter-pub-get', 'after_all']


def test_setup_only(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]') -> None:
    """Stop once the system is prepared."""
    runner, local = orchestrator(setup_only=True)

    report = runner.run()

    assert report.history[-2:] == [RunState.SYSTEM_PREPARED, RunState.COMPLETED]
    assert report.exit_code == ExitCode.OK
    assert local.names == ['probe-flutter', 'verify', 'prepare']


def test_cancelled(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]') -> None:
    """Abort between cases once cancellation is requested."""
    cancel = Event()
    cancel.set()
    runner, local = orchestrator(cancel=cancel)

    report = runner.run()

    assert isinstance(report.error, RunCancelled)
    assert report.exit_code == ExitCode.INFRASTRUCTURE_FAILED
    assert SUITE not in local.names
    assert local.names[-1] == 'after_all'


def test_interrupted(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]') -> None:
    """Treat an interrupt during a case as a cancellation."""
    runner, local = orchestrator({SUITE: KeyboardInterrupt()})

    report = runner.run()

    assert isinstance(report.error, RunCancelled)
    assert local.names[-2:] == ['after_test', 'after_all']


def test_remote_mode(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]',
                     fake_context: 'Callable[..., FakeContext]',
                     mocker: 'MockerFixture') -> None:
    """Run connect hooks locally and everything else over the channel."""
    remote = fake_context(remote=True)
    provider = mocker.Mock()
    provider.connect.return_value = remote
    runner, local = orchestrator(remote_provider=provider)

    report = runner.run()

    assert RunState.CONNECTED in report.history
    assert report.exit_code == ExitCode.OK
    assert local.names == ['probe-flutter', 'connect']
    assert remote.names == FULL_PASS[1:]
    assert remote.staged[0][1] == ('integration_test', 'test_driver', 'lib', 'linux', 'pubspec.yaml')
    assert remote.closed
    assert not local.closed


def test_remote_connect_failure(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]',
                                mocker: 'MockerFixture') -> None:
    """Abort when the channel cannot be opened."""
    provider = mocker.Mock()
    provider.connect.side_effect = RemoteConnectionError('refused')
    runner, local = orchestrator(remote_provider=provider)

    report = runner.run()

    assert isinstance(report.error, RemoteConnectionError)
    assert RunState.CONNECTED not in report.history
    assert report.exit_code == ExitCode.INFRASTRUCTURE_FAILED
    assert local.names == ['probe-flutter', 'connect']


def test_after_test_failure_keeps_result(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]') -> None:
    """Record the case result before a failing after_test aborts the run."""
    runner, local = orchestrator({
        SUITE: CompletedCommand(1, 'playmaster:step:0\nplaymaster:step:1\nExpected: exactly one matching candidate'),
        'after_test': CompletedCommand(1, 'collector crashed'),
    })

    report = runner.run()

    assert report.state == RunState.ABORTED
    assert isinstance(report.error, HookError)
    assert report.error.stage == 'after_test'
    assert report.exit_code == ExitCode.INFRASTRUCTURE_FAILED
    (failure,) = report.failed
    assert failure.step_index == 1
    assert local.names == FULL_PASS


def test_install_dependency(orchestrator: 'Callable[..., tuple[Orchestrator, FakeContext]]',
                            mocker: 'MockerFixture') -> None:
    """Install an outdated dependency once confirmed and continue the run."""
    confirm = mocker.Mock(return_value=True)
    runner, local = orchestrator(
        {'probe-flutter': [CompletedCommand(0, 'Flutter 3.28.0'), FLUTTER_OK]},
        files={'playmaster.yaml': INSTALL_CONTENT},
        confirm_install=confirm,
    )

    report = runner.run()

    assert report.exit_code == ExitCode.OK
    assert confirm.call_args.args[0].install.tool == 'flutter'
    assert local.names[:4] == ['probe-flutter', 'download-flutter', 'setup-flutter', 'probe-flutter']
