"""Command-line interface.

`gen` compiles the project into test sources, `schema` prints the JSON
Schema of the file formats and `run` drives a full test pass locally or
against a remote target.
"""

import logging
import signal
from functools import partial
from pathlib import Path
from threading import Event
from typing import TYPE_CHECKING

from click import BadParameter, Choice, UsageError, confirm, echo, group, option, pass_context, prompt, secho
from click import Path as PathParam

from playmaster.codegen import generate, write_artifacts
from playmaster.core import ProjectLoader
from playmaster.errors import PlaymasterError
from playmaster.jsonschema import FORMATS, SchemaGenerator
from playmaster.runtime import ExitCode, LocalContext, Orchestrator, RemoteAddress, RemoteProvider
from playmaster.settings import Settings

if TYPE_CHECKING:
    from click import Context

    from playmaster.runtime import RunReport
    from playmaster.schema import Dependency

LOG_FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'

ProjectDirectory = PathParam(
    exists=True,
    file_okay=False,
    resolve_path=True,
    path_type=Path,
)


@group(help='Compile YAML UI tests into Flutter integration tests and run them.')
@option('-v', '--verbose', is_flag=True, help='Enable debug logging.')
@option(
    '-p', '--project',
    type=ProjectDirectory,
    default='.',
    show_default=True,
    help='Project root containing playmaster.yaml.',
)
@pass_context
def cli(ctx: 'Context', verbose: bool, project: Path) -> None:  # noqa: FBT001
    """Root CLI group for playmaster.

    Args:
        ctx: Click context; its object receives the project root.
        verbose: Enable debug logging.
        project: Project root.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )
    ctx.obj = project


@cli.command(
    name='gen',
    help='Validate the project and write the generated test sources.',
)
@pass_context
def gen(ctx: 'Context') -> None:
    """Load, render and write the artifacts of the project."""
    root: Path = ctx.obj
    try:
        project = ProjectLoader(root).load()
        written = write_artifacts(root, generate(project))
    except PlaymasterError as error:
        secho(str(error), fg='red', err=True)
        ctx.exit(ExitCode.INVALID_PROJECT)

    for path in written:
        echo(path.relative_to(root).as_posix())


@cli.command(
    name='schema',
    help='Print the JSON Schema of a playmaster file format to standard output.',
)
@option(
    '-f', '--format', 'name',
    type=Choice(sorted(FORMATS)),
    default='test',
    show_default=True,
    help='File format to describe.',
)
def print_schema(name: str) -> None:
    """Generate and print a JSON Schema."""
    echo(SchemaGenerator.make_schema(name))


@cli.command(
    name='run',
    help='Verify the environment, run the hooks and execute every test case.',
)
@option(
    '-m', '--mode',
    type=Choice(['local', 'remote']),
    default='local',
    show_default=True,
    help='Run on this machine or on a remote target over SSH.',
)
@option(
    '-r', '--remote-addr',
    help='Remote target as [user@]host[:port]. Prompted for when omitted.',
)
@option('--setup', is_flag=True, help='Prepare the system only, without running tests.')
@option(
    '-y', '--yes',
    is_flag=True,
    help='Install unsatisfied dependencies and accept every other prompt without asking.',
)
@pass_context
def run(ctx: 'Context', mode: str, remote_addr: str | None, setup: bool, yes: bool) -> None:  # noqa: FBT001
    """Run a full test pass and exit with its classification."""
    root: Path = ctx.obj
    settings = Settings()

    provider = None
    if mode == 'remote':
        provider = RemoteProvider(resolve_address(remote_addr, yes=yes), settings)

    cancel = Event()
    orchestrator = Orchestrator(
        ProjectLoader(root),
        local=LocalContext(settings, root),
        remote_provider=provider,
        setup_only=setup,
        cancel=cancel,
        confirm_install=partial(confirm_install, yes=yes),
    )

    previous = signal.signal(signal.SIGTERM, lambda *_: cancel.set())
    try:
        report = orchestrator.run()
    finally:
        signal.signal(signal.SIGTERM, previous)

    print_report(report)
    ctx.exit(int(report.exit_code))


def resolve_address(value: str | None, *, yes: bool) -> RemoteAddress:
    """Parse, or ask for, the remote address.

    Raises:
        UsageError: If the address is missing and prompts are disabled.
        BadParameter: If the address is malformed.
    """
    if not value:
        if yes:
            raise UsageError('--remote-addr is required with --yes in remote mode')
        value = prompt('Remote address ([user@]host[:port])')

    try:
        address = RemoteAddress.parse(value)
    except ValueError as error:
        raise BadParameter(str(error), param_hint='--remote-addr') from error

    if not yes:
        confirm(f'Run hooks and tests on {address}?', abort=True, default=True)

    return address


def confirm_install(dependency: 'Dependency', *, yes: bool) -> bool:
    """Ask whether to install an unsatisfied dependency.

    Args:
        dependency: Unsatisfied dependency declaring an installation.
        yes: Accept without asking.
    """
    tool = dependency.install.tool if dependency.install else dependency.name
    if yes:
        secho(f'Installing {tool} for unsatisfied dependency {dependency.name}', fg='yellow', err=True)
        return True

    return confirm(f'Dependency {dependency.name} is not satisfied. Install {tool} now?', default=True, err=True)


def print_report(report: 'RunReport') -> None:
    """Print the summary of a run."""
    for case in report.cases:
        if case.failure is None:
            secho(f'PASSED  {case.feature} / {case.case_name}', fg='green')
        else:
            secho(f'FAILED  {case.failure}', fg='red')
            if case.failure.message:
                echo(case.failure.message)

    for diagnostic in report.diagnostics:
        secho(diagnostic, fg='yellow', err=True)

    if report.error is not None:
        secho(f'Aborted: {report.error}', fg='red', err=True)

    echo(
        f'{report.state}: {len(report.passed)} passed, '
        f'{len(report.failed)} failed, exit status {int(report.exit_code)}',
    )


if __name__ == '__main__':
    cli()
