"""Lifecycle hook scheduling.

Hooks of a stage run in declared order through the execution context
handed in by the caller. A synchronous hook blocks until it exits; an
asynchronous hook is started detached, handed to the process registry
and never awaited.

A failing synchronous hook aborts its stage, except in best-effort
stages where the failure is recorded as a diagnostic and the remaining
hooks still run.
"""

import logging
from typing import TYPE_CHECKING

from playmaster.errors import HookError
from playmaster.schema import HookType

from .process import registry

if TYPE_CHECKING:
    from threading import Event

    from playmaster.schema import Config, Hook

    from .context import ExecutionContext
    from .process import CompletedCommand, ProcessRegistry

logger = logging.getLogger(__name__)

#: Stages whose hooks finish even when the run is being cancelled.
CLEANUP_STAGES = frozenset((HookType.AFTER_TEST, HookType.AFTER_ALL))


class HookScheduler:
    """Runs the hooks of a configuration stage by stage.

    Attributes:
        config: Project configuration.
        cancel: Cancellation event observed while waiting for hooks.
        registry: Registry receiving asynchronous hook handles.
        diagnostics: Failures recorded in best-effort stages.
    """

    def __init__(self, config: 'Config', *,
                 cancel: 'Event | None' = None,
                 processes: 'ProcessRegistry | None' = None) -> None:
        """Initialize a scheduler.

        Args:
            config: Project configuration.
            cancel: Cancellation event.
            processes: Registry for asynchronous hooks; the process-wide
                one by default.
        """
        self.config = config
        self.cancel = cancel
        self.registry = processes or registry
        self.diagnostics: list[str] = []

    def run_stage(self, stage: HookType, context: 'ExecutionContext', *,
                  best_effort: bool | None = None) -> None:
        """Run every hook of a stage in declared order.

        Args:
            stage: Lifecycle stage.
            context: Context the hooks run in.
            best_effort: Override of the stage's best-effort policy.

        Raises:
            HookError: If a synchronous hook fails in a blocking stage.
            RunCancelled: If the run is cancelled while waiting.
        """
        hooks = self.config.hooks_of(stage)
        if not hooks:
            return

        if best_effort is None:
            best_effort = stage.best_effort

        logger.info('Running %d %s hook(s) in %s', len(hooks), stage, context.description)
        for hook in hooks:
            try:
                self.run_hook(hook, context)
            except HookError as error:
                if not best_effort:
                    raise
                self.report(hook, error)

    def run_hook(self, hook: 'Hook', context: 'ExecutionContext') -> None:
        """Run a single hook.

        Raises:
            HookError: If the hook cannot be started or exits non-zero.
            RunCancelled: If the run is cancelled while waiting.
        """
        argv = [hook.command, *hook.args]

        if hook.is_async:
            try:
                handle = context.launch(hook.name, argv, env=hook.env)
            except OSError as base:
                raise HookError(
                    f'can not start {hook.command!r}: {base}',
                    stage=hook.hook_type,
                    hook=hook.name,
                ) from base
            self.registry.add(handle)
            logger.info('Started asynchronous hook %r (pid %d)', hook.name, handle.pid)
            return

        cancel = None if hook.hook_type in CLEANUP_STAGES else self.cancel
        try:
            result = context.run(hook.name, argv, env=hook.env, cancel=cancel)
        except OSError as base:
            raise HookError(
                f'can not start {hook.command!r}: {base}',
                stage=hook.hook_type,
                hook=hook.name,
            ) from base

        if not result.ok:
            raise HookError(
                self.failure_message(hook, result),
                stage=hook.hook_type,
                hook=hook.name,
                exit_code=result.exit_code,
            )

        logger.debug('Hook %r finished', hook.name)

    @staticmethod
    def failure_message(hook: 'Hook', result: 'CompletedCommand') -> str:
        """Describe a failed hook run."""
        message = f'{hook.command!r} exited with status {result.exit_code}'
        if tail := result.tail():
            message += '\n' + '\n'.join(f'    | {line}' for line in tail.splitlines())

        return message

    def report(self, hook: 'Hook', error: HookError) -> None:
        """Record the failure of a hook in a best-effort stage."""
        diagnostic = (
            f'{error}\n'
            f'    command: {" ".join([hook.command, *hook.args])}\n'
            f'    hint: fix the environment or the hook, then run again; '
            f'{hook.hook_type} failures do not stop the run'
        )
        self.diagnostics.append(diagnostic)
        logger.warning('%s', diagnostic)
