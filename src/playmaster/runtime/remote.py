"""Remote execution over a shared SSH connection.

The remote channel is one OpenSSH control-master connection opened per
run. Hooks, the project sync and test invocations all go through its
control socket, and every use is serialized on a lock, so the channel
is never used concurrently.
"""

import logging
import os
import shlex
import shutil
from pathlib import Path
from tempfile import mkdtemp
from threading import Lock
from typing import TYPE_CHECKING, NamedTuple, Self

from playmaster.errors import RemoteConnectionError

from .context import ExecutionContext
from .process import ProcessHandle

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from playmaster.settings import Settings

    from .process import CompletedCommand

logger = logging.getLogger(__name__)

DEFAULT_PORT = 22

#: Options applied to every ssh invocation.
SSH_DEFAULTS = (
    '-o', 'StrictHostKeyChecking=accept-new',
    '-o', 'ServerAliveInterval=30',
)


class RemoteAddress(NamedTuple):
    """Remote target address."""

    host: str
    port: int = DEFAULT_PORT
    user: str | None = None

    @classmethod
    def parse(cls, value: str) -> Self:
        """Parse a `[user@]host[:port]` string.

        Raises:
            ValueError: If the host is empty or the port is invalid.
        """
        user, _, address = value.strip().rpartition('@')
        host, colon, port = address.partition(':')
        if not host:
            raise ValueError(f'Missing host in address {value!r}')

        number = DEFAULT_PORT
        if colon:
            if not port.isdigit() or not 0 < int(port) < 65536:  # noqa: PLR2004
                raise ValueError(f'Invalid port in address {value!r}')
            number = int(port)

        return cls(host, number, user or None)

    def __str__(self) -> str:
        """Return the address in `[user@]host:port` form."""
        prefix = f'{self.user}@' if self.user else ''
        return f'{prefix}{self.host}:{self.port}'


class RemoteChannel(ExecutionContext):
    """Execution context bound to an open control-master connection.

    Attributes:
        address: Remote target address.
        destination: `user@host` passed to ssh.
        socket: Path of the control socket.
    """

    remote = True

    def __init__(self, settings: 'Settings', address: RemoteAddress, socket: Path) -> None:
        """Initialize a channel over an already open control socket.

        Args:
            settings: Runtime settings.
            address: Remote target address.
            socket: Path of the control socket.
        """
        super().__init__(settings)
        self.address = address
        self.destination = f'{address.user or settings.remote_user}@{address.host}'
        self.socket = socket
        self.lock = Lock()
        self.closed = False

    @property
    def description(self) -> str:
        """Human-readable location of the context."""
        return f'remote {self.destination}:{self.address.port}'

    def ssh(self, *arguments: str, options: 'Sequence[str]' = ()) -> list[str]:
        """Return an ssh argument vector using the control socket.

        Args:
            arguments: Remote command, if any.
            options: Extra ssh options placed before the destination.
        """
        return [
            'ssh',
            '-S', str(self.socket),
            '-p', str(self.address.port),
            *SSH_DEFAULTS,
            *shlex.split(self.settings.ssh_options),
            *options,
            self.destination,
            *arguments,
        ]

    def remote_command(self, argv: 'Sequence[str]', *,
                       env: 'Mapping[str, str] | None' = None,
                       cwd: 'str | None' = None) -> str:
        """Build the remote shell command line.

        The remote login environment is kept and overridden by `env`.
        """
        command = shlex.join(argv)
        if env:
            assignments = ' '.join(
                shlex.quote(f'{key}={value}')
                for key, value in env.items()
            )
            command = f'env {assignments} {command}'

        if cwd:
            command = f'cd {shlex.quote(cwd)} && {command}'

        return command

    def start(self, name: str, argv: 'Sequence[str]', *,
              env: 'Mapping[str, str] | None' = None,
              cwd: 'str | None' = None) -> ProcessHandle:
        """Start a remote process with captured output."""
        self.ensure_open()
        return ProcessHandle.capture(
            name,
            self.ssh(self.remote_command(argv, env=env, cwd=cwd)),
        )

    def run(self, name: str, argv: 'Sequence[str]', **kwargs) -> 'CompletedCommand':  # noqa: ANN003
        """Run a remote process to completion, holding the channel."""
        with self.lock:
            return super().run(name, argv, **kwargs)

    def launch(self, name: str, argv: 'Sequence[str]', *,
               env: 'Mapping[str, str] | None' = None,
               cwd: 'str | None' = None) -> ProcessHandle:
        """Start a remote process in background.

        The remote process is detached with `nohup`. The local ssh client
        writes its output to the local log directory.
        """
        self.ensure_open()
        command = self.remote_command(argv, env=env, cwd=cwd)
        with self.lock:
            return ProcessHandle.detach(
                name,
                self.ssh(f'nohup sh -c {shlex.quote(command)}'),
                log_dir=self.settings.log_dir,
            )

    def stage(self, root: Path, paths: 'Sequence[str]') -> str:
        """Synchronize project files to the remote working directory.

        Raises:
            RemoteConnectionError: If the sync fails.
        """
        workdir = self.settings.remote_dir
        existing = [path for path in paths if (root / path).exists()]

        result = self.run('mkdir', ['mkdir', '-p', workdir])
        if not result.ok:
            raise RemoteConnectionError(
                f'Can not create remote directory {workdir!r}: {result.tail()}',
            )

        transport = shlex.join(self.ssh()[:-1])
        argv = [
            'rsync', '-az', '--delete',
            '-e', transport,
            *existing,
            f'{self.destination}:{workdir}/',
        ]
        logger.info('Syncing %s to %s:%s', ', '.join(existing), self.destination, workdir)

        with self.lock:
            try:
                with ProcessHandle.capture('rsync', argv, cwd=root) as handle:
                    result = handle.result()
            except OSError as base:
                raise RemoteConnectionError(f'Can not start rsync: {base}') from base

        if not result.ok:
            raise RemoteConnectionError(f'Project sync failed ({result.exit_code}): {result.tail()}')

        return workdir

    def ensure_open(self) -> None:
        """Raise if the channel was closed.

        Raises:
            RemoteConnectionError: If the channel is closed.
        """
        if self.closed:
            raise RemoteConnectionError(f'Channel to {self.destination} is closed')

    def close(self) -> None:
        """Stop the control master and remove its socket."""
        if self.closed:
            return

        with self.lock:
            self.closed = True
            try:
                with ProcessHandle.capture('ssh', self.ssh('-O', 'exit')) as handle:
                    handle.wait()
            except OSError as base:
                logger.warning('Can not stop control master: %s', base)
            finally:
                shutil.rmtree(self.socket.parent, ignore_errors=True)

        logger.info('Closed channel to %s', self.destination)


class RemoteProvider:
    """Opens the remote channel of a run.

    Attributes:
        address: Remote target address.
        settings: Runtime settings.
    """

    def __init__(self, address: RemoteAddress, settings: 'Settings') -> None:
        """Initialize a provider.

        Args:
            address: Remote target address.
            settings: Runtime settings.
        """
        self.address = address
        self.settings = settings

    def connect(self) -> RemoteChannel:
        """Open a control-master connection and return its channel.

        Raises:
            RemoteConnectionError: If ssh cannot be started or the
                connection is refused.
        """
        socket = Path(mkdtemp(prefix='playmaster-ssh-')) / 'control.sock'
        channel = RemoteChannel(self.settings, self.address, socket)

        options = ['-M', '-f', '-N', '-o', 'ControlPersist=yes']
        env = dict(os.environ)
        if self.settings.remote_password is None:
            options.extend(('-o', 'BatchMode=yes'))

        argv = channel.ssh(options=options)
        if self.settings.remote_password is not None:
            argv = ['sshpass', '-e', *argv]
            env['SSHPASS'] = self.settings.remote_password.get_secret_value()

        logger.info('Connecting to %s', channel.description)
        try:
            with ProcessHandle.capture('ssh', argv, env=env) as handle:
                result = handle.result()
        except OSError as base:
            shutil.rmtree(socket.parent, ignore_errors=True)
            raise RemoteConnectionError(f'Can not start {argv[0]}: {base}') from base

        if not result.ok:
            shutil.rmtree(socket.parent, ignore_errors=True)
            raise RemoteConnectionError(
                f'Can not connect to {channel.description} '
                f'(exit status {result.exit_code}): {result.tail()}',
            )

        return channel
