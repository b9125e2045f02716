"""Tests for the remote channel."""

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from playmaster.errors import RemoteConnectionError
from playmaster.runtime import CompletedCommand, ProcessHandle, RemoteAddress, RemoteChannel, RemoteProvider
from playmaster.settings import Settings

if TYPE_CHECKING:
    from unittest.mock import MagicMock

    from pytest_mock import MockerFixture


@pytest.fixture
def capture(mocker: 'MockerFixture') -> 'MagicMock':
    """Replace process capture with a mock finishing successfully."""
    mock = mocker.patch.object(ProcessHandle, 'capture')
    handle = mock.return_value.__enter__.return_value
    handle.result.return_value = CompletedCommand(0, '')
    handle.wait.return_value = 0

    return mock


def argv_of(call: object) -> list[str]:
    """Return the argument vector of a recorded capture call."""
    return list(call.args[1])  # type: ignore[attr-defined]


@pytest.mark.parametrize('value, expected', (
    pytest.param('device', RemoteAddress('device', 22, None), id='host'),
    pytest.param('10.0.0.5:2222', RemoteAddress('10.0.0.5', 2222, None), id='port'),
    pytest.param('qa@device:23', RemoteAddress('device', 23, 'qa'), id='user'),
))
def test_parse_address(value: str, expected: RemoteAddress) -> None:
    """Parse `[user@]host[:port]` addresses."""
    assert RemoteAddress.parse(value) == expected


@pytest.mark.parametrize('value', ('', 'user@', 'host:', 'host:ssh', 'host:70000'))
def test_parse_invalid_address(value: str) -> None:
    """Reject addresses without host or with a bad port."""
    with pytest.raises(ValueError, match='address'):
        RemoteAddress.parse(value)


def test_remote_command(tmp_path: Path) -> None:
    """Quote the command, its environment and its directory."""
    channel = RemoteChannel(Settings(), RemoteAddress('device'), tmp_path / 'control.sock')

    command = channel.remote_command(
        ['flutter', 'test', '--name', '^Login Successful$'],
        env={'API_URL': 'http://x y'},
        cwd='my app',
    )

    assert command == (
        "cd 'my app' && env 'API_URL=http://x y' flutter test --name '^Login Successful$'"
    )
    assert channel.destination == 'root@device'


def test_ssh_arguments(tmp_path: Path) -> None:
    """Route every invocation through the control socket."""
    settings = Settings(ssh_options='-o IdentityFile=/keys/qa', remote_user='qa')
    channel = RemoteChannel(settings, RemoteAddress('device', 2222), tmp_path / 'control.sock')

    argv = channel.ssh('uname')

    assert argv[:5] == ['ssh', '-S', str(tmp_path / 'control.sock'), '-p', '2222']
    assert argv[-4:] == ['-o', 'IdentityFile=/keys/qa', 'qa@device', 'uname']


def test_connect(capture: 'MagicMock') -> None:
    """Open a batch-mode control master."""
    channel = RemoteProvider(RemoteAddress('device'), Settings()).connect()

    try:
        (call,) = capture.call_args_list
        argv = argv_of(call)
        assert argv[0] == 'ssh'
        assert '-M' in argv
        assert 'BatchMode=yes' in argv
        assert argv[-1] == 'root@device'
        assert channel.socket.parent.is_dir()
    finally:
        channel.close()

    assert not channel.socket.parent.exists()
    assert argv_of(capture.call_args_list[-1])[-2:] == ['-O', 'exit']


def test_connect_with_password(capture: 'MagicMock') -> None:
    """Pass the password through sshpass and the environment."""
    channel = RemoteProvider(RemoteAddress('device'), Settings(remote_password='secret')).connect()
    channel.close()

    call = capture.call_args_list[0]
    argv = argv_of(call)
    assert argv[:3] == ['sshpass', '-e', 'ssh']
    assert 'BatchMode=yes' not in argv
    assert call.kwargs['env']['SSHPASS'] == 'secret'
    assert 'secret' not in argv


def test_connect_refused(capture: 'MagicMock') -> None:
    """Report a refused connection and remove the socket directory."""
    handle = capture.return_value.__enter__.return_value
    handle.result.return_value = CompletedCommand(255, 'Connection refused')

    with pytest.raises(RemoteConnectionError, match=r'exit status 255\): Connection refused'):
        RemoteProvider(RemoteAddress('device'), Settings()).connect()

    argv = argv_of(capture.call_args_list[0])
    socket = Path(argv[argv.index('-S') + 1])
    assert not socket.parent.exists()


def test_connect_not_started(capture: 'MagicMock') -> None:
    """Report a missing ssh client."""
    capture.side_effect = FileNotFoundError('ssh')

    with pytest.raises(RemoteConnectionError, match='Can not start ssh'):
        RemoteProvider(RemoteAddress('device'), Settings()).connect()


def test_stage(capture: 'MagicMock', tmp_path: Path) -> None:
    """Create the working directory and sync existing paths only."""
    (tmp_path / 'lib').mkdir()
    (tmp_path / 'pubspec.yaml').write_text('name: app\n')
    channel = RemoteChannel(Settings(), RemoteAddress('device'), tmp_path / 'control.sock')

    workdir = channel.stage(tmp_path, ['integration_test', 'lib', 'pubspec.yaml'])

    assert workdir == 'playmaster_app'
    mkdir, rsync = (argv_of(call) for call in capture.call_args_list)
    assert mkdir[-1] == 'mkdir -p playmaster_app'
    assert rsync[:4] == ['rsync', '-az', '--delete', '-e']
    assert rsync[5:] == ['lib', 'pubspec.yaml', 'root@device:playmaster_app/']
    assert capture.call_args_list[1].kwargs['cwd'] == tmp_path


def test_stage_failure(capture: 'MagicMock', tmp_path: Path) -> None:
    """Report a failed sync."""
    handle = capture.return_value.__enter__.return_value
    handle.result.side_effect = [CompletedCommand(0, ''), CompletedCommand(12, 'protocol error')]
    channel = RemoteChannel(Settings(), RemoteAddress('device'), tmp_path / 'control.sock')

    with pytest.raises(RemoteConnectionError, match='Project sync failed'):
        channel.stage(tmp_path, ['lib'])


def test_closed_channel(capture: 'MagicMock', tmp_path: Path) -> None:
    """Refuse to start processes once closed."""
    socket_dir = tmp_path / 'ssh'
    socket_dir.mkdir()
    channel = RemoteChannel(Settings(), RemoteAddress('device'), socket_dir / 'control.sock')

    channel.close()
    channel.close()

    assert capture.call_count == 1
    with pytest.raises(RemoteConnectionError, match='is closed'):
        channel.run('uname', ['uname'])
