"""Tests configurations and fixtures."""

from pathlib import Path
from typing import TYPE_CHECKING

import pytest
import yaml

from playmaster.core import ProjectLoader
from playmaster.runtime import CompletedCommand, ExecutionContext, ProcessRegistry
from playmaster.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

if TYPE_CHECKING:
    from pyfakefs.fake_filesystem import FakeFilesystem
    from pytest_mock import MockerFixture

    from playmaster.runtime import ProcessHandle

type Result = CompletedCommand | BaseException

PROJECT_ROOT = Path('/project')

CONFIG_CONTENT = '''
project_type: flutter
dependencies:
  - name: flutter
    min_version: 3.29.2
    version_command: flutter --version
'''

COMMON_VARS_CONTENT = '''
validEmail: qa@test.com
'''

LOGIN_TEST_CONTENT = '''
name: First Time User Experience
description: Login flow of a new user
vars:
  validPassword: password123
tests:
  - name: Successful Login
    description: User logs in with valid credentials
    steps:
      - wait_for:
          text: Login
      - tap:
          placeholder: Email
      - type:
          by:
            placeholder: Email
          value: ${Common.validEmail}
      - type:
          by:
            placeholder: Password
          value: ${validPassword}
      - tap:
          text: Sign In
      - wait_for:
          text: Welcome
'''

PUBSPEC_CONTENT = '''
name: sample_app
'''


class FakeContext(ExecutionContext):
    """Execution context recording commands instead of running them.

    Results are looked up by process name; unknown names succeed with
    an empty output. A result may be an exception instance, which is
    raised instead, or a list of results returned one per call, the
    last one repeating.
    """

    def __init__(self, results: 'Mapping[str, Result | list[Result]] | None' = None, *,
                 remote: bool = False,
                 mocker: 'MockerFixture | None' = None) -> None:
        super().__init__(Settings())
        self.remote = remote
        self.results = dict(results or {})
        self.calls: list[tuple[str, list[str], dict[str, str]]] = []
        self.launched: list[str] = []
        self.staged: list[tuple[Path, tuple[str, ...]]] = []
        self.closed = False
        self.mocker = mocker

    @property
    def description(self) -> str:
        return 'remote fake' if self.remote else 'local fake'

    def start(self, name: str, argv: 'Sequence[str]', **kwargs) -> 'ProcessHandle':  # noqa: ANN003
        raise NotImplementedError

    def run(self, name: str, argv: 'Sequence[str]', *,
            env: 'Mapping[str, str] | None' = None,
            cwd: str | None = None,
            cancel: object = None) -> CompletedCommand:
        self.calls.append((name, list(argv), dict(env or {})))
        result = self.results.get(name, CompletedCommand(0, ''))
        if isinstance(result, list):
            result = result.pop(0) if len(result) > 1 else result[0]
        if isinstance(result, BaseException):
            raise result
        return result

    def launch(self, name: str, argv: 'Sequence[str]', *,
               env: 'Mapping[str, str] | None' = None,
               cwd: str | None = None) -> 'ProcessHandle':
        self.launched.append(name)
        self.calls.append((name, list(argv), dict(env or {})))
        handle = self.mocker.Mock() if self.mocker else None
        if handle is not None:
            handle.name = name
            handle.pid = 4242
        return handle

    def stage(self, root: Path, paths: 'Sequence[str]') -> str:
        self.staged.append((root, tuple(paths)))
        return 'workdir' if self.remote else str(root)

    def close(self) -> None:
        self.closed = True

    @property
    def names(self) -> list[str]:
        """Names of every recorded process, in order."""
        return [name for name, _, _ in self.calls]


@pytest.fixture
def loader() -> type[yaml.SafeLoader]:
    """Provide an isolated YAML SafeLoader class for tests.

    Creates a dedicated subclass of `yaml.SafeLoader` so constructors
    registered during a test do not leak into other tests.
    """
    class Loader(yaml.SafeLoader):
        pass

    return Loader


@pytest.fixture
def project_files(fs: 'FakeFilesystem') -> 'Callable[..., Path]':
    """Provide a factory creating a project on the fake filesystem.

    The factory accepts a mapping of root-relative paths to contents.
    The sample configuration, variable file, test file and pubspec are
    created unless overridden; a `None` content skips a default file.

    Returns:
        A callable returning the project root.
    """
    def create(files: 'Mapping[str, str | None] | None' = None, *,
               defaults: bool = True) -> Path:
        """Create project files.

        Args:
            files: Root-relative paths and contents.
            defaults: Whether to include the sample project files.

        Returns:
            Project root.
        """
        content: dict[str, str | None] = {}
        if defaults:
            content.update({
                'playmaster.yaml': CONFIG_CONTENT,
                'pubspec.yaml': PUBSPEC_CONTENT,
                'feature_test/common.vars.yaml': COMMON_VARS_CONTENT,
                'feature_test/login.yaml': LOGIN_TEST_CONTENT,
            })
        content.update(files or {})

        fs.create_dir(PROJECT_ROOT)
        for path, text in content.items():
            if text is not None:
                fs.create_file(PROJECT_ROOT / path, contents=text)

        return PROJECT_ROOT

    return create


@pytest.fixture
def project_loader(project_files: 'Callable[..., Path]',
                   loader: type[yaml.SafeLoader]) -> 'Callable[..., ProjectLoader]':
    """Provide a factory building a loader over a fake project."""
    def create(files: 'Mapping[str, str | None] | None' = None, *,
               defaults: bool = True) -> ProjectLoader:
        return ProjectLoader(project_files(files, defaults=defaults), loader=loader)

    return create


@pytest.fixture
def fake_context(mocker: 'MockerFixture') -> 'Callable[..., FakeContext]':
    """Provide a factory of recording execution contexts."""
    def create(results: 'Mapping[str, Result | list[Result]] | None' = None, *,
               remote: bool = False) -> FakeContext:
        return FakeContext(results, remote=remote, mocker=mocker)

    return create


@pytest.fixture
def processes() -> ProcessRegistry:
    """Provide an isolated registry for asynchronous hooks."""
    return ProcessRegistry()
