"""Project configuration models.

Describes the `playmaster.yaml` file: the target framework, the
environment prerequisites probed before a run, and the lifecycle
hooks executed around it.
"""

from enum import StrEnum
from typing import Literal, Self

from pydantic import ConfigDict, Field, model_validator

from playmaster.models import SchemaModel

#: Dependency implied by `project_type: flutter`.
FLUTTER_MIN_VERSION = '3.29.2'
FLUTTER_VERSION_COMMAND = "flutter --version | head -n 1 | awk '{print $2}'"


class ProjectType(StrEnum):
    """Supported target test frameworks."""

    FLUTTER = 'flutter'


class HookType(StrEnum):
    """Lifecycle stages at which hooks may run.

    Members are declared in execution order.
    """

    CONNECT = 'connect'
    VERIFY_SYSTEM = 'verify_system'
    PREPARE_SYSTEM = 'prepare_system'
    BEFORE_ALL = 'before_all'
    BEFORE_TEST = 'before_test'
    AFTER_TEST = 'after_test'
    AFTER_ALL = 'after_all'

    @property
    def best_effort(self) -> bool:
        """Whether failures in this stage are reported without aborting."""
        return self in (HookType.VERIFY_SYSTEM, HookType.AFTER_ALL)


class UrlSource(SchemaModel):
    """Installation archive downloaded from a URL."""

    type: Literal['url'] = Field(
        title='Source type',
        description='Discriminator of the installation source.',
    )

    url: str = Field(
        min_length=1,
        title='Download URL',
        description=(
            'Address of the file to download. A `{{version}}` placeholder '
            'is replaced with the requested version.'
        ),
        examples=['https://example.com/tools/{{version}}/tool.tar.xz'],
    )

    def resolve(self, version: str | None) -> str:
        """Return the URL with the version placeholder replaced."""
        if version is None:
            return self.url

        return self.url.replace('{{version}}', version)


class InstallSpec(SchemaModel):
    """How to install a dependency that is missing or too old."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    tool: str = Field(
        min_length=1,
        title='Tool name',
        description='Name of the installed tool, shown in prompts and logs.',
    )

    version: str | None = Field(
        default=None,
        title='Tool version',
        description='Version substituted into the download URL.',
    )

    source: UrlSource | None = Field(
        default=None,
        title='Source',
        description='Where to download the installation file from.',
    )

    setup: str | None = Field(
        default=None,
        title='Setup command',
        description=(
            'Shell command installing the tool. A `{{file}}` placeholder '
            'is replaced with the quoted path of the downloaded file.'
        ),
        examples=['mkdir -p ~/playmaster && tar -xJf {{file}} -C ~/playmaster'],
    )

    bin_path: str | None = Field(
        default=None,
        title='Binary directory',
        description=(
            'Directory added to `PATH` after installation. Relative paths '
            'are taken from the home directory.'
        ),
        examples=['playmaster/flutter/bin'],
    )

    @model_validator(mode='after')
    def check_action(self) -> Self:
        """Require something to do.

        Raises:
            ValueError: If neither a source nor a setup command is given.
        """
        if self.source is None and self.setup is None:
            raise ValueError('Install specification needs a source or a setup command')

        return self


class Dependency(SchemaModel):
    """Environment prerequisite verified through a version probe."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    name: str = Field(
        min_length=1,
        title='Dependency name',
        description='Human-readable name of the required tool.',
    )

    min_version: str = Field(
        pattern=r'^\d+(\.\d+){0,2}$',
        title='Minimal version',
        description=(
            'Lowest accepted version in `major.minor.patch` form. '
            'Missing components are treated as zero.'
        ),
        examples=['3.29.2'],
    )

    version_command: str = Field(
        min_length=1,
        title='Version command',
        description=(
            'Shell command printing the installed version. '
            'The first semantic-version token of its output is compared.'
        ),
    )

    install: InstallSpec | None = Field(
        default=None,
        title='Installation',
        description=(
            'Installation offered when the dependency is unsatisfied. '
            'The dependency is probed again afterwards.'
        ),
    )


class Hook(SchemaModel):
    """Lifecycle hook definition."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(
        min_length=1,
        title='Hook name',
        description='Name used in logs and diagnostics.',
    )

    hook_type: HookType = Field(
        title='Hook stage',
        description='Lifecycle stage at which the hook runs.',
    )

    command: str = Field(
        min_length=1,
        title='Executable',
        description='Program to execute. It is not interpreted by a shell.',
    )

    args: tuple[str, ...] = Field(
        default=(),
        title='Arguments',
        description='Ordered list of program arguments.',
    )

    is_async: bool = Field(
        default=False,
        alias='async',
        title='Asynchronous flag',
        description=(
            'Launch the hook in background and proceed immediately. '
            'Asynchronous hooks are never awaited.'
        ),
    )

    env: dict[str, str] = Field(
        default_factory=dict,
        title='Environment',
        description=(
            'Environment variables applied only to the hook process, '
            'overriding the inherited process environment.'
        ),
    )


class Config(SchemaModel):
    """Root `playmaster.yaml` model."""

    project_type: ProjectType = Field(
        title='Project type',
        description='Target test framework of the generated code.',
    )

    dependencies: tuple[Dependency, ...] = Field(
        default=(),
        title='Dependencies',
        description='Environment prerequisites verified before any hook runs.',
    )

    hooks: tuple[Hook, ...] = Field(
        default=(),
        title='Hooks',
        description='Lifecycle hooks executed in declared order within a stage.',
    )

    @model_validator(mode='after')
    def check_unique_dependencies(self) -> Self:
        """Reject dependencies declared more than once.

        Raises:
            ValueError: If two dependencies share a name.
        """
        seen = set()
        for dependency in self.dependencies:
            if dependency.name in seen:
                raise ValueError(f'Dependency {dependency.name!r} is declared twice')
            seen.add(dependency.name)

        return self

    def hooks_of(self, hook_type: HookType) -> tuple[Hook, ...]:
        """Return hooks of a stage in declared order."""
        return tuple(hook for hook in self.hooks if hook.hook_type == hook_type)

    def with_defaults(self) -> 'Config':
        """Return the config completed with framework default dependencies.

        A `flutter` project always requires the Flutter SDK; the implied
        dependency is appended unless one named `flutter` is declared.
        """
        if self.project_type != ProjectType.FLUTTER:
            return self

        if any(dependency.name == 'flutter' for dependency in self.dependencies):
            return self

        flutter = Dependency(
            name='flutter',
            min_version=FLUTTER_MIN_VERSION,
            version_command=FLUTTER_VERSION_COMMAND,
        )

        return self.model_copy(update={'dependencies': (*self.dependencies, flutter)})
