"""Project discovery and loading.

The loader reads the configuration file, every variable file and every
test file under the test directory, validates them against the DSL
schema and checks cross-file rules: unique namespaces and names, and
resolvable variable references. It either returns a complete immutable
`Project` or raises a `LoadError` naming the offending file.
"""

import logging
import os
from re import compile as regexp
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from yaml import SafeLoader, load
from yaml.error import MarkedYAMLError, YAMLError

from playmaster.errors import ErrorContext, LoadError
from playmaster.names import to_pascal_case, to_snake_case
from playmaster.schema import Config, TestFile, VarsFile

from .project import FeatureSource, Project, VariablesSource
from .references import UnresolvedReference

if TYPE_CHECKING:
    from pathlib import Path

if TYPE_CHECKING:
    from yaml import BaseLoader

logger = logging.getLogger(__name__)

CONFIG_FILENAME = 'playmaster.yaml'
TESTS_DIRNAME = 'feature_test'
PUBSPEC_FILENAME = 'pubspec.yaml'

VARS_SUFFIXES = ('.vars.yaml', '.vars.yml')
YAML_SUFFIXES = ('.yaml', '.yml')

#: `${VAR}` or `$VAR` tokens expanded in the configuration text.
ENV_PATTERN = regexp(r'\$\{(?P<braced>[^}]+)\}|\$(?P<bare>[A-Za-z0-9_]+)')


def expand_environment(content: str) -> str:
    """Expand environment variables in raw configuration text.

    Unknown variables expand to an empty string.
    """
    return ENV_PATTERN.sub(
        lambda match: os.environ.get(match['braced'] or match['bare'], ''),
        content,
    )


class ProjectLoader:
    """Loads and validates a project directory.

    Attributes:
        root: Project root directory.
        tests_dir: Directory scanned for variable and test files.
        loader: YAML loader class used for every file.
    """

    def __init__(self, root: 'Path', *,
                 tests_dir: str = TESTS_DIRNAME,
                 loader: type['BaseLoader'] = SafeLoader) -> None:
        """Initialize a project loader.

        Args:
            root: Project root directory.
            tests_dir: Name of the test directory under the root.
            loader: YAML loader class.
        """
        self.root = root
        self.tests_dir = root / tests_dir
        self.loader = loader

    def load(self) -> Project:
        """Load the whole project.

        Returns:
            Validated immutable project.

        Raises:
            LoadError: On the first malformed, invalid or inconsistent file.
        """
        config = self.load_config()
        variables = self.load_variables()
        features = self.load_features()

        project = Project(
            root=self.root,
            app_name=self.load_app_name(),
            config=config,
            variables=variables,
            features=features,
        )
        self.check_references(project)

        logger.info(
            'Loaded project %s: %d variable file(s), %d test file(s), %d case(s)',
            self.root, len(variables), len(features), sum(1 for _ in project.cases()),
        )

        return project

    def read_yaml(self, path: 'Path', *, expand_env: bool = False) -> Any:  # noqa: ANN401
        """Read and parse a single YAML document.

        Args:
            path: File to read.
            expand_env: Whether to expand environment variables first.

        Returns:
            Parsed YAML data.

        Raises:
            LoadError: If the file cannot be read or parsed.
        """
        filename = self.display(path)
        try:
            content = path.read_text(encoding='utf-8')
        except OSError as base:
            raise LoadError(
                f'Can not read file: {base.strerror or base}',
                context=ErrorContext(filename=filename),
            ) from base

        if expand_env:
            content = expand_environment(content)

        try:
            return load(content, Loader=self.loader)  # noqa: S506

        except MarkedYAMLError as base:
            raise LoadError.from_yaml_error(base, filename) from base

        except YAMLError as base:
            raise LoadError('Invalid YAML', context=ErrorContext(filename=filename)) from base

    def load_config(self) -> Config:
        """Load the configuration file.

        Raises:
            LoadError: If the file is missing or invalid.
        """
        path = self.root / CONFIG_FILENAME
        if not path.is_file():
            raise LoadError(
                'Configuration file not found',
                context=ErrorContext(filename=self.display(path)),
            )

        data = self.read_yaml(path, expand_env=True)
        try:
            return Config.model_validate(data).with_defaults()
        except ValidationError as base:
            raise LoadError.from_pydantic_error(
                base,
                data=data,
                filename=self.display(path),
            ) from base

    def load_variables(self) -> tuple[VariablesSource, ...]:
        """Load every variable file of the test directory.

        Raises:
            LoadError: If a file is invalid or two files derive the same
                namespace (case-insensitively).
        """
        sources: list[VariablesSource] = []
        seen: dict[str, VariablesSource] = {}

        for path in self.discover(variables=True):
            data = self.read_yaml(path)
            if data is None:
                data = {}
            try:
                variables = VarsFile.model_validate(data)
            except ValidationError as base:
                raise LoadError.from_pydantic_error(
                    base,
                    data=data,
                    filename=self.display(path),
                ) from base

            namespace = self.namespace_of(path)
            if not namespace:
                raise LoadError(
                    'Can not derive a namespace from the file name',
                    context=ErrorContext(filename=self.display(path)),
                )

            if (other := seen.get(namespace.lower())) is not None:
                raise LoadError(
                    f'Namespace {namespace!r} is already defined by {self.display(other.path)!r}',
                    context=ErrorContext(filename=self.display(path)),
                )

            source = VariablesSource(path=path, namespace=namespace, variables=variables)
            seen[namespace.lower()] = source
            sources.append(source)

        return tuple(sources)

    def load_features(self) -> tuple[FeatureSource, ...]:
        """Load every test file of the test directory.

        Raises:
            LoadError: If a file is invalid or two files share a name or
                a generated suite name.
        """
        sources: list[FeatureSource] = []
        names: dict[str, FeatureSource] = {}
        suites: dict[str, FeatureSource] = {}

        for path in self.discover(variables=False):
            data = self.read_yaml(path)
            if not isinstance(data, dict):
                raise LoadError(
                    'Test file must contain a mapping',
                    context=ErrorContext(filename=self.display(path)),
                )
            try:
                feature = TestFile.model_validate(data)
            except ValidationError as base:
                raise LoadError.from_pydantic_error(
                    base,
                    data=data,
                    filename=self.display(path),
                ) from base

            source = FeatureSource(path=path, feature=feature)
            for registry, key, label in (
                (names, feature.name, 'Test file name'),
                (suites, feature.suite_name, 'Generated suite name'),
            ):
                if (other := registry.get(key)) is not None:
                    raise LoadError(
                        f'{label} {key!r} is already used by {self.display(other.path)!r}',
                        context=ErrorContext(filename=self.display(path)),
                    )
                registry[key] = source

            sources.append(source)

        return tuple(sources)

    def load_app_name(self) -> str:
        """Return the package name of the application under test.

        Read from `pubspec.yaml` when present, otherwise derived from
        the project directory name.
        """
        path = self.root / PUBSPEC_FILENAME
        if path.is_file():
            data = self.read_yaml(path)
            if isinstance(data, dict) and isinstance(name := data.get('name'), str) and name:
                return name

        return to_snake_case(self.root.resolve().name) or 'app'

    def check_references(self, project: Project) -> None:
        """Check that every reference of every test file resolves.

        Raises:
            LoadError: Naming the test file and the offending token.
        """
        for source in project.features:
            resolver = project.resolver(source.feature)
            try:
                resolver.check(source.feature.model_dump(exclude={'local_vars'}))
            except UnresolvedReference as base:
                raise LoadError(
                    f'Unresolved reference {base}',
                    context=ErrorContext(filename=self.display(source.path)),
                ) from base

    def discover(self, *, variables: bool) -> list['Path']:
        """List variable or test files under the test directory.

        Args:
            variables: Select variable files when true, test files otherwise.

        Returns:
            Matching files in sorted path order.
        """
        if not self.tests_dir.is_dir():
            return []

        return sorted(
            path for path in self.tests_dir.rglob('*')
            if path.is_file()
            and path.name.endswith(YAML_SUFFIXES)
            and path.name.endswith(VARS_SUFFIXES) is variables
        )

    @staticmethod
    def namespace_of(path: 'Path') -> str:
        """Derive the namespace of a variable file from its base name."""
        name = path.name
        for suffix in VARS_SUFFIXES:
            name = name.removesuffix(suffix)

        return to_pascal_case(name)

    def display(self, path: 'Path') -> str:
        """Return a path relative to the project root for messages."""
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return path.as_posix()
