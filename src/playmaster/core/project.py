"""Immutable in-memory representation of a loaded project."""

from collections.abc import Iterator
from pathlib import Path  # noqa: TC003

from pydantic import Field

from playmaster.models import SchemaModel
from playmaster.schema import Config, TestCase, TestFile, VarsFile  # noqa: TC001

from .references import ReferenceResolver


class VariablesSource(SchemaModel):
    """Variable file together with its origin and derived namespace."""

    path: Path
    namespace: str
    variables: VarsFile

    @property
    def values(self) -> dict[str, str]:
        """Variable mapping of the file."""
        return self.variables.root


class FeatureSource(SchemaModel):
    """Test file together with its origin."""

    path: Path
    feature: TestFile


class Project(SchemaModel):
    """Validated project: configuration, variables and test files.

    A project is produced once per invocation by the loader and is
    never mutated afterwards. Variable files and test files are kept
    in discovery order, which is sorted path order.
    """

    root: Path = Field(
        title='Project root',
        description='Directory containing the configuration file.',
    )
    app_name: str = Field(
        title='Application package',
        description='Package name of the application under test.',
    )
    config: Config
    variables: tuple[VariablesSource, ...] = ()
    features: tuple[FeatureSource, ...] = ()

    @property
    def namespaces(self) -> dict[str, dict[str, str]]:
        """Variable mappings keyed by namespace."""
        return {source.namespace: source.values for source in self.variables}

    def resolver(self, feature: TestFile) -> ReferenceResolver:
        """Return the reference resolver scoped to one test file."""
        return ReferenceResolver(self.namespaces, feature.local_vars)

    def cases(self) -> Iterator[tuple[TestFile, TestCase]]:
        """Iterate over every test case in declared order."""
        for source in self.features:
            for case in source.feature.tests:
                yield source.feature, case

    def relative(self, path: Path) -> str:
        """Return a POSIX path relative to the project root, if possible."""
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return path.as_posix()
