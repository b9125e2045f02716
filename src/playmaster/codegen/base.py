"""Code generator contract and registry.

A generator is a pure function of a loaded project: it returns the
complete artifact set as a mapping of project-relative paths to file
contents and never touches the filesystem. Writing is a separate step
performed by `playmaster.codegen.writer`.
"""

from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, ClassVar

from playmaster.errors import GenerationError
from playmaster.schema import ProjectType

if TYPE_CHECKING:
    from playmaster.core import Project

#: Rendered artifacts keyed by project-relative path.
type Artifacts = dict[PurePosixPath, str]

#: First line of every generated artifact.
GENERATED_MARKER = '// GENERATED FILE - DO NOT EDIT'

#: Directory holding generated test sources.
GENERATED_DIR = PurePosixPath('integration_test', 'generated')


class CodeGenerator(ABC):
    """Base class of target framework code generators."""

    project_type: ClassVar[ProjectType]

    @abstractmethod
    def render(self, project: 'Project') -> Artifacts:
        """Render the artifact set of a project.

        Args:
            project: Loaded project.

        Returns:
            Artifacts keyed by project-relative path.

        Raises:
            GenerationError: If a step cannot be compiled.
        """


_GENERATORS: dict[ProjectType, type[CodeGenerator]] = {}


def register_generator(generator: type[CodeGenerator]) -> type[CodeGenerator]:
    """Register a generator class for its project type."""
    _GENERATORS[generator.project_type] = generator
    return generator


def get_generator(project_type: ProjectType) -> CodeGenerator:
    """Return a generator instance for a project type.

    Raises:
        GenerationError: If no generator supports the project type.
    """
    if (generator := _GENERATORS.get(project_type)) is None:
        raise GenerationError(f'No code generator for project type {project_type!r}')

    return generator()


def generate(project: 'Project') -> Artifacts:
    """Render a project with the generator of its project type.

    Returns:
        Artifacts in sorted path order.
    """
    artifacts = get_generator(project.config.project_type).render(project)

    return dict(sorted(artifacts.items()))
