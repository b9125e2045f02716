"""Project loading and reference resolution."""

from .loader import CONFIG_FILENAME, TESTS_DIRNAME, ProjectLoader, expand_environment
from .project import FeatureSource, Project, VariablesSource
from .references import Reference, ReferenceResolver, UnresolvedReference

__all__ = (
    'CONFIG_FILENAME',
    'TESTS_DIRNAME',
    'FeatureSource',
    'Project',
    'ProjectLoader',
    'Reference',
    'ReferenceResolver',
    'UnresolvedReference',
    'VariablesSource',
    'expand_environment',
)
