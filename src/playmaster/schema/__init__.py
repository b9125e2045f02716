"""Declarative schema of playmaster projects.

Defines immutable Pydantic models for the project configuration,
variable files, test files, test cases and the step union. The
models describe structure only; cross-file rules such as reference
resolution are enforced by the loader.
"""

from .config import Config, Dependency, Hook, HookType, InstallSpec, ProjectType, UrlSource
from .steps import (
    STEP_TAGS,
    MatchStep,
    MatchTarget,
    ProgressKind,
    Selector,
    Step,
    TapStep,
    TypeInput,
    TypeStep,
    WaitFor,
    WaitForStep,
)
from .suites import TestCase, TestFile
from .variables import VarsFile

__all__ = (
    'STEP_TAGS',
    'Config',
    'Dependency',
    'Hook',
    'HookType',
    'InstallSpec',
    'MatchStep',
    'MatchTarget',
    'ProgressKind',
    'ProjectType',
    'Selector',
    'Step',
    'TapStep',
    'TestCase',
    'TestFile',
    'TypeInput',
    'TypeStep',
    'UrlSource',
    'VarsFile',
    'WaitFor',
    'WaitForStep',
)
