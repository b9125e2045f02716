"""Code generation.

Rendering is a pure function of a loaded project; writing the rendered
artifacts is a separate, atomic step.
"""

from .base import GENERATED_DIR, GENERATED_MARKER, Artifacts, CodeGenerator, generate, get_generator
from .flutter import FlutterGenerator
from .writer import write_artifacts

__all__ = (
    'GENERATED_DIR',
    'GENERATED_MARKER',
    'Artifacts',
    'CodeGenerator',
    'FlutterGenerator',
    'generate',
    'get_generator',
    'write_artifacts',
)
