"""Flutter target: `flutter_test` integration suites."""

from .generator import FlutterGenerator

__all__ = (
    'FlutterGenerator',
)
