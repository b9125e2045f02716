"""Dart source helpers."""

_ESCAPES = {
    '\\': '\\\\',
    "'": "\\'",
    '$': '\\$',
    '\n': '\\n',
    '\r': '\\r',
    '\t': '\\t',
}


def dart_string(value: str) -> str:
    """Return a single-quoted Dart string literal."""
    return "'" + ''.join(_ESCAPES.get(char, char) for char in value) + "'"


def dart_duration(milliseconds: int) -> str:
    """Return a Dart `Duration` expression."""
    return f'const Duration(milliseconds: {milliseconds})'


def dart_comment(text: str, indent: str = '') -> list[str]:
    """Return a text as Dart line comments."""
    return [
        f'{indent}// {line}'.rstrip()
        for line in text.strip().splitlines()
    ]
