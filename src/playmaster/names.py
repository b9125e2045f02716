"""DSL names primitive types and validation rules.

This module defines identifier patterns, the variable reference token
syntax and the naming conventions used to derive namespaces and
artifact names from files and test names.
"""

from re import ASCII
from re import compile as regexp
from typing import Annotated

from pydantic import AfterValidator, Field

#: Base pattern for all DSL identifiers.
_NAME_PATTERN = r'[a-zA-Z][\w]*'

#: Compiled pattern for variable identifiers.
VARIABLE_PATTERN = regexp(
    rf'^(?P<name>{_NAME_PATTERN})$',
    flags=ASCII,
)

#: Compiled pattern for `${...}` references inside string values.
REFERENCE_PATTERN = regexp(r'\$\{(?P<token>[^}]*)\}')

#: Splits file stems and test names into words; punctuation is dropped.
_WORD_SEPARATORS = regexp(r'[^0-9a-zA-Z]+')


#: Dart reserved words, built-in identifiers and the asynchrony keywords
#: reserved inside the generated `async` test bodies.
DART_KEYWORDS = frozenset({
    'abstract', 'as', 'assert', 'async', 'await', 'break', 'case', 'catch',
    'class', 'const', 'continue', 'covariant', 'default', 'deferred', 'do',
    'dynamic', 'else', 'enum', 'export', 'extends', 'extension',
    'external', 'factory', 'false', 'final', 'finally', 'for', 'Function',
    'get', 'if', 'implements', 'import', 'in', 'interface', 'is', 'late',
    'library', 'mixin', 'new', 'null', 'operator', 'part', 'required',
    'rethrow', 'return', 'set', 'static', 'super', 'switch', 'this',
    'throw', 'true', 'try', 'typedef', 'var', 'void', 'while', 'with',
    'yield',
})

#: Names referenced by generated suites, or inherited by the generated
#: constants classes, that a variable would shadow or conflict with.
GENERATED_IDENTIFIERS = frozenset({
    'app', 'main', 'tester', 'group', 'testWidgets', 'find', 'expect',
    'findsOneWidget', 'markStep', 'stepMarker', 'Duration',
    'PointerDeviceKind', 'IntegrationTestWidgetsFlutterBinding',
    'LinearProgressIndicator', 'CircularProgressIndicator',
    'hashCode', 'runtimeType', 'toString', 'noSuchMethod',
})


def check_identifier(name: str) -> str:
    """Reject names that can not be emitted as generated Dart constants.

    Raises:
        ValueError: If the name is a Dart reserved word or an identifier
            used by the generated code.
    """
    if name in DART_KEYWORDS:
        raise ValueError(f'{name!r} is a reserved word of the generated Dart code')

    if name in GENERATED_IDENTIFIERS:
        raise ValueError(f'{name!r} is an identifier used by the generated Dart code')

    return name


Variable = Annotated[
    str, Field(
        pattern=rf'^{_NAME_PATTERN}$',
        title='Variable identifier',
        description=(
            'Name of a variable. Variable identifiers must start with a '
            'letter and may contain letters, digits, or underscores. '
            'Dart reserved words and identifiers of the generated code '
            'are rejected.'
        ),
        examples=[
            'validEmail',
            'api_token',
        ],
    ),
    AfterValidator(check_identifier),
]


def to_pascal_case(name: str) -> str:
    """Convert a file base name into a PascalCase namespace.

    Args:
        name: Base name such as `common` or `user-data`.

    Returns:
        PascalCased name, for example `Common` or `UserData`.
    """
    return ''.join(
        part[:1].upper() + part[1:]
        for part in _WORD_SEPARATORS.split(name)
        if part
    )


def to_snake_case(name: str) -> str:
    """Convert a human-readable name into a lower snake_case identifier."""
    return '_'.join(
        part.lower()
        for part in _WORD_SEPARATORS.split(name)
        if part
    )
