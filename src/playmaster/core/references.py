"""Variable reference resolution.

A reference is a `${...}` token inside a string value. The token is
split at its first dot: when the left segment names a known namespace
(case-insensitively) the token resolves against that variable file,
otherwise the whole token is looked up in the local variables of the
enclosing test file. There are no default values and resolved text is
never scanned again.
"""

from collections.abc import Iterator, Mapping
from typing import Any, NamedTuple

from playmaster.names import REFERENCE_PATTERN


class UnresolvedReference(ValueError):
    """Raised when a reference token cannot be resolved unambiguously."""

    def __init__(self, token: str, reason: str) -> None:
        """Initialize a resolution error.

        Args:
            token: Offending token, without the `${}` delimiters.
            reason: Human-readable explanation.
        """
        self.token = token
        self.reason = reason

        super().__init__(f'${{{token}}}: {reason}')


class Reference(NamedTuple):
    """Parsed reference token."""

    token: str
    namespace: str | None
    key: str


def iter_tokens(text: str) -> Iterator[str]:
    """Yield reference tokens found in a string, in order of appearance."""
    for match in REFERENCE_PATTERN.finditer(text):
        yield match['token']


def iter_strings(value: Any) -> Iterator[str]:  # noqa: ANN401
    """Recursively yield every string found in dumped model data."""
    if isinstance(value, str):
        yield value
    elif isinstance(value, Mapping):
        for item in value.values():
            yield from iter_strings(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_strings(item)


class ReferenceResolver:
    """Resolves references for a single test file.

    The resolver sees every variable file of the project, keyed by
    derived namespace, and the local variables of one test file only.
    """

    def __init__(self, namespaces: Mapping[str, Mapping[str, str]],
                 local_vars: Mapping[str, str]) -> None:
        """Initialize a resolver.

        Args:
            namespaces: Variable files keyed by derived namespace.
            local_vars: Local variables of the enclosing test file.
        """
        self.namespaces = {
            name.lower(): (name, values)
            for name, values in namespaces.items()
        }
        self.local_vars = local_vars

    def parse(self, token: str) -> Reference:
        """Classify a token as namespaced or bare.

        Args:
            token: Token text between `${` and `}`.

        Returns:
            Parsed reference; `namespace` is the canonical namespace
            name for namespaced tokens and `None` for bare ones.
        """
        prefix, dot, key = token.partition('.')
        if dot and prefix.lower() in self.namespaces:
            namespace, _ = self.namespaces[prefix.lower()]
            return Reference(token, namespace, key)

        return Reference(token, None, token)

    def resolve(self, token: str) -> str:
        """Resolve a single token to its literal value.

        Args:
            token: Token text between `${` and `}`.

        Returns:
            Literal string value.

        Raises:
            UnresolvedReference: If the token is empty, unknown, or a bare
                token also names a key of some variable file.
        """
        if not token.strip():
            raise UnresolvedReference(token, 'empty reference')

        reference = self.parse(token)
        if reference.namespace is not None:
            _, values = self.namespaces[reference.namespace.lower()]
            if reference.key not in values:
                raise UnresolvedReference(
                    token,
                    f'key {reference.key!r} is not defined in namespace {reference.namespace!r}',
                )
            return values[reference.key]

        if reference.key not in self.local_vars:
            raise UnresolvedReference(token, 'not defined in the local vars of this file')

        shadowed = sorted(
            name for name, values in self.namespaces.values()
            if reference.key in values
        )
        if shadowed:
            raise UnresolvedReference(
                token,
                'ambiguous, also defined in namespace '
                + ', '.join(repr(name) for name in shadowed)
                + '; use a namespaced reference or rename the local var',
            )

        return self.local_vars[reference.key]

    def substitute(self, text: str) -> str:
        """Replace every reference in a string with its literal value.

        Raises:
            UnresolvedReference: If any token cannot be resolved.
        """
        return REFERENCE_PATTERN.sub(lambda match: self.resolve(match['token']), text)

    def check(self, value: Any) -> None:  # noqa: ANN401
        """Resolve every token found in dumped model data.

        Raises:
            UnresolvedReference: On the first token that cannot be resolved.
        """
        for text in iter_strings(value):
            for token in iter_tokens(text):
                self.resolve(token)
