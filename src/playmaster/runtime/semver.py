"""Version token extraction and comparison."""

from re import compile as regexp

#: First dotted numeric token of a probe output, e.g. `3.29.2`.
VERSION_PATTERN = regexp(r'\d+(?:\.\d+)+|\d+')

type Version = tuple[int, int, int]


def extract_version(output: str) -> str | None:
    """Return the first version-like token of a command output."""
    if match := VERSION_PATTERN.search(output):
        return match.group(0)

    return None


def parse_version(value: str) -> Version:
    """Parse a `major.minor.patch` string.

    Missing components are zero and extra components are ignored.

    Raises:
        ValueError: If a component is not numeric.
    """
    parts = [int(part) for part in value.strip().split('.')[:3]]
    parts.extend([0] * (3 - len(parts)))

    return parts[0], parts[1], parts[2]


def is_at_least(found: str, required: str) -> bool:
    """Whether a found version satisfies a minimal one."""
    return parse_version(found) >= parse_version(required)
