"""Variable file model.

A variable file is a flat mapping of keys to string values. Its
namespace is derived from the file base name and is used both for
`${Namespace.key}` references and for the generated constants class.
"""

from pydantic import ConfigDict, Field, RootModel

from playmaster.names import Variable  # noqa: TC001


class VarsFile(RootModel[dict[Variable, str]]):
    """Flat, immutable `key: value` mapping loaded from `*.vars.yaml`."""

    model_config = ConfigDict(
        frozen=True,
        coerce_numbers_to_str=True,
    )

    root: dict[Variable, str] = Field(
        default_factory=dict,
        title='Variables',
        description='Flat mapping of variable names to string values.',
    )
