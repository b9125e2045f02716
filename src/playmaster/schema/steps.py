"""Step models of the test DSL.

A step is a closed tagged union: every step mapping carries exactly one
recognized tag (`wait_for`, `tap`, `type` or `match`) whose value
describes the action. Zero or several recognized tags are rejected at
load time.

Selector-like payloads (`{text | placeholder}` and friends) reject
several populated alternatives at load time. A payload with none of
them populated is structurally ambiguous and is reported by the code
generator.
"""

from enum import StrEnum
from typing import Annotated, Any, ClassVar, Literal, Self

from pydantic import ConfigDict, Discriminator, Field, NonNegativeInt, PositiveInt, Tag, model_validator

from playmaster.models import SchemaModel

#: Recognized step tags, in documentation order.
STEP_TAGS = ('wait_for', 'tap', 'type', 'match')


class ProgressKind(StrEnum):
    """Kinds of progress indicators a step may wait on."""

    LINEAR = 'linear'
    RADIAL = 'radial'


class AlternativesMixin(SchemaModel):
    """Mixin for payloads populated by exactly one of several fields.

    Subclasses list the mutually exclusive fields in `alternatives`.
    """

    alternatives: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode='after')
    def check_single_alternative(self) -> Self:
        """Reject payloads with more than one alternative populated.

        Raises:
            ValueError: If several alternatives are set at once.
        """
        if len(self.populated) > 1:
            raise ValueError(
                f'Expected only one of {", ".join(self.alternatives)}, '
                f'got {", ".join(self.populated)}',
            )

        return self

    @property
    def populated(self) -> tuple[str, ...]:
        """Names of the alternatives set on this payload."""
        return tuple(
            name for name in self.alternatives
            if getattr(self, name) is not None
        )

    @property
    def kind(self) -> str | None:
        """Name of the single populated alternative, if any."""
        if len(self.populated) != 1:
            return None

        return self.populated[0]


class Selector(AlternativesMixin):
    """Element locator by visible text or by input placeholder."""

    alternatives = ('text', 'placeholder')

    text: str | None = Field(
        default=None,
        title='Text',
        description='Exact visible text of the element.',
    )
    placeholder: str | None = Field(
        default=None,
        title='Placeholder',
        description='Placeholder (label text) of an input field.',
    )


class WaitFor(AlternativesMixin):
    """Wait condition: text presence, fixed delay or progress completion."""

    alternatives = ('text', 'delay', 'progress')

    text: str | None = Field(
        default=None,
        title='Text',
        description='Wait until an element with this exact text is present.',
    )
    delay: NonNegativeInt | None = Field(
        default=None,
        title='Delay',
        description='Wait for a fixed number of milliseconds.',
    )
    progress: ProgressKind | None = Field(
        default=None,
        title='Progress indicator',
        description='Wait until all progress indicators of this kind complete.',
    )

    timeout: PositiveInt | None = Field(
        default=None,
        title='Timeout',
        description=(
            'Upper bound of the wait in milliseconds. '
            'Applies to `text` and `progress` waits.'
        ),
    )


class TypeInput(SchemaModel):
    """Replace the content of an input element."""

    by: Selector = Field(
        title='Target',
        description='Locator of the input element.',
    )
    value: str = Field(
        title='Value',
        description='Text entered into the element. May contain references.',
    )


class MatchTarget(AlternativesMixin):
    """Assertion target: unique text match or golden screenshot."""

    alternatives = ('text', 'screenshot')

    text: str | None = Field(
        default=None,
        title='Text',
        description='Assert exactly one element with this text exists.',
    )
    screenshot: str | None = Field(
        default=None,
        title='Screenshot',
        description='Compare the current render against this golden file.',
    )


class WaitForStep(SchemaModel):
    """Step tagged `wait_for`."""

    tag: ClassVar[Literal['wait_for']] = 'wait_for'

    wait_for: WaitFor


class TapStep(SchemaModel):
    """Step tagged `tap`."""

    tag: ClassVar[Literal['tap']] = 'tap'

    tap: Selector


class TypeStep(SchemaModel):
    """Step tagged `type`."""

    model_config = ConfigDict(populate_by_name=True)

    tag: ClassVar[Literal['type']] = 'type'

    type_: TypeInput = Field(alias='type')


class MatchStep(SchemaModel):
    """Step tagged `match`."""

    tag: ClassVar[Literal['match']] = 'match'

    match: MatchTarget


def step_tag(value: Any) -> str | None:  # noqa: ANN401
    """Pick the union member for raw or already built step data.

    Args:
        value: Raw mapping from YAML or a step model instance.

    Returns:
        The single recognized tag, or `None` when zero or several
        recognized tags are present.
    """
    if isinstance(value, dict):
        tags = [key for key in value if key in STEP_TAGS]
        if len(tags) != 1:
            return None
        return tags[0]

    return getattr(value, 'tag', None)


Step = Annotated[
    Annotated[WaitForStep, Tag('wait_for')]
    | Annotated[TapStep, Tag('tap')]
    | Annotated[TypeStep, Tag('type')]
    | Annotated[MatchStep, Tag('match')],
    Discriminator(
        step_tag,
        custom_error_type='step_tag',
        custom_error_message=(
            'A step must carry exactly one of: '
            + ', '.join(STEP_TAGS)
        ),
    ),
]
