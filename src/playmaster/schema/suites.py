"""Test file and test case models.

A test file groups ordered test cases under a unique name and may
declare local variables referenced with bare `${key}` tokens. Values
are stored unresolved; references are checked by the loader and
substituted by the code generator.
"""

from typing import Self

from pydantic import ConfigDict, Field, model_validator

from playmaster.models import DescribedMixin, SchemaModel
from playmaster.names import Variable, to_snake_case

from .steps import Step  # noqa: TC001


class TestCase(DescribedMixin, SchemaModel):
    """Single executable scenario made of ordered steps."""

    __test__ = False

    steps: tuple[Step, ...] = Field(
        min_length=1,
        title='Steps',
        description='Ordered steps executed by the generated test.',
    )


class TestFile(DescribedMixin, SchemaModel):
    """Feature file compiled into one test-suite artifact."""

    __test__ = False

    model_config = ConfigDict(populate_by_name=True)

    local_vars: dict[Variable, str] = Field(
        default_factory=dict,
        alias='vars',
        title='Local variables',
        description=(
            'Variables visible only inside this file, '
            'referenced as `${key}`.'
        ),
    )

    tests: tuple[TestCase, ...] = Field(
        min_length=1,
        title='Test cases',
        description='Ordered test cases of the feature.',
    )

    @model_validator(mode='after')
    def check_unique_cases(self) -> Self:
        """Reject test cases sharing a name within the file.

        Raises:
            ValueError: If a test case name is used twice.
        """
        seen = set()
        for case in self.tests:
            if case.name in seen:
                raise ValueError(f'Test case {case.name!r} is declared twice')
            seen.add(case.name)

        return self

    @property
    def suite_name(self) -> str:
        """Base name of the generated test-suite artifact."""
        return f'{to_snake_case(self.name)}_test'
