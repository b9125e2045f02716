"""Base Pydantic models for DSL elements and runtime settings.

This module defines the foundational model classes used by all DSL structures.
It enforces immutability and strict schema validation to guarantee that
loaded projects are deterministic, explicit, and safe to compile.
"""

from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from playmaster.names import REFERENCE_PATTERN


class SchemaModel(BaseModel):
    """Base immutable model for all DSL elements.

    This class serves as the root for all Pydantic models representing
    DSL constructs such as configuration, variables, test files and steps.

    Design principles enforced by this model:
        - Immutability: DSL elements cannot be modified after load.
        - Strict schema validation: unknown or extra fields are rejected
          to avoid silent errors caused by typos.

    All DSL models must inherit from this class.
    """

    model_config = ConfigDict(
        frozen=True,
        extra='forbid',
    )


class DescribedMixin(SchemaModel):
    """Mixin providing element self-documentation.

    The fields defined in this model do not affect generated code
    beyond naming and are used for reporting. Names are emitted and
    matched verbatim, so they may not contain `${...}` references.
    """

    name: str = Field(
        min_length=1,
        title='Name',
        description=(
            'Human-readable name of the DSL element. '
            'Variable references are not allowed in names.'
        ),
    )

    description: str = Field(
        default='',
        title='Description',
        description='Detailed human-readable description of the DSL element.',
    )

    @model_validator(mode='after')
    def check_literal_name(self) -> Self:
        """Reject names containing variable references.

        Raises:
            ValueError: If the name contains a `${...}` token.
        """
        match = REFERENCE_PATTERN.search(self.name)
        if match is not None:
            raise ValueError(f'Variable reference {match[0]} is not allowed in a name')

        return self


class SettingsModel(BaseSettings):
    """Base immutable model for runtime settings.

    Design principles enforced by this model:
        - Immutability: resolved settings cannot be modified after creation.
        - Tolerant schema handling: unknown or extra fields are ignored,
          so unrelated environment variables never break resolution.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra='ignore',
    )
