"""JSON Schema management."""

from functools import cache
from json import dumps
from typing import TYPE_CHECKING

from pydantic.json_schema import GenerateJsonSchema

from playmaster.schema import Config, TestFile, VarsFile

if TYPE_CHECKING:
    from pydantic import BaseModel

#: Documented file formats and their root models.
FORMATS: dict[str, tuple['type[BaseModel]', str]] = {
    'config': (Config, 'playmaster.yaml configuration file'),
    'test': (TestFile, 'playmaster test file'),
    'vars': (VarsFile, 'playmaster variable file (*.vars.yaml)'),
}


class SchemaGenerator(GenerateJsonSchema):
    """JSON Schema generator for playmaster file formats."""

    @classmethod
    @cache
    def make_schema(cls, name: str, indent: int | str | None = 4) -> str:
        """Generate the JSON Schema of a file format.

        Args:
            name: Format name, one of `FORMATS`.
            indent: Indentation level used for JSON formatting.

        Returns:
            Serialized JSON Schema string.

        Raises:
            KeyError: If the format is unknown.
        """
        model, description = FORMATS[name]

        schema = {
            **model.model_json_schema(
                by_alias=True,
                schema_generator=cls,
            ),
            'title': f'playmaster {name}',
            'description': f'JSON Schema for the {description}',
            '$schema': cls.schema_dialect,
        }

        return dumps(
            schema,
            ensure_ascii=False,
            sort_keys=True,
            indent=indent,
        )
