"""
Parameter definitions and the schema built from them.

A parameter's ``schema`` is any type pydantic can validate (``str``,
``int``, ``Literal[...]``, ``Annotated[int, Field(ge=1)]``, a BaseModel...).
build_parameter_schema() turns a keyed set of parameters into a pydantic
model:

- a parameter with a default is filled with it when absent
- ``required=False`` without a default may be absent (and stays absent)
- anything else is required
- unknown keys are ignored
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, create_model
from pydantic_core import PydanticUndefined


class ParameterControl(StrEnum):
    """Form control an editor should render for a parameter."""

    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    SELECT = "select"
    JSON = "json"


@dataclass(frozen=True)
class ParameterOption:
    label: str
    value: str


@dataclass(frozen=True)
class ParameterDefinition:
    """A configurable value of a node, validated before the handler runs."""

    id: str
    label: str
    schema: Any
    description: str | None = None
    default: Any = PydanticUndefined
    required: bool = True
    control: ParameterControl | None = None
    options: tuple[ParameterOption, ...] = field(default_factory=tuple)

    @property
    def has_default(self) -> bool:
        return self.default is not PydanticUndefined

    @property
    def may_be_absent(self) -> bool:
        """Optional and without a default: the key can be missing after validation."""
        return not self.has_default and not self.required


def define_parameter(
    id: str,
    label: str,
    schema: Any,
    *,
    description: str | None = None,
    default: Any = PydanticUndefined,
    required: bool = True,
    control: ParameterControl | str | None = None,
    options: list[ParameterOption] | tuple[ParameterOption, ...] = (),
) -> ParameterDefinition:
    return ParameterDefinition(
        id=id,
        label=label,
        schema=schema,
        description=description,
        default=default,
        required=required,
        control=ParameterControl(control) if control else None,
        options=tuple(options),
    )


def _schema_field(index: int) -> str:
    # Keys are carried as aliases so ids like "json" or "_x" never collide
    # with BaseModel attributes.
    return f"field_{index}"


def build_parameter_schema(
    definitions: Mapping[str, ParameterDefinition],
    model_name: str = "Parameters",
) -> type[BaseModel]:
    """Build a pydantic model validating a parameter mapping keyed like ``definitions``."""
    fields: dict[str, Any] = {}
    for index, (key, parameter) in enumerate(definitions.items()):
        annotation = parameter.schema
        if parameter.has_default:
            default = parameter.default
        elif not parameter.required:
            annotation, default = Optional[parameter.schema], None  # noqa: UP007
        else:
            default = ...
        fields[_schema_field(index)] = (
            annotation,
            Field(default, alias=key, title=parameter.label, description=parameter.description),
        )
    return create_model(model_name, __config__=ConfigDict(extra="ignore"), **fields)


def dump_present(instance: BaseModel, absent_when_unset: set[str]) -> dict[str, Any]:
    """Dump a validated model by key, omitting unset optional keys."""
    data = instance.model_dump(by_alias=True)
    fields_set = {
        type(instance).model_fields[name].alias for name in instance.model_fields_set
    }
    for key in absent_when_unset:
        if key not in fields_set:
            data.pop(key, None)
    return data
