"""
Port definitions - typed inputs and outputs of a node.

A "many" port carries a list of its schema. Input ports are validated
together through build_port_schema(); output ports are validated one
emission at a time through port_adapter().
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, create_model


class PortMultiplicity(StrEnum):
    SINGLE = "single"
    MANY = "many"


@dataclass(frozen=True)
class PortDefinition:
    id: str
    label: str
    schema: Any
    description: str | None = None
    required: bool = True
    multiplicity: PortMultiplicity = PortMultiplicity.SINGLE
    capabilities: tuple[str, ...] = field(default_factory=tuple)

    @property
    def value_type(self) -> Any:
        """Type of the value carried by the port."""
        if self.multiplicity == PortMultiplicity.MANY:
            return list[self.schema]
        return self.schema


def define_port(
    id: str,
    label: str,
    schema: Any,
    *,
    description: str | None = None,
    required: bool = True,
    multiplicity: PortMultiplicity | str = PortMultiplicity.SINGLE,
    capabilities: Sequence[str] = (),
) -> PortDefinition:
    return PortDefinition(
        id=id,
        label=label,
        schema=schema,
        description=description,
        required=required,
        multiplicity=PortMultiplicity(multiplicity),
        capabilities=tuple(capabilities),
    )


def _keyed(ports: Mapping[str, PortDefinition] | Sequence[PortDefinition]) -> dict[str, PortDefinition]:
    if isinstance(ports, Mapping):
        return dict(ports)
    return {port.id: port for port in ports}


@dataclass(frozen=True)
class PortsDefinition:
    """Input and output ports of a node, keyed by port id."""

    inputs: dict[str, PortDefinition] = field(default_factory=dict)
    outputs: dict[str, PortDefinition] = field(default_factory=dict)

    @classmethod
    def of(
        cls,
        inputs: Mapping[str, PortDefinition] | Sequence[PortDefinition] = (),
        outputs: Mapping[str, PortDefinition] | Sequence[PortDefinition] = (),
    ) -> PortsDefinition:
        """Build from mappings or plain sequences (sequences are keyed by id)."""
        return cls(inputs=_keyed(inputs), outputs=_keyed(outputs))


def build_port_schema(
    ports: Mapping[str, PortDefinition],
    model_name: str = "Inputs",
) -> type[BaseModel]:
    """Build a pydantic model validating a port value mapping keyed like ``ports``."""
    fields: dict[str, Any] = {}
    for index, (key, port) in enumerate(ports.items()):
        if port.required:
            annotation, default = port.value_type, ...
        else:
            annotation, default = Optional[port.value_type], None  # noqa: UP007
        fields[f"field_{index}"] = (
            annotation,
            Field(default, alias=key, title=port.label, description=port.description),
        )
    return create_model(model_name, __config__=ConfigDict(extra="ignore"), **fields)


def port_adapter(port: PortDefinition) -> TypeAdapter:
    """TypeAdapter validating one value emitted on ``port``."""
    return TypeAdapter(port.value_type)
