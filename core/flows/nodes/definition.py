"""
Node definition - manifest, parameters and ports of a node type, plus the
schemas derived from them.

Parameters and ports are keyed; the key (not the definition's ``id``) is
what values are validated under. A key that disagrees with its id is
reported by flows.nodes.diagnostics.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from flows.errors import NodeValidationError, UnknownPortError
from flows.nodes.manifest import NodeManifest
from flows.nodes.parameters import ParameterDefinition, build_parameter_schema, dump_present
from flows.nodes.ports import PortsDefinition, build_port_schema, port_adapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodeDefinition:
    """
    Everything the runtime needs to know about a node type.

    ``retryable`` marks nodes whose failures come from external actions and
    may be retried by the runner.
    """

    manifest: NodeManifest
    parameters: dict[str, ParameterDefinition]
    ports: PortsDefinition
    retryable: bool = False
    parameter_schema: type[BaseModel] = field(init=False, repr=False, compare=False)
    input_schema: type[BaseModel] = field(init=False, repr=False, compare=False)
    output_adapters: dict[str, TypeAdapter] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameter_schema", build_parameter_schema(self.parameters))
        object.__setattr__(self, "input_schema", build_port_schema(self.ports.inputs))
        object.__setattr__(
            self,
            "output_adapters",
            {key: port_adapter(port) for key, port in self.ports.outputs.items()},
        )

    @property
    def id(self) -> str:
        return self.manifest.id


def define_node(
    manifest: NodeManifest | Mapping[str, Any],
    parameters: Mapping[str, ParameterDefinition] | Sequence[ParameterDefinition] = (),
    ports: PortsDefinition | None = None,
    retryable: bool = False,
) -> NodeDefinition:
    """
    Build a NodeDefinition.

    ``parameters`` may be a mapping or a plain sequence (keyed by id).
    """
    if not isinstance(manifest, NodeManifest):
        manifest = NodeManifest.model_validate(manifest)
    if isinstance(parameters, Mapping):
        keyed = dict(parameters)
    else:
        keyed = {parameter.id: parameter for parameter in parameters}
    return NodeDefinition(
        manifest=manifest,
        parameters=keyed,
        ports=ports or PortsDefinition(),
        retryable=retryable,
    )


def _field_errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [{"loc": err["loc"], "msg": err["msg"], "type": err["type"]} for err in exc.errors()]


def validate_parameters(definition: NodeDefinition, values: Any = None) -> dict[str, Any]:
    """
    Validate raw parameter values, applying defaults.

    Raises:
        NodeValidationError: with field-level errors
    """
    try:
        instance = definition.parameter_schema.model_validate(values if values is not None else {})
    except ValidationError as e:
        raise NodeValidationError(definition.id, "parameters", _field_errors(e)) from e
    absent = {key for key, p in definition.parameters.items() if p.may_be_absent}
    return dump_present(instance, absent)


def validate_inputs(definition: NodeDefinition, values: Any = None) -> dict[str, Any]:
    """
    Validate input port values.

    Raises:
        NodeValidationError: with field-level errors
    """
    try:
        instance = definition.input_schema.model_validate(values if values is not None else {})
    except ValidationError as e:
        raise NodeValidationError(definition.id, "inputs", _field_errors(e)) from e
    absent = {key for key, port in definition.ports.inputs.items() if not port.required}
    return dump_present(instance, absent)


def validate_output(definition: NodeDefinition, port_id: str, value: Any) -> Any:
    """
    Validate one value emitted on an output port.

    Raises:
        UnknownPortError: the port is not declared
        NodeValidationError: the value does not match the port schema
    """
    adapter = definition.output_adapters.get(port_id)
    if adapter is None:
        raise UnknownPortError(port_id, definition.id)
    try:
        return adapter.validate_python(value)
    except ValidationError as e:
        raise NodeValidationError(definition.id, f"output:{port_id}", _field_errors(e)) from e


def hydrate_parameters(definition: NodeDefinition, stored: Any) -> dict[str, Any]:
    """
    Parameters for an editor or a run, from whatever was stored.

    Never raises: malformed stored values fall back to the definition's
    defaults, and to ``{}`` when even the defaults do not validate.
    """
    try:
        return validate_parameters(definition, stored if stored is not None else {})
    except NodeValidationError as e:
        logger.debug("Stored parameters for %s are invalid, using defaults: %s", definition.id, e)
    try:
        return validate_parameters(definition, {})
    except NodeValidationError:
        return {}
