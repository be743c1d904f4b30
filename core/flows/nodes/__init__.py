"""Node contract - definitions, validated execution and the type registry."""

from flows.nodes.definition import (
    NodeDefinition,
    define_node,
    hydrate_parameters,
    validate_inputs,
    validate_output,
    validate_parameters,
)
from flows.nodes.diagnostics import NodeDiagnostic, Severity, validate_node_definition
from flows.nodes.executor import (
    NodeExecution,
    NodeExecutionContext,
    NodeExecutor,
    NodeRunState,
    create_node_executor,
)
from flows.nodes.manifest import NodeKind, NodeManifest
from flows.nodes.parameters import (
    ParameterControl,
    ParameterDefinition,
    ParameterOption,
    build_parameter_schema,
    define_parameter,
)
from flows.nodes.ports import (
    PortDefinition,
    PortMultiplicity,
    PortsDefinition,
    build_port_schema,
    define_port,
    port_adapter,
)
from flows.nodes.registry import NodeRegistry, default_registry

__all__ = [
    # Definition
    "NodeManifest",
    "NodeKind",
    "NodeDefinition",
    "define_node",
    "validate_parameters",
    "validate_inputs",
    "validate_output",
    "hydrate_parameters",
    # Parameters / ports
    "ParameterDefinition",
    "ParameterControl",
    "ParameterOption",
    "define_parameter",
    "build_parameter_schema",
    "PortDefinition",
    "PortMultiplicity",
    "PortsDefinition",
    "define_port",
    "build_port_schema",
    "port_adapter",
    # Execution
    "NodeExecution",
    "NodeExecutionContext",
    "NodeExecutor",
    "NodeRunState",
    "create_node_executor",
    # Registry
    "NodeRegistry",
    "default_registry",
    # Diagnostics
    "NodeDiagnostic",
    "Severity",
    "validate_node_definition",
]
