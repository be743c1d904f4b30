"""Authoring checks for node definitions (catalog linting, ``flows nodes``)."""

import re
from dataclasses import dataclass
from enum import StrEnum

from flows.nodes.definition import NodeDefinition

_ID_PATTERN = re.compile(r"^[a-z0-9-]+$")
_VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class NodeDiagnostic:
    severity: Severity
    message: str

    def to_dict(self) -> dict:
        return {"severity": self.severity.value, "message": self.message}


def _check_id(definition: NodeDefinition) -> list[NodeDiagnostic]:
    if _ID_PATTERN.match(definition.manifest.id):
        return []
    return [
        NodeDiagnostic(
            Severity.ERROR,
            f'Node id "{definition.manifest.id}" must be lowercase kebab-case',
        )
    ]


def _check_version(definition: NodeDefinition) -> list[NodeDiagnostic]:
    if _VERSION_PATTERN.match(definition.manifest.version):
        return []
    return [
        NodeDiagnostic(
            Severity.WARNING,
            f"Node {definition.manifest.id} version should follow SemVer (x.y.z)",
        )
    ]


def _check_keys(definition: NodeDefinition) -> list[NodeDiagnostic]:
    diagnostics = []
    groups = (
        ("Parameter", definition.parameters),
        ("Input port", definition.ports.inputs),
        ("Output port", definition.ports.outputs),
    )
    for label, entries in groups:
        for key, entry in entries.items():
            if entry.id != key:
                diagnostics.append(
                    NodeDiagnostic(
                        Severity.ERROR,
                        f'{label} key "{key}" must match its id "{entry.id}"',
                    )
                )
    return diagnostics


def validate_node_definition(definition: NodeDefinition) -> list[NodeDiagnostic]:
    """Return every problem found; an empty list means the definition is clean."""
    return _check_id(definition) + _check_version(definition) + _check_keys(definition)


def has_errors(diagnostics: list[NodeDiagnostic]) -> bool:
    return any(d.severity == Severity.ERROR for d in diagnostics)
