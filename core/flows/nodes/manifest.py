"""Node manifest - the static identity of a node type."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NodeKind(StrEnum):
    SOURCE = "source"
    TRANSFORM = "transform"
    SINK = "sink"


class NodeManifest(BaseModel):
    """
    Identity and catalog metadata of a node type.

    ``id`` is expected to be lowercase kebab-case and ``version`` SemVer;
    see flows.nodes.diagnostics.
    """

    id: str
    version: str
    display_name: str
    description: str | None = None
    kind: NodeKind | None = None
    categories: tuple[str, ...] = Field(default_factory=tuple)
    icon: str | None = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)
