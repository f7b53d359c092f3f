"""Node classification.

Maps a kind plus traversal context onto a :class:`NodeType`. Kind-name checks
run before label checks so a definition object carrying ownership labels is
still reported as a definition.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from compgraph.models.resources import NodeType

RGD_ID_LABEL = "kro.run/resource-graph-definition-id"

_DEFINITION_KINDS: Mapping[str, NodeType] = {
    "CompositeResourceDefinition": NodeType.XRD,
    "ResourceGraphDefinition": NodeType.RGD,
    "CustomResourceDefinition": NodeType.CRD,
}


@dataclass(frozen=True)
class ClassifierHints:
    """Context available when classifying one object.

    ``ownership_label``/``definition_id``/``instance_uid`` are set by the
    Instance profile only. ``role`` is the structural position the traversal
    profile assigns (Composite, ManagedResource, Instance) when nothing more
    specific applies.
    """

    labels: Mapping[str, str] = field(default_factory=dict)
    uid: str | None = None
    ownership_label: str | None = None
    definition_id: str | None = None
    instance_uid: str | None = None
    role: NodeType | None = None


def classify(kind: str, hints: ClassifierHints | None = None) -> NodeType:
    """Return the semantic node type for *kind* in the context of *hints*."""
    hints = hints or ClassifierHints()

    if kind.endswith("Claim"):
        return NodeType.CLAIM
    definition = _DEFINITION_KINDS.get(kind)
    if definition is not None:
        return definition

    if hints.ownership_label:
        owner = hints.labels.get(hints.ownership_label)
        if owner is not None:
            if owner == hints.definition_id and hints.uid and hints.uid == hints.instance_uid:
                return NodeType.INSTANCE
            return NodeType.MANAGED_RESOURCE

    if hints.role is not None:
        return hints.role
    return NodeType.GENERIC_RESOURCE
