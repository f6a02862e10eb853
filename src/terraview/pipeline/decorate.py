from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Collection, Dict, Mapping, Sequence

from ..graph.model import AttrKey, Graph
from ..logging import get_logger
from ..state.base import StateLookup
from ..util.errors import ConfigError, LookupMissError

LOG = get_logger(__name__)

LABEL_POSITIONS = {"t", "c", "b"}
# Graphviz only honours t and b on clusters; t is its default there
CLUSTER_LABEL_POSITIONS = {"t": "t", "c": "t", "b": "b"}
CLUSTER_STYLE = "rounded"


@dataclass
class DecorationReport:
    attribute_labels: int = 0
    icons: int = 0
    lookup_misses: Dict[str, str] = field(default_factory=dict)


def is_resource_node(resource_type: str, known_providers: Collection[str]) -> bool:
    return any(resource_type.startswith(f"{provider}_") for provider in known_providers)


def add_attribute_labels(
    graph: Graph,
    state: StateLookup,
    important_attributes: Mapping[str, Sequence[str]],
    *,
    strict: bool = False,
    report: DecorationReport,
) -> None:
    """
    Label each important node with its address followed by one
    `name: value` line per configured attribute.

    Labels are rebuilt from the address, so running this twice gives the
    same text.
    """
    for node_id in graph.node_ids():
        node = graph.get_node(node_id)
        names = important_attributes.get(node.resource_type)
        if not names:
            continue
        try:
            values = state.get_attribute_values(node.address, list(names))
        except LookupMissError as e:
            if strict:
                raise
            LOG.warning("No attributes for %s: %s", node_id, e)
            report.lookup_misses[node_id] = str(e)
            node.attrs.set(AttrKey.LABEL, node.address)
            continue
        node.attrs.set(AttrKey.LABEL, "\n".join([node.address, *values]))
        report.attribute_labels += 1


def add_icons(
    graph: Graph,
    known_providers: Collection[str],
    icon_path: Path,
    *,
    report: DecorationReport,
) -> None:
    """Point provider resources at `<type>.png` under icon_path and hide their outline."""
    graph.attrs["imagepath"] = str(icon_path)
    for node in graph.nodes():
        if not is_resource_node(node.resource_type, known_providers):
            continue
        node.attrs.set(AttrKey.IMAGE, f"{node.resource_type}.png")
        node.attrs.set(AttrKey.SHAPE, "none")
        report.icons += 1


def position_labels(graph: Graph, position: str) -> None:
    if position not in LABEL_POSITIONS:
        raise ConfigError(f"label position must be one of: {', '.join(sorted(LABEL_POSITIONS))}")
    for node in graph.nodes():
        node.attrs.set(AttrKey.LABELLOC, position)
    for cluster in graph.clusters():
        cluster.attrs.set(AttrKey.LABELLOC, CLUSTER_LABEL_POSITIONS[position])


def scale_cluster_margins(graph: Graph, base_margin: int) -> None:
    """Margin is (max_depth - depth + 1) * base_margin: outer clusters get more room."""
    max_depth = graph.max_cluster_depth()
    for cluster in graph.clusters():
        depth = graph.cluster_depth(cluster.id)
        cluster.attrs.set(AttrKey.MARGIN, (max_depth - depth + 1) * base_margin)


def apply_font_sizes(graph: Graph, node_fontsize: int, cluster_fontsize: int) -> None:
    for node in graph.nodes():
        node.attrs.set(AttrKey.FONTSIZE, node_fontsize)
    for cluster in graph.clusters():
        cluster.attrs.set(AttrKey.FONTSIZE, cluster_fontsize)
        cluster.attrs.extras["style"] = CLUSTER_STYLE


def decorate(
    graph: Graph,
    state: StateLookup,
    *,
    important_attributes: Mapping[str, Sequence[str]],
    known_providers: Collection[str],
    icon_path: Path,
    label_location: str,
    base_margin: int,
    node_fontsize: int,
    cluster_fontsize: int,
    strict: bool = False,
) -> DecorationReport:
    report = DecorationReport()
    add_attribute_labels(graph, state, important_attributes, strict=strict, report=report)
    add_icons(graph, known_providers, icon_path, report=report)
    position_labels(graph, label_location)
    scale_cluster_margins(graph, base_margin)
    apply_font_sizes(graph, node_fontsize, cluster_fontsize)
    return report
