from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from ..graph.model import AttrKey, Graph, Node
from ..logging import get_logger
from ..state.base import StateLookup
from ..util.errors import LookupMissError

LOG = get_logger(__name__)


@dataclass
class ExpansionReport:
    expanded: Dict[str, List[str]] = field(default_factory=dict)
    skipped: Dict[str, str] = field(default_factory=dict)
    edges_added: int = 0
    edges_removed: int = 0


def expand_node(graph: Graph, template_id: str, instance_addresses: Sequence[str]) -> List[str]:
    """
    Replace a template node by one node per instance address.

    Every instance receives a copy of each outgoing and incoming edge of
    the template; the template and its edges are then removed. Returns the
    instance node ids in the order given.
    """
    template = graph.get_node(template_id)
    out_edges = graph.out_edges(template_id)
    in_edges = graph.in_edges(template_id)

    instance_ids: List[str] = []
    for address in instance_addresses:
        if address == template_id:
            continue
        if not graph.has_node(address):
            attrs = template.attrs.copy()
            attrs.set(AttrKey.LABEL, address)
            graph.add_node(Node(id=address, address=address, attrs=attrs))
        else:
            LOG.debug("Instance node %s already present; reusing it", address)
        for edge in out_edges:
            graph.add_edge(address, edge.dst, edge.attrs)
        for edge in in_edges:
            graph.add_edge(edge.src, address, edge.attrs)
        instance_ids.append(address)

    graph.remove_node(template_id)
    return instance_ids


def expand_instances(graph: Graph, state: StateLookup, *, strict: bool = False) -> ExpansionReport:
    """Expand every multi-instance template the state reports into its instances."""
    report = ExpansionReport()
    for node_id in graph.node_ids():
        if not graph.has_node(node_id):
            continue
        node = graph.get_node(node_id)
        if not state.has_multiple_instances(node.address):
            continue
        try:
            addresses = state.list_instance_addresses(node.address)
        except LookupMissError as e:
            if strict:
                raise
            LOG.warning("Skipping expansion of %s: %s", node_id, e)
            report.skipped[node_id] = str(e)
            continue

        degree = graph.out_degree(node_id) + graph.in_degree(node_id)
        instance_ids = expand_node(graph, node_id, addresses)
        report.expanded[node_id] = instance_ids
        report.edges_removed += degree
        report.edges_added += degree * len(instance_ids)
        LOG.debug("Expanded %s into %s instance(s)", node_id, len(instance_ids))
    return report
