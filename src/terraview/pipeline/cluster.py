from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Collection, Dict, List, Set

from ..graph.model import Cluster, Graph
from ..logging import get_logger
from ..util.errors import StructuralAmbiguityError

LOG = get_logger(__name__)


@dataclass
class ClusterReport:
    roots: List[str] = field(default_factory=list)
    order: List[str] = field(default_factory=list)
    clusters: List[str] = field(default_factory=list)
    max_depth: int = 0
    ambiguous_root: bool = False


def find_roots(graph: Graph, *, strict: bool = False) -> List[str]:
    """
    Traversal roots: the sink nodes (no outgoing edges), sorted.

    A graph without any sink is cyclic everywhere; strict mode rejects it,
    otherwise the lexicographically smallest node id stands in.
    """
    if len(graph) == 0:
        return []
    sinks = graph.sinks()
    if len(sinks) == 1:
        return sinks
    if sinks:
        LOG.warning("Graph has %s sink nodes; traversing from all of them starting at %s", len(sinks), sinks[0])
        return sinks
    if strict:
        raise StructuralAmbiguityError("graph has no sink node to start containment traversal from")
    fallback = graph.node_ids()[0]
    LOG.warning("Graph has no sink node; starting containment traversal at %s", fallback)
    return [fallback]


def traversal_order(graph: Graph, roots: List[str]) -> List[str]:
    """
    Breadth-first order against edge direction, starting at `roots`.

    A node is queued once all of its successors have been visited, so a
    container is always visited after every container it depends on. When
    cycles stall the queue, the smallest unvisited node with a visited
    successor is released (or the smallest unvisited node overall).
    """
    remaining: Dict[str, int] = {n: graph.out_degree(n) for n in graph.node_ids()}
    visited: Set[str] = set()
    order: List[str] = []
    queue = deque(roots)

    while len(visited) < len(remaining):
        if not queue:
            unvisited = [n for n in graph.node_ids() if n not in visited]
            touching = [n for n in unvisited if any(s in visited for s in graph.successors(n))]
            queue.append((touching or unvisited)[0])
        current = queue.popleft()
        if current in visited:
            continue
        visited.add(current)
        order.append(current)
        for pred in graph.predecessors(current):
            remaining[pred] -= 1
            if remaining[pred] <= 0 and pred not in visited:
                queue.append(pred)
    return order


def cluster_containers(
    graph: Graph,
    grouping_types: Collection[str],
    *,
    strict: bool = False,
) -> ClusterReport:
    """
    Turn every grouping-type node into a cluster holding its transitive dependents.

    Containers are processed in traversal order and each one claims all of
    its dependents, overwriting earlier claims; the innermost container
    therefore wins. A container captured by an enclosing cluster nests its
    own cluster inside that one.
    """
    report = ClusterReport()
    grouping = set(grouping_types)
    report.roots = find_roots(graph, strict=strict)
    report.ambiguous_root = len(report.roots) > 1 or any(graph.out_degree(r) for r in report.roots)
    report.order = traversal_order(graph, report.roots)

    for node_id in report.order:
        node = graph.get_node(node_id)
        if node.resource_type not in grouping:
            continue
        if graph.has_cluster(node_id):
            continue
        parent = graph.cluster_of(node_id)
        graph.add_cluster(Cluster(id=node_id, label=node.address, node_id=node_id), parent=parent)
        graph.assign(node_id, node_id)
        for member in sorted(graph.ancestors(node_id)):
            graph.assign(member, node_id)
        report.clusters.append(node_id)

    report.max_depth = graph.max_cluster_depth()
    return report
