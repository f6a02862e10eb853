from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from ..graph.dot import is_resource_address
from ..graph.model import Graph
from ..logging import get_logger

LOG = get_logger(__name__)

_MARKER_RE = re.compile(r"^(?P<base>.+)\[(?P<key>[^\[\]]*)\]$")

RECONCILE_PRUNE = "prune"
RECONCILE_KEEP = "keep"


@dataclass
class ReconcileReport:
    removed: List[Tuple[str, str]] = field(default_factory=list)
    # Resource pairs whose instance keys do not correspond one to one
    ambiguous: List[Tuple[str, str]] = field(default_factory=list)


def split_marker(address: str) -> Tuple[str, Optional[str]]:
    """`aws_instance.web[1]` -> (`aws_instance.web`, `1`); unindexed -> (address, None)."""
    m = _MARKER_RE.match(address)
    if not m:
        return address, None
    return m.group("base"), m.group("key")


def _instance_marker(address: str) -> Tuple[str, Optional[str]]:
    # provider["..."] and module[...] carry brackets but are not instances
    if not is_resource_address(address):
        return address, None
    return split_marker(address)


def _markers_by_base(graph: Graph) -> Dict[str, Set[str]]:
    markers: Dict[str, Set[str]] = defaultdict(set)
    for node in graph.nodes():
        base, key = _instance_marker(node.address)
        if key is not None:
            markers[base].add(key)
    return markers


def reconcile_instance_edges(graph: Graph, *, mismatched: str = RECONCILE_PRUNE) -> ReconcileReport:
    """
    Drop edges between instances whose index/key markers differ.

    Edges with at most one indexed endpoint are left alone. Resource pairs
    whose key sets differ are reported as ambiguous; with mismatched="keep"
    their edges are left intact instead of pruned.
    """
    report = ReconcileReport()
    markers = _markers_by_base(graph)
    ambiguous: Set[Tuple[str, str]] = set()

    for edge in sorted(graph.edges(), key=lambda e: e.key):
        src_base, src_key = _instance_marker(graph.get_node(edge.src).address)
        dst_base, dst_key = _instance_marker(graph.get_node(edge.dst).address)
        if src_key is None or dst_key is None:
            continue
        pair = (src_base, dst_base)
        if markers[src_base] != markers[dst_base] and pair not in ambiguous:
            ambiguous.add(pair)
            LOG.warning(
                "Instances of %s and %s do not correspond one to one; key matching may drop real dependencies",
                src_base,
                dst_base,
            )
        if src_key == dst_key:
            continue
        if pair in ambiguous and mismatched == RECONCILE_KEEP:
            continue
        graph.remove_edge(edge.src, edge.dst)
        report.removed.append(edge.key)

    report.ambiguous = sorted(ambiguous)
    return report
