from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Set, Tuple

from ..util.errors import GraphModelError

_MODULE_PREFIX_RE = re.compile(r'^module\.[^.\[]+(\[[^\]]*\])?\.')


class AttrKey(str, Enum):
    """Presentation attributes the pipeline reads or writes."""

    LABEL = "label"
    IMAGE = "image"
    SHAPE = "shape"
    MARGIN = "margin"
    FONTSIZE = "fontsize"
    LABELLOC = "labelloc"


_ATTR_KEYS = {k.value: k for k in AttrKey}


class Attributes:
    """
    Typed presentation attributes plus pass-through renderer extras.

    Recognized keys go through AttrKey; anything else lands in `extras`
    untouched so it survives a parse/serialize round trip.
    """

    def __init__(
        self,
        values: Optional[Mapping[AttrKey, str]] = None,
        extras: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._values: Dict[AttrKey, str] = dict(values or {})
        self.extras: Dict[str, str] = dict(extras or {})

    @classmethod
    def from_mapping(cls, raw: Mapping[str, str]) -> Attributes:
        attrs = cls()
        for name, value in raw.items():
            attrs.set_raw(name, value)
        return attrs

    def get(self, key: AttrKey, default: Optional[str] = None) -> Optional[str]:
        return self._values.get(key, default)

    def set(self, key: AttrKey, value: object) -> None:
        if not isinstance(key, AttrKey):
            raise GraphModelError(f"unknown presentation attribute: {key!r}")
        self._values[key] = str(value)

    def clear(self, key: AttrKey) -> None:
        self._values.pop(key, None)

    def set_raw(self, name: str, value: object) -> None:
        key = _ATTR_KEYS.get(name)
        if key is not None:
            self._values[key] = str(value)
        else:
            self.extras[name] = str(value)

    def copy(self) -> Attributes:
        return Attributes(self._values, self.extras)

    def items(self) -> Iterator[Tuple[str, str]]:
        for key in AttrKey:
            if key in self._values:
                yield key.value, self._values[key]
        for name in sorted(self.extras):
            yield name, self.extras[name]

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Attributes):
            return NotImplemented
        return self._values == other._values and self.extras == other.extras

    def __repr__(self) -> str:
        return f"Attributes({dict(self.items())!r})"


def strip_module_path(address: str) -> str:
    addr = address
    while True:
        stripped = _MODULE_PREFIX_RE.sub("", addr, count=1)
        if stripped == addr:
            return addr
        addr = stripped


def resource_type_of(address: str) -> str:
    """
    Resource type of a Terraform address: the segment before the first dot,
    after any module path and `data.` prefix are stripped.
    """
    addr = strip_module_path(address)
    if addr.startswith("data."):
        addr = addr[len("data.") :]
    return addr.split(".", 1)[0]


@dataclass(eq=False)
class Node:
    id: str
    address: str = ""
    attrs: Attributes = field(default_factory=Attributes)

    def __post_init__(self) -> None:
        if not self.address:
            self.address = self.id
        if AttrKey.LABEL not in self.attrs:
            self.attrs.set(AttrKey.LABEL, self.address)

    @property
    def resource_type(self) -> str:
        return resource_type_of(self.address)

    @property
    def label(self) -> str:
        return self.attrs.get(AttrKey.LABEL) or self.address


@dataclass(eq=False)
class Edge:
    src: str
    dst: str
    attrs: Attributes = field(default_factory=Attributes)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.src, self.dst)


@dataclass(eq=False)
class Cluster:
    id: str
    label: str
    node_id: Optional[str] = None
    attrs: Attributes = field(default_factory=Attributes)

    def __post_init__(self) -> None:
        if AttrKey.LABEL not in self.attrs:
            self.attrs.set(AttrKey.LABEL, self.label)


class ContainmentIndex:
    """
    Single-parent containment: node -> cluster, cluster -> parent cluster.
    Assigning a new parent silently supersedes the previous one.
    """

    def __init__(self) -> None:
        self._node_parent: Dict[str, str] = {}
        self._cluster_parent: Dict[str, str] = {}
        self._members: Dict[str, Set[str]] = {}
        self._children: Dict[str, Set[str]] = {}

    def register(self, cluster_id: str) -> None:
        self._members.setdefault(cluster_id, set())
        self._children.setdefault(cluster_id, set())

    def assign_node(self, node_id: str, cluster_id: Optional[str]) -> None:
        previous = self._node_parent.pop(node_id, None)
        if previous is not None:
            self._members[previous].discard(node_id)
        if cluster_id is None:
            return
        if cluster_id not in self._members:
            raise GraphModelError(f"unknown cluster: {cluster_id}")
        self._node_parent[node_id] = cluster_id
        self._members[cluster_id].add(node_id)

    def assign_cluster(self, cluster_id: str, parent_id: Optional[str]) -> None:
        if cluster_id not in self._children:
            raise GraphModelError(f"unknown cluster: {cluster_id}")
        if parent_id is not None:
            if parent_id not in self._children:
                raise GraphModelError(f"unknown cluster: {parent_id}")
            cursor: Optional[str] = parent_id
            while cursor is not None:
                if cursor == cluster_id:
                    raise GraphModelError(f"cluster {cluster_id} cannot be nested inside itself via {parent_id}")
                cursor = self._cluster_parent.get(cursor)
        previous = self._cluster_parent.pop(cluster_id, None)
        if previous is not None:
            self._children[previous].discard(cluster_id)
        if parent_id is None:
            return
        self._cluster_parent[cluster_id] = parent_id
        self._children[parent_id].add(cluster_id)

    def node_parent(self, node_id: str) -> Optional[str]:
        return self._node_parent.get(node_id)

    def cluster_parent(self, cluster_id: str) -> Optional[str]:
        return self._cluster_parent.get(cluster_id)

    def members(self, cluster_id: str) -> List[str]:
        return sorted(self._members.get(cluster_id, ()))

    def children(self, cluster_id: str) -> List[str]:
        return sorted(self._children.get(cluster_id, ()))

    def depth(self, cluster_id: str) -> int:
        """Top-level clusters have depth 1."""
        depth = 1
        cursor = self._cluster_parent.get(cluster_id)
        while cursor is not None:
            depth += 1
            cursor = self._cluster_parent.get(cursor)
        return depth

    def forget_node(self, node_id: str) -> None:
        self.assign_node(node_id, None)

    def forget_cluster(self, cluster_id: str) -> None:
        """Drop a cluster; its members and child clusters move up to its parent."""
        parent = self._cluster_parent.get(cluster_id)
        for node_id in list(self._members.get(cluster_id, ())):
            self.assign_node(node_id, parent)
        for child in list(self._children.get(cluster_id, ())):
            self.assign_cluster(child, parent)
        self.assign_cluster(cluster_id, None)
        self._members.pop(cluster_id, None)
        self._children.pop(cluster_id, None)


class Graph:
    """
    Directed dependency graph: an edge (u, v) means u depends on v.

    Edges are kept in three indices (forward, reverse, flat) that every
    mutation updates together. Parallel edges collapse into one.
    """

    def __init__(self, name: str = "G") -> None:
        self.name = name
        self.attrs: Dict[str, str] = {}
        self._nodes: Dict[str, Node] = {}
        self._out: Dict[str, Dict[str, Edge]] = {}
        self._in: Dict[str, Dict[str, Edge]] = {}
        self._edges: Dict[Tuple[str, str], Edge] = {}
        self._clusters: Dict[str, Cluster] = {}
        self.containment = ContainmentIndex()

    # -----
    # Nodes
    # -----
    def add_node(self, node: Node) -> Node:
        if node.id in self._nodes:
            raise GraphModelError(f"duplicate node id: {node.id}")
        self._nodes[node.id] = node
        self._out[node.id] = {}
        self._in[node.id] = {}
        return node

    def get_node(self, node_id: str) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise GraphModelError(f"unknown node: {node_id}") from None

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def remove_node(self, node_id: str) -> Node:
        node = self.get_node(node_id)
        for dst in list(self._out[node_id]):
            self.remove_edge(node_id, dst)
        for src in list(self._in[node_id]):
            self.remove_edge(src, node_id)
        self.containment.forget_node(node_id)
        del self._out[node_id]
        del self._in[node_id]
        del self._nodes[node_id]
        return node

    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def node_ids(self) -> List[str]:
        return sorted(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    # -----
    # Edges
    # -----
    def add_edge(self, src: str, dst: str, attrs: Optional[Attributes] = None) -> Edge:
        if src not in self._nodes:
            raise GraphModelError(f"unknown edge source: {src}")
        if dst not in self._nodes:
            raise GraphModelError(f"unknown edge destination: {dst}")
        existing = self._edges.get((src, dst))
        if existing is not None:
            return existing
        edge = Edge(src, dst, attrs.copy() if attrs is not None else Attributes())
        self._edges[(src, dst)] = edge
        self._out[src][dst] = edge
        self._in[dst][src] = edge
        return edge

    def remove_edge(self, src: str, dst: str) -> bool:
        edge = self._edges.pop((src, dst), None)
        if edge is None:
            return False
        del self._out[src][dst]
        del self._in[dst][src]
        return True

    def has_edge(self, src: str, dst: str) -> bool:
        return (src, dst) in self._edges

    def edges(self) -> List[Edge]:
        return list(self._edges.values())

    def out_edges(self, node_id: str) -> List[Edge]:
        self.get_node(node_id)
        return list(self._out[node_id].values())

    def in_edges(self, node_id: str) -> List[Edge]:
        self.get_node(node_id)
        return list(self._in[node_id].values())

    def successors(self, node_id: str) -> List[str]:
        return sorted(self._out[node_id])

    def predecessors(self, node_id: str) -> List[str]:
        return sorted(self._in[node_id])

    def out_degree(self, node_id: str) -> int:
        return len(self._out[node_id])

    def in_degree(self, node_id: str) -> int:
        return len(self._in[node_id])

    def sinks(self) -> List[str]:
        return sorted(n for n, out in self._out.items() if not out)

    def ancestors(self, node_id: str) -> Set[str]:
        """All nodes with a forward path to `node_id` (its transitive dependents)."""
        self.get_node(node_id)
        seen: Set[str] = set()
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            for src in self._in[current]:
                if src not in seen and src != node_id:
                    seen.add(src)
                    queue.append(src)
        return seen

    def bypass_node(self, node_id: str) -> Node:
        """Remove a node, connecting each predecessor to each successor."""
        preds = [p for p in self.predecessors(node_id) if p != node_id]
        succs = [s for s in self.successors(node_id) if s != node_id]
        node = self.remove_node(node_id)
        for src in preds:
            for dst in succs:
                if src != dst:
                    self.add_edge(src, dst)
        return node

    # --------
    # Clusters
    # --------
    def add_cluster(self, cluster: Cluster, parent: Optional[str] = None) -> Cluster:
        if cluster.id in self._clusters:
            raise GraphModelError(f"duplicate cluster id: {cluster.id}")
        if parent is not None:
            self.get_cluster(parent)
        self._clusters[cluster.id] = cluster
        self.containment.register(cluster.id)
        self.set_cluster_parent(cluster.id, parent)
        return cluster

    def get_cluster(self, cluster_id: str) -> Cluster:
        try:
            return self._clusters[cluster_id]
        except KeyError:
            raise GraphModelError(f"unknown cluster: {cluster_id}") from None

    def has_cluster(self, cluster_id: str) -> bool:
        return cluster_id in self._clusters

    def remove_cluster(self, cluster_id: str) -> Cluster:
        cluster = self.get_cluster(cluster_id)
        self.containment.forget_cluster(cluster_id)
        del self._clusters[cluster_id]
        return cluster

    def clusters(self) -> List[Cluster]:
        return list(self._clusters.values())

    def set_cluster_parent(self, cluster_id: str, parent: Optional[str]) -> None:
        self.get_cluster(cluster_id)
        self.containment.assign_cluster(cluster_id, parent)

    def assign(self, node_id: str, cluster_id: Optional[str]) -> None:
        self.get_node(node_id)
        if cluster_id is not None:
            self.get_cluster(cluster_id)
        self.containment.assign_node(node_id, cluster_id)

    def cluster_of(self, node_id: str) -> Optional[str]:
        return self.containment.node_parent(node_id)

    def top_level_clusters(self) -> List[str]:
        return sorted(c for c in self._clusters if self.containment.cluster_parent(c) is None)

    def top_level_nodes(self) -> List[str]:
        return sorted(n for n in self._nodes if self.containment.node_parent(n) is None)

    def cluster_depth(self, cluster_id: str) -> int:
        self.get_cluster(cluster_id)
        return self.containment.depth(cluster_id)

    def max_cluster_depth(self) -> int:
        return max((self.containment.depth(c) for c in self._clusters), default=0)
