from __future__ import annotations

from .dot import parse_dot, to_dot
from .model import AttrKey, Attributes, Cluster, ContainmentIndex, Edge, Graph, Node, resource_type_of

__all__ = [
    "AttrKey",
    "Attributes",
    "Cluster",
    "ContainmentIndex",
    "Edge",
    "Graph",
    "Node",
    "parse_dot",
    "resource_type_of",
    "to_dot",
]
