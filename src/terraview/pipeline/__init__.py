from __future__ import annotations

from .cluster import cluster_containers, find_roots, traversal_order
from .controller import GraphPipeline, PipelineReport, load_graph, prepare_graph
from .decorate import decorate
from .expand import expand_instances, expand_node
from .reconcile import reconcile_instance_edges

__all__ = [
    "GraphPipeline",
    "PipelineReport",
    "cluster_containers",
    "decorate",
    "expand_instances",
    "expand_node",
    "find_roots",
    "load_graph",
    "prepare_graph",
    "reconcile_instance_edges",
    "traversal_order",
]
