from __future__ import annotations

import re
from typing import Any, Dict, Iterator, List, Optional, Tuple

import pydot

from ..logging import get_logger
from ..util.errors import GraphParseError
from .model import AttrKey, Attributes, Graph, Node, strip_module_path

LOG = get_logger(__name__)

# Statement-level defaults pydot reports as nodes
_PSEUDO_NODES = {"node", "edge", "graph"}

_ROOT_PREFIX = "[root] "
_CLOSE_SUFFIX = " (close)"
_PHASE_SUFFIX_RE = re.compile(r"\s+\((expand|close|prepare state|destroy|orphan|deposed [^)]*)\)$")
_NON_RESOURCE_RE = re.compile(r"^(root$|provider(\[|\.)|var\.|local\.|output\.|meta\.|module\.[^.]+(\[[^\]]*\])?$)")
_DOT_KEYWORDS = {"node", "edge", "graph", "digraph", "subgraph", "strict"}
_PLAIN_ID_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_UNESCAPE_RE = re.compile(r'\\(["\\])')


def _unquote(value: Any) -> str:
    text = str(value).strip()
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        text = _UNESCAPE_RE.sub(r"\1", text[1:-1])
    return text


def normalize_address(raw: str) -> str:
    """Strip the decorations `terraform graph` puts around resource addresses."""
    text = _unquote(raw)
    if text.startswith(_ROOT_PREFIX):
        text = text[len(_ROOT_PREFIX) :]
    return _PHASE_SUFFIX_RE.sub("", text).strip()


def is_resource_address(address: str) -> bool:
    if not address:
        return False
    inner = strip_module_path(address)
    if _NON_RESOURCE_RE.match(inner):
        return False
    return "." in inner


def _walk(graph: Any) -> Iterator[Any]:
    yield graph
    for sub in graph.get_subgraphs():
        yield from _walk(sub)


def _load_pydot(text: str) -> Any:
    try:
        graphs = pydot.graph_from_dot_data(text)
    except Exception as e:  # pyparsing raises several unrelated types
        raise GraphParseError(f"failed to parse graph data: {e}") from e
    if not graphs:
        raise GraphParseError("failed to parse graph data: no graph found")
    if len(graphs) > 1:
        LOG.warning("Graph description holds %s graphs; using the first", len(graphs))
    return graphs[0]


def parse_dot(text: str, *, keep_all_nodes: bool = False) -> Graph:
    """
    Parse a `terraform graph` DOT description into a Graph.

    Node ids are normalized to resource addresses; nodes that normalize to
    the same address merge. Unless keep_all_nodes is set, Terraform
    internals (providers, variables, outputs, ...) are contracted away so
    dependencies that run through them are kept as direct edges.
    """
    source = _load_pydot(text)
    graph = Graph(name=_unquote(source.get_name() or "G") or "G")
    for key, value in (source.get_attributes() or {}).items():
        graph.attrs[key] = _unquote(value)

    raw_nodes: Dict[str, Dict[str, str]] = {}
    raw_edges: List[Tuple[str, str]] = []
    for sub in _walk(source):
        for pnode in sub.get_nodes():
            name = _unquote(pnode.get_name())
            if name in _PSEUDO_NODES:
                continue
            attrs = {k: _unquote(v) for k, v in (pnode.get_attributes() or {}).items()}
            raw_nodes.setdefault(name, {}).update(attrs)
        for pedge in sub.get_edges():
            src, dst = pedge.get_source(), pedge.get_destination()
            if not isinstance(src, str) or not isinstance(dst, str):
                LOG.debug("Skipping edge with subgraph endpoint")
                continue
            raw_edges.append((_unquote(src), _unquote(dst)))

    for src, dst in raw_edges:
        raw_nodes.setdefault(src, {})
        raw_nodes.setdefault(dst, {})

    address_of: Dict[str, Optional[str]] = {}
    for name in sorted(raw_nodes):
        attrs = raw_nodes[name]
        # labels may carry decoration text; the statement id is authoritative
        address = normalize_address(name) or normalize_address(attrs.get("label") or "")
        if name.endswith(_CLOSE_SUFFIX):
            # teardown bookkeeping; its edges point against the dependency direction
            if not keep_all_nodes:
                address_of[name] = None
                continue
            address = normalize_address(name) + _CLOSE_SUFFIX
        address_of[name] = address
        if address in graph:
            continue
        node_attrs = Attributes.from_mapping({k: v for k, v in attrs.items() if k != "label"})
        node_attrs.set(AttrKey.LABEL, address)
        graph.add_node(Node(id=address, address=address, attrs=node_attrs))

    for src, dst in raw_edges:
        a, b = address_of[src], address_of[dst]
        if a is not None and b is not None and a != b:
            graph.add_edge(a, b)

    if not keep_all_nodes:
        dropped = 0
        for node_id in graph.node_ids():
            if not is_resource_address(node_id):
                graph.bypass_node(node_id)
                dropped += 1
        if dropped:
            LOG.debug("Contracted %s non-resource node(s)", dropped)

    return graph


def _quote(value: str) -> str:
    if _PLAIN_ID_RE.match(value) and value.lower() not in _DOT_KEYWORDS:
        return value
    # backslashes first so a trailing one cannot escape the closing quote
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _attr_list(items: Iterator[Tuple[str, str]]) -> str:
    rendered = [f"{k}={_quote(v)}" for k, v in items]
    if not rendered:
        return ""
    return " [" + ", ".join(rendered) + "]"


def _node_line(graph: Graph, node_id: str, indent: str) -> str:
    node = graph.get_node(node_id)
    return f"{indent}{_quote(node.id)}{_attr_list(node.attrs.items())};"


def _cluster_lines(graph: Graph, cluster_id: str, indent: str) -> List[str]:
    cluster = graph.get_cluster(cluster_id)
    lines = [f"{indent}subgraph {_quote('cluster_' + cluster.id)} {{"]
    inner = indent + "  "
    for key, value in cluster.attrs.items():
        lines.append(f"{inner}{key}={_quote(value)};")
    for child in graph.containment.children(cluster_id):
        lines.extend(_cluster_lines(graph, child, inner))
    for node_id in graph.containment.members(cluster_id):
        lines.append(_node_line(graph, node_id, inner))
    lines.append(f"{indent}}}")
    return lines


def to_dot(graph: Graph, *, name: Optional[str] = None) -> str:
    """Serialize nodes, nested clusters and edges in a stable order."""
    lines = [f"digraph {_quote(name or graph.name)} {{"]
    for key in sorted(graph.attrs):
        lines.append(f"  {key}={_quote(graph.attrs[key])};")
    for cluster_id in graph.top_level_clusters():
        lines.extend(_cluster_lines(graph, cluster_id, "  "))
    for node_id in graph.top_level_nodes():
        lines.append(_node_line(graph, node_id, "  "))
    for edge in sorted(graph.edges(), key=lambda e: e.key):
        lines.append(f"  {_quote(edge.src)} -> {_quote(edge.dst)}{_attr_list(edge.attrs.items())};")
    lines.append("}")
    return "\n".join(lines) + "\n"
