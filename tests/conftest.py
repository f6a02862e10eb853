from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pytest

from terraview.graph.model import Graph, Node
from terraview.state.tfstate import StateIndex


def make_graph(nodes: Iterable[str], edges: Iterable[Tuple[str, str]] = ()) -> Graph:
    graph = Graph()
    for address in nodes:
        graph.add_node(Node(id=address, address=address))
    for src, dst in edges:
        graph.add_edge(src, dst)
    return graph


def make_state(
    instances: Optional[Mapping[str, Sequence[str]]] = None,
    attributes: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> StateIndex:
    attrs: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in (attributes or {}).items()}
    for addresses in (instances or {}).values():
        for address in addresses:
            attrs.setdefault(address, {})
    return StateIndex(instances, attrs)


@pytest.fixture
def network_graph() -> Graph:
    # vm -> nic -> subnet -> vnet -> rg ; nic -> rg ; vm -> rg
    return make_graph(
        [
            "azurerm_resource_group.rg",
            "azurerm_virtual_network.vnet",
            "azurerm_subnet.app",
            "azurerm_network_interface.nic",
            "azurerm_linux_virtual_machine.vm",
        ],
        [
            ("azurerm_virtual_network.vnet", "azurerm_resource_group.rg"),
            ("azurerm_subnet.app", "azurerm_virtual_network.vnet"),
            ("azurerm_network_interface.nic", "azurerm_subnet.app"),
            ("azurerm_network_interface.nic", "azurerm_resource_group.rg"),
            ("azurerm_linux_virtual_machine.vm", "azurerm_network_interface.nic"),
            ("azurerm_linux_virtual_machine.vm", "azurerm_resource_group.rg"),
        ],
    )


def edge_set(graph: Graph) -> List[Tuple[str, str]]:
    return sorted(e.key for e in graph.edges())
