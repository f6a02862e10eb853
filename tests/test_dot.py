from __future__ import annotations

from pathlib import Path

import pydot
import pytest

from terraview.graph.dot import is_resource_address, normalize_address, parse_dot, to_dot
from terraview.graph.model import AttrKey, Cluster
from terraview.util.errors import GraphParseError

from conftest import edge_set, make_graph

FIXTURES = Path(__file__).parent / "fixtures"


def test_normalize_address_strips_terraform_decorations() -> None:
    assert normalize_address('"[root] azurerm_subnet.app (expand)"') == "azurerm_subnet.app"
    assert normalize_address("[root] module.net.aws_vpc.main (expand)") == "module.net.aws_vpc.main"
    assert normalize_address("azurerm_subnet.app") == "azurerm_subnet.app"


@pytest.mark.parametrize(
    "address,expected",
    [
        ("azurerm_subnet.app", True),
        ("module.net.aws_vpc.main", True),
        ("data.azurerm_client_config.current", True),
        ('provider["registry.terraform.io/hashicorp/azurerm"]', False),
        ("var.location", False),
        ("local.tags", False),
        ("output.ip", False),
        ("module.net", False),
        ("root", False),
        ("", False),
    ],
)
def test_is_resource_address(address: str, expected: bool) -> None:
    assert is_resource_address(address) is expected


def test_parse_current_terraform_graph() -> None:
    graph = parse_dot((FIXTURES / "network.dot").read_text(encoding="utf-8"))

    assert graph.node_ids() == [
        "azurerm_linux_virtual_machine.web",
        "azurerm_network_interface.nic",
        "azurerm_resource_group.rg",
        "azurerm_subnet.app",
        "azurerm_virtual_network.vnet",
    ]
    assert len(graph.edges()) == 6
    assert graph.attrs["rankdir"] == "RL"
    assert graph.sinks() == ["azurerm_resource_group.rg"]


def test_parse_legacy_graph_contracts_internal_nodes() -> None:
    graph = parse_dot((FIXTURES / "legacy.dot").read_text(encoding="utf-8"))

    assert graph.node_ids() == [
        "azurerm_linux_virtual_machine.vm",
        "azurerm_network_interface.nic",
        "azurerm_resource_group.rg",
        "azurerm_subnet.app",
        "azurerm_virtual_network.vnet",
    ]
    assert edge_set(graph) == [
        ("azurerm_linux_virtual_machine.vm", "azurerm_network_interface.nic"),
        ("azurerm_network_interface.nic", "azurerm_subnet.app"),
        ("azurerm_subnet.app", "azurerm_virtual_network.vnet"),
        ("azurerm_virtual_network.vnet", "azurerm_resource_group.rg"),
    ]
    assert graph.get_node("azurerm_subnet.app").attrs.extras["shape"] == "box"


def test_parse_keeps_internal_nodes_on_request() -> None:
    graph = parse_dot((FIXTURES / "legacy.dot").read_text(encoding="utf-8"), keep_all_nodes=True)

    assert "var.location" in graph
    assert graph.has_edge("azurerm_resource_group.rg", "var.location")


def test_dependencies_through_internal_nodes_become_direct_edges() -> None:
    text = """
    digraph {
      "aws_instance.web" -> "local.subnet_id";
      "local.subnet_id" -> "aws_subnet.main";
    }
    """
    graph = parse_dot(text)

    assert edge_set(graph) == [("aws_instance.web", "aws_subnet.main")]


def test_parse_adds_nodes_only_named_by_edges() -> None:
    graph = parse_dot('digraph { "a_b.x" -> "a_b.y"; }')

    assert graph.node_ids() == ["a_b.x", "a_b.y"]
    assert graph.get_node("a_b.y").label == "a_b.y"


def test_malformed_graph_raises_parse_error() -> None:
    with pytest.raises(GraphParseError):
        parse_dot("digraph { a -> ")


def test_empty_input_raises_parse_error() -> None:
    with pytest.raises(GraphParseError):
        parse_dot("")


def test_to_dot_writes_nested_clusters_before_top_level_nodes() -> None:
    graph = make_graph(["aws_vpc.main", "aws_subnet.a", "aws_instance.web", "aws_s3_bucket.logs"])
    graph.add_edge("aws_subnet.a", "aws_vpc.main")
    graph.add_edge("aws_instance.web", "aws_subnet.a")
    graph.add_cluster(Cluster(id="aws_vpc.main", label="aws_vpc.main", node_id="aws_vpc.main"))
    graph.add_cluster(Cluster(id="aws_subnet.a", label="aws_subnet.a", node_id="aws_subnet.a"), parent="aws_vpc.main")
    graph.assign("aws_vpc.main", "aws_vpc.main")
    graph.assign("aws_subnet.a", "aws_subnet.a")
    graph.assign("aws_instance.web", "aws_subnet.a")

    lines = to_dot(graph).splitlines()

    assert lines[0] == "digraph G {"
    assert lines[1] == '  subgraph "cluster_aws_vpc.main" {'
    assert lines[2] == '    label="aws_vpc.main";'
    assert lines[3] == '    subgraph "cluster_aws_subnet.a" {'
    assert '      "aws_instance.web" [label="aws_instance.web"];' in lines
    assert '  "aws_s3_bucket.logs" [label="aws_s3_bucket.logs"];' in lines
    assert lines[-3:] == [
        '  "aws_instance.web" -> "aws_subnet.a";',
        '  "aws_subnet.a" -> "aws_vpc.main";',
        "}",
    ]


def test_to_dot_escapes_quotes_and_newlines() -> None:
    graph = make_graph(['aws_subnet.a["x"]'])
    graph.get_node('aws_subnet.a["x"]').attrs.set(AttrKey.LABEL, 'aws_subnet.a["x"]\ncidr: 10.0.0.0/24')

    text = to_dot(graph)

    assert '"aws_subnet.a[\\"x\\"]" [label="aws_subnet.a[\\"x\\"]\\ncidr: 10.0.0.0/24"];' in text


def test_to_dot_output_parses_back() -> None:
    source = parse_dot((FIXTURES / "network.dot").read_text(encoding="utf-8"))

    again = parse_dot(to_dot(source))

    assert again.node_ids() == source.node_ids()
    assert edge_set(again) == edge_set(source)


def test_to_dot_keeps_trailing_backslash_inside_the_string() -> None:
    graph = make_graph(["azurerm_storage_account.sa", "azurerm_resource_group.rg"])
    graph.add_edge("azurerm_storage_account.sa", "azurerm_resource_group.rg")
    graph.get_node("azurerm_storage_account.sa").attrs.set(AttrKey.LABEL, "azurerm_storage_account.sa\npath: C:\\data\\")

    text = to_dot(graph)

    assert '[label="azurerm_storage_account.sa\\npath: C:\\\\data\\\\"];' in text
    assert pydot.graph_from_dot_data(text)
    again = parse_dot(text)
    assert again.node_ids() == graph.node_ids()
    assert edge_set(again) == edge_set(graph)


def test_escaped_backslashes_in_ids_read_back_unchanged() -> None:
    graph = make_graph(['aws_s3_object.o["dir\\\\"]'])

    again = parse_dot(to_dot(graph))

    assert again.node_ids() == ['aws_s3_object.o["dir\\\\"]']
