from __future__ import annotations

from terraview.config import ViewConfig
from terraview.graph.dot import parse_dot
from terraview.pipeline import GraphPipeline
from terraview.pipeline.expand import expand_instances
from terraview.pipeline.reconcile import reconcile_instance_edges, split_marker

from conftest import edge_set, make_graph, make_state


def test_split_marker() -> None:
    assert split_marker("aws_instance.web[1]") == ("aws_instance.web", "1")
    assert split_marker('aws_instance.web["blue"]') == ("aws_instance.web", '"blue"')
    assert split_marker("aws_instance.web") == ("aws_instance.web", None)


def test_only_matching_instance_pairs_remain_connected() -> None:
    graph = make_graph(["a.res", "b.res"], [("a.res", "b.res")])
    state = make_state({"a.res": ["a.res[0]", "a.res[1]"], "b.res": ["b.res[0]", "b.res[1]"]})
    expand_instances(graph, state)

    report = reconcile_instance_edges(graph)

    assert edge_set(graph) == [("a.res[0]", "b.res[0]"), ("a.res[1]", "b.res[1]")]
    assert sorted(report.removed) == [("a.res[0]", "b.res[1]"), ("a.res[1]", "b.res[0]")]
    assert report.ambiguous == []
    assert graph.successors("a.res[0]") == ["b.res[0]"]
    assert graph.predecessors("b.res[1]") == ["a.res[1]"]


def test_string_keys_match_textually() -> None:
    graph = make_graph(
        ['a.r["blue"]', 'a.r["green"]', 'b.r["blue"]', 'b.r["green"]'],
        [
            ('a.r["blue"]', 'b.r["blue"]'),
            ('a.r["blue"]', 'b.r["green"]'),
            ('a.r["green"]', 'b.r["blue"]'),
            ('a.r["green"]', 'b.r["green"]'),
        ],
    )

    reconcile_instance_edges(graph)

    assert edge_set(graph) == [('a.r["blue"]', 'b.r["blue"]'), ('a.r["green"]', 'b.r["green"]')]


def test_edges_with_one_indexed_endpoint_are_untouched() -> None:
    graph = make_graph(
        ["vm.web[0]", "vm.web[1]", "nic.main"],
        [("vm.web[0]", "nic.main"), ("vm.web[1]", "nic.main")],
    )

    report = reconcile_instance_edges(graph)

    assert len(graph.edges()) == 2
    assert report.removed == []


def test_mismatched_instance_sets_are_flagged_and_pruned_by_default() -> None:
    graph = make_graph(
        ["a.r[0]", "a.r[1]", "b.r[0]"],
        [("a.r[0]", "b.r[0]"), ("a.r[1]", "b.r[0]")],
    )

    report = reconcile_instance_edges(graph)

    assert report.ambiguous == [("a.r", "b.r")]
    assert edge_set(graph) == [("a.r[0]", "b.r[0]")]


def test_mismatched_instance_sets_can_be_kept() -> None:
    graph = make_graph(
        ["a.r[0]", "a.r[1]", "b.r[0]"],
        [("a.r[0]", "b.r[0]"), ("a.r[1]", "b.r[0]")],
    )

    report = reconcile_instance_edges(graph, mismatched="keep")

    assert report.ambiguous == [("a.r", "b.r")]
    assert report.removed == []
    assert len(graph.edges()) == 2


def test_edges_to_provider_nodes_survive_with_all_nodes_kept() -> None:
    provider = 'provider["registry.terraform.io/hashicorp/aws"]'
    graph = parse_dot(
        'digraph { "aws_instance.web" -> "provider[\\"registry.terraform.io/hashicorp/aws\\"]"; }',
        keep_all_nodes=True,
    )
    state = make_state({"aws_instance.web": ["aws_instance.web[0]", "aws_instance.web[1]"]})

    report = GraphPipeline(ViewConfig(keep_all_nodes=True), state).run(graph)

    assert edge_set(graph) == [("aws_instance.web[0]", provider), ("aws_instance.web[1]", provider)]
    assert report.reconcile.removed == []
    assert report.reconcile.ambiguous == []


def test_bracketed_internal_nodes_are_not_instances() -> None:
    graph = make_graph(
        ["aws_instance.web[0]", 'module.net["a"]', 'provider["registry.terraform.io/hashicorp/aws"]'],
        [
            ("aws_instance.web[0]", 'module.net["a"]'),
            ("aws_instance.web[0]", 'provider["registry.terraform.io/hashicorp/aws"]'),
        ],
    )

    report = reconcile_instance_edges(graph)

    assert len(graph.edges()) == 2
    assert report.ambiguous == []
