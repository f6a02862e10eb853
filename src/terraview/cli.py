from __future__ import annotations

import sys
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from .config import ViewConfig, dump_config, load_view_config
from .export.render import is_graphviz_available, save_graph_as
from .graph.dot import to_dot
from .graph.model import Graph
from .logging import LogConfig, get_logger, setup_logging
from .pipeline.controller import STAGES, PipelineReport, prepare_graph
from .state.base import StateLookup
from .state.tfstate import EMPTY_STATE, load_state
from .util.errors import ConfigError, RenderError, as_exit_code
from .util.rich_progress import StageProgress

LOG = get_logger(__name__)


def _load_state(cfg: ViewConfig) -> StateLookup:
    if cfg.state is None:
        LOG.info("No state file; skipping instance expansion and attribute labels")
        return EMPTY_STATE
    return load_state(cfg.state)


def _prepare(cfg: ViewConfig) -> tuple[Graph, PipelineReport]:
    LOG.debug("Effective configuration", extra={"config": dump_config(cfg)})
    state = _load_state(cfg)
    with StageProgress(STAGES, enabled=cfg.progress) as progress:
        return prepare_graph(cfg, state, on_stage=progress)


def cmd_print(cfg: ViewConfig) -> int:
    if cfg.output == "-" and cfg.format != "dot":
        raise ConfigError(f"--output - streams DOT only; choose --format dot or an output path for {cfg.format}")
    if cfg.format != "dot" and not is_graphviz_available():
        raise RenderError(
            "Rendering requested but Graphviz 'dot' was not found on PATH. Install Graphviz or use --format dot."
        )
    graph, report = _prepare(cfg)
    for warning in report.warnings:
        LOG.warning(warning)

    if cfg.format == "dot" and cfg.output == "-":
        sys.stdout.write(to_dot(graph))
        return 0
    path = save_graph_as(graph, cfg.output, cfg.format, dpi=cfg.dpi)
    print(f"Diagram written to {path}")
    return 0


def _cluster_table(graph: Graph) -> Table:
    table = Table(title="Clusters")
    table.add_column("Cluster")
    table.add_column("Parent")
    table.add_column("Depth", justify="right")
    table.add_column("Members")
    for cluster in sorted(graph.clusters(), key=lambda c: (graph.cluster_depth(c.id), c.id)):
        parent = graph.containment.cluster_parent(cluster.id)
        members: List[str] = graph.containment.members(cluster.id)
        table.add_row(
            cluster.label,
            parent or "-",
            str(graph.cluster_depth(cluster.id)),
            "\n".join(members) or "-",
        )
    return table


def cmd_inspect(cfg: ViewConfig, console: Optional[Console] = None) -> int:
    graph, report = _prepare(cfg)
    console = console or Console()
    console.print(_cluster_table(graph))
    top_level = graph.top_level_nodes()
    if top_level:
        console.print(f"Top-level nodes: {', '.join(top_level)}")
    console.print(
        f"Nodes: {len(graph)}  Edges: {len(graph.edges())}  "
        f"Expanded: {len(report.expansion.expanded)}  Pruned edges: {len(report.reconcile.removed)}"
    )
    for warning in report.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    try:
        command, cfg = load_view_config(argv=argv)
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        if command == "print":
            code = cmd_print(cfg)
        elif command == "inspect":
            code = cmd_inspect(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Piping DOT output into `head` and similar tools
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        LOG.error("Execution failed: %s", e, extra={"error": str(e)})
        LOG.debug("Traceback", exc_info=True)
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
