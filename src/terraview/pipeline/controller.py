from __future__ import annotations

import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, Callable, Dict, Optional

from ..config import ViewConfig
from ..graph.dot import parse_dot
from ..graph.model import Graph
from ..graph.source import obtain_graph, read_graph_file
from ..logging import get_logger
from ..state.base import StateLookup
from .cluster import ClusterReport, cluster_containers
from .decorate import DecorationReport, decorate
from .expand import ExpansionReport, expand_instances
from .reconcile import ReconcileReport, reconcile_instance_edges

LOG = get_logger(__name__)

STAGES = ("expand", "reconcile", "cluster", "decorate")

StageHook = Callable[[str, str], None]


@dataclass
class PipelineReport:
    expansion: ExpansionReport = field(default_factory=ExpansionReport)
    reconcile: ReconcileReport = field(default_factory=ReconcileReport)
    clustering: ClusterReport = field(default_factory=ClusterReport)
    decoration: DecorationReport = field(default_factory=DecorationReport)
    durations_ms: Dict[str, int] = field(default_factory=dict)

    @property
    def warnings(self) -> list[str]:
        out: list[str] = []
        for template, reason in sorted(self.expansion.skipped.items()):
            out.append(f"expansion skipped for {template}: {reason}")
        for src, dst in self.reconcile.ambiguous:
            out.append(f"instances of {src} and {dst} do not correspond one to one")
        if self.clustering.ambiguous_root:
            out.append(f"no unique sink; traversal roots: {', '.join(self.clustering.roots)}")
        for node_id, reason in sorted(self.decoration.lookup_misses.items()):
            out.append(f"attributes unavailable for {node_id}: {reason}")
        return out


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    **extra: Any,
) -> Optional[int]:
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(step)
        elif phase in {"complete", "error", "warning"}:
            duration_ms = timers.finish(step)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)
    return duration_ms


class GraphPipeline:
    """
    Runs expansion, reconciliation, clustering and decoration in order over
    one graph. Every stage mutates the graph in place.
    """

    def __init__(self, config: ViewConfig, state: StateLookup, *, on_stage: Optional[StageHook] = None) -> None:
        self.config = config
        self.state = state
        self._on_stage = on_stage

    def _begin(self, step: str, timers: _StepTimers, message: str) -> None:
        if self._on_stage:
            self._on_stage(step, "start")
        _log_event(LOG, logging.DEBUG, message, step=step, phase="start", timers=timers)

    def _end(
        self,
        step: str,
        timers: _StepTimers,
        report: PipelineReport,
        message: str,
        *,
        issues: int = 0,
        **extra: Any,
    ) -> None:
        if issues:
            duration = _log_event(
                LOG, logging.WARNING, f"{message} with {issues} warning(s)", step=step, phase="warning", timers=timers, **extra
            )
        else:
            duration = _log_event(LOG, logging.INFO, message, step=step, phase="complete", timers=timers, **extra)
        if duration is not None:
            report.durations_ms[step] = duration
        if self._on_stage:
            self._on_stage(step, "complete")

    def run(self, graph: Graph) -> PipelineReport:
        cfg = self.config
        timers = _StepTimers()
        report = PipelineReport()

        self._begin("expand", timers, "Expanding multi-instance resources")
        report.expansion = expand_instances(graph, self.state, strict=cfg.strict)
        self._end(
            "expand",
            timers,
            report,
            "Expansion complete",
            issues=len(report.expansion.skipped),
            expanded=len(report.expansion.expanded),
            skipped=len(report.expansion.skipped),
        )

        self._begin("reconcile", timers, "Reconciling instance edges")
        report.reconcile = reconcile_instance_edges(graph, mismatched=cfg.reconcile_mismatched)
        self._end(
            "reconcile",
            timers,
            report,
            "Reconciliation complete",
            issues=len(report.reconcile.ambiguous),
            removed=len(report.reconcile.removed),
            ambiguous=len(report.reconcile.ambiguous),
        )

        self._begin("cluster", timers, "Clustering containers")
        report.clustering = cluster_containers(graph, cfg.grouping_elements, strict=cfg.strict)
        self._end(
            "cluster",
            timers,
            report,
            "Clustering complete",
            issues=int(report.clustering.ambiguous_root),
            clusters=len(report.clustering.clusters),
            max_depth=report.clustering.max_depth,
        )

        self._begin("decorate", timers, "Decorating nodes and clusters")
        report.decoration = decorate(
            graph,
            self.state,
            important_attributes=cfg.important_attributes,
            known_providers=cfg.known_providers,
            icon_path=cfg.icon_path,
            label_location=cfg.label_location,
            base_margin=cfg.base_margin,
            node_fontsize=cfg.node_fontsize,
            cluster_fontsize=cfg.cluster_fontsize,
            strict=cfg.strict,
        )
        self._end(
            "decorate",
            timers,
            report,
            "Decoration complete",
            issues=len(report.decoration.lookup_misses),
            icons=report.decoration.icons,
            lookup_misses=len(report.decoration.lookup_misses),
        )
        return report


def load_graph(config: ViewConfig) -> Graph:
    if config.graph_file is not None:
        text = read_graph_file(config.graph_file)
    else:
        text = obtain_graph(config.path)
    graph = parse_dot(text, keep_all_nodes=config.keep_all_nodes)
    LOG.info("Loaded graph", extra={"nodes": len(graph), "edges": len(graph.edges())})
    return graph


def prepare_graph(
    config: ViewConfig,
    state: StateLookup,
    *,
    on_stage: Optional[StageHook] = None,
) -> tuple[Graph, PipelineReport]:
    """Obtain, parse and run the full pipeline; returns the decorated graph and its report."""
    graph = load_graph(config)
    report = GraphPipeline(config, state, on_stage=on_stage).run(graph)
    return graph, report
