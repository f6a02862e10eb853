from __future__ import annotations

import subprocess
from datetime import datetime
from pathlib import Path
from shutil import which
from typing import Optional

from ..config import OUTPUT_FORMATS
from ..graph.dot import to_dot
from ..graph.model import Graph
from ..logging import get_logger
from ..util.errors import ConfigError, RenderError

LOG = get_logger(__name__)

DEFAULT_DPI = 96


def output_path(base_name: str, fmt: str, *, timestamp: bool = True, now: Optional[datetime] = None) -> Path:
    if timestamp:
        stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
        return Path(f"{base_name}_{stamp}.{fmt}")
    return Path(f"{base_name}.{fmt}")


def is_graphviz_available() -> bool:
    return which("dot") is not None


def save_graph_as(
    graph: Graph,
    base_name: str,
    fmt: str,
    *,
    dpi: int = DEFAULT_DPI,
    timestamp: bool = True,
) -> Path:
    """
    Render `graph` to `<base_name>_<timestamp>.<fmt>`.

    `dot` writes the graph description itself; other formats are produced
    by piping it through the Graphviz `dot` binary.
    """
    fmt = fmt.lower()
    if fmt not in OUTPUT_FORMATS:
        raise ConfigError(f"unsupported format: {fmt}")

    text = to_dot(graph)
    path = output_path(base_name, fmt, timestamp=timestamp)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise RenderError(f"error creating output directory {path.parent}: {e}") from e

    if fmt == "dot":
        path.write_text(text, encoding="utf-8")
        LOG.info("Wrote graph description", extra={"path": str(path)})
        return path

    dot = which("dot")
    if not dot:
        raise RenderError(
            "Rendering requested but Graphviz 'dot' was not found on PATH. "
            "Install Graphviz or use --format dot."
        )
    proc = subprocess.run(
        [dot, f"-T{fmt}", f"-Gdpi={dpi}", "-o", str(path)],
        input=text,
        text=True,
        capture_output=True,
    )
    if proc.returncode != 0:
        output = "\n".join(s for s in ((proc.stdout or "").strip(), (proc.stderr or "").strip()) if s)
        raise RenderError(f"error converting DOT to {fmt}: dot exited with code {proc.returncode}", output)
    LOG.info("Rendered diagram", extra={"path": str(path), "format": fmt})
    return path
