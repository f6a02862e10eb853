from __future__ import annotations

import subprocess
from pathlib import Path
from shutil import which

from ..logging import get_logger
from ..util.errors import SourceUnavailableError

LOG = get_logger(__name__)


def obtain_graph(dir_path: Path) -> str:
    """Run `terraform graph` in `dir_path` and return its DOT output."""
    abs_dir = Path(dir_path).resolve()
    if not abs_dir.is_dir():
        raise SourceUnavailableError(f"Terraform directory not found: {abs_dir}")

    terraform = which("terraform")
    if not terraform:
        raise SourceUnavailableError(
            "Graph source requested but 'terraform' was not found on PATH. "
            "Install Terraform or pass --graph-file with pre-generated DOT."
        )

    LOG.debug("Running terraform graph", extra={"cwd": str(abs_dir)})
    try:
        proc = subprocess.run(
            [terraform, "graph"],
            cwd=str(abs_dir),
            text=True,
            capture_output=True,
        )
    except OSError as e:
        raise SourceUnavailableError(f"error running 'terraform graph' in {abs_dir}: {e}") from e
    if proc.returncode != 0:
        stderr = (proc.stderr or "").strip()
        stdout = (proc.stdout or "").strip()
        detail = stderr or stdout or f"terraform exited with code {proc.returncode}"
        raise SourceUnavailableError(f"error running 'terraform graph' in {abs_dir}: {detail}")
    return proc.stdout


def read_graph_file(path: Path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise SourceUnavailableError(f"Failed to read graph file {path}: {e}") from e
