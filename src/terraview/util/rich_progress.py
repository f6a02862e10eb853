from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn

_STAGE_LABELS = {
    "expand": "Expanding instances",
    "reconcile": "Reconciling edges",
    "cluster": "Clustering containers",
    "decorate": "Decorating",
}


class StageProgress:
    """Transient progress bar over the pipeline stages; a no-op when disabled."""

    def __init__(self, stages: Sequence[str], *, enabled: bool, console: Optional[Console] = None) -> None:
        self._enabled = bool(enabled)
        self._stages = list(stages)
        self._console = console or Console(stderr=True)
        self._progress: Optional[Progress] = None
        self._task: Optional[Any] = None
        self._done: Dict[str, bool] = {}
        if self._enabled:
            self._progress = Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TimeElapsedColumn(),
                console=self._console,
                transient=True,
            )

    def __enter__(self) -> StageProgress:
        if self._progress is not None:
            self._progress.start()
            self._task = self._progress.add_task("Preparing graph", total=len(self._stages))
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        if self._progress is not None:
            self._progress.stop()

    def __call__(self, stage: str, phase: str) -> None:
        if self._progress is None or self._task is None:
            return
        if phase == "start":
            self._progress.update(self._task, description=_STAGE_LABELS.get(stage, stage))
        elif phase == "complete" and not self._done.get(stage):
            self._done[stage] = True
            self._progress.advance(self._task)
