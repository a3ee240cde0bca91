from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from chkpt_mcmc.pipeline.planner import CheckpointPlan
from chkpt_mcmc.sampler.interfaces import Phase


def format_progress(plan: CheckpointPlan, index: int, phase: Phase) -> str:
    """One progress line for checkpoint `index`; pure, no I/O."""
    return (
        f"Chkpt: {index} / {plan.total_chkpts}; "
        f"Iteration: {plan.iterations_done(index)} / {plan.total_iterations} ({phase.value})"
    )


@dataclass(frozen=True)
class Ui:
    console: Console
    progress: Progress

    def log(self, message: str) -> None:
        self.console.print(message, highlight=False)

    def checkpoint_task(self, plan: CheckpointPlan, completed: int) -> TaskID:
        return self.progress.add_task("Checkpoints", total=plan.total_chkpts, completed=completed)


@contextmanager
def progress_ui(console: Console | None = None) -> Iterator[Ui]:
    console = console or Console()
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
        transient=False,
    )
    with progress:
        yield Ui(console=console, progress=progress)
