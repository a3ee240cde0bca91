from __future__ import annotations

import io

from rich.console import Console

from chkpt_mcmc.pipeline.planner import plan_checkpoints
from chkpt_mcmc.pipeline.progress_ui import format_progress, progress_ui
from chkpt_mcmc.sampler.interfaces import Phase


def test_format_progress_reports_checkpoint_and_iteration() -> None:
    plan = plan_checkpoints(1000, 1000, 250)

    assert format_progress(plan, 2, Phase.WARMUP) == "Chkpt: 2 / 8; Iteration: 500 / 2000 (warmup)"
    assert format_progress(plan, 8, Phase.SAMPLE) == "Chkpt: 8 / 8; Iteration: 2000 / 2000 (sample)"


def test_ui_logs_to_console() -> None:
    buf = io.StringIO()
    plan = plan_checkpoints(100, 100, 50)
    with progress_ui(Console(file=buf, width=120)) as ui:
        task = ui.checkpoint_task(plan, completed=1)
        ui.log(format_progress(plan, 2, Phase.WARMUP))
        ui.progress.advance(task)
        assert ui.progress.tasks[0].completed == 2

    assert "Chkpt: 2 / 4; Iteration: 100 / 200 (warmup)" in buf.getvalue()
