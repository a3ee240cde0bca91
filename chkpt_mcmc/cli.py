from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer

from chkpt_mcmc.common.logging_config import configure_logging
from chkpt_mcmc.pipeline.checkpointing import CheckpointStore
from chkpt_mcmc.pipeline.config import RunConfiguration, load_run_toml
from chkpt_mcmc.pipeline.errors import ChkptError, InputTypeError, StorageError
from chkpt_mcmc.pipeline.planner import plan_checkpoints
from chkpt_mcmc.pipeline.progress_ui import progress_ui
from chkpt_mcmc.pipeline.runner import chkpt_sample


app = typer.Typer(add_completion=False, no_args_is_help=True)

EXAMPLE_CONFIG = """\
# Checkpointed sampling run. Re-run the same command to resume.
model = "eight_schools"
path = "chkpt_folder_fit1"
iter_warmup = 1000
iter_sampling = 1000
iter_per_chkpt = 250
iter_typical = 150
parallel_chains = 2
threads_per = 1
seed = 1
chkpt_progress = true
# data_file = "data.json"

[data]
n = 8
y = [28.0, 8.0, -3.0, 7.0, -1.0, 1.0, 18.0, 12.0]
sigma = [15.0, 10.0, 16.0, 11.0, 9.0, 11.0, 10.0, 18.0]

[control]
target_accept = 0.3
"""


def _fail(exc: Exception) -> NoReturn:
    typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


@app.command()
def run(
    config: str = typer.Option("run_config.toml", help="Path to the run TOML"),
    progress: Optional[bool] = typer.Option(None, "--progress/--no-progress", help="Override chkpt_progress"),
    log_level: str = typer.Option("INFO", help="Logging level"),
) -> None:
    """Sample with checkpoints; resumes from the run folder when it exists."""
    try:
        cfg, toml_progress = load_run_toml(Path(config).expanduser())
    except (ChkptError, OSError, ValueError) as exc:
        _fail(exc)

    show_progress = toml_progress if progress is None else progress
    try:
        configure_logging(log_level, log_dir=cfg.storage_path / "logs")
    except ValueError as exc:
        _fail(exc)

    fields = cfg.snapshot()
    fields.pop("path")
    try:
        with progress_ui() as ui:
            outcome = chkpt_sample(
                **fields,
                chkpt_progress=show_progress,
                path=cfg.path,
                ui=ui,
            )
    except ChkptError as exc:
        _fail(exc)
    typer.echo(str(outcome))


@app.command()
def status(path: str = typer.Option(..., help="Run folder holding the checkpoints")) -> None:
    """Show how far a checkpointed run has progressed."""
    store = CheckpointStore(Path(path).expanduser().resolve())
    try:
        snapshot = store.load_config()
        if snapshot is None:
            raise InputTypeError(f"no run configuration recorded in {store.root}")
        cfg = RunConfiguration.create(**snapshot)
        plan = plan_checkpoints(cfg.iter_warmup, cfg.iter_sampling, cfg.iter_per_chkpt, cfg.iter_typical)
        last = store.last_index() or 0
        if last > plan.total_chkpts:
            raise StorageError(
                f"persisted checkpoint {last} exceeds the planned {plan.total_chkpts} checkpoints"
            )
        n_results = len(store.list_result_indices())
    except ChkptError as exc:
        _fail(exc)

    if last == 0:
        phase = "not started"
    elif last == plan.total_chkpts:
        phase = "complete"
    else:
        phase = plan.phase_of(last).value
    typer.echo(f"Model: {cfg.model}")
    typer.echo(f"Checkpoint: {last} / {plan.total_chkpts} ({phase})")
    typer.echo(f"Iteration: {plan.iterations_done(last)} / {plan.total_iterations}")
    typer.echo(f"Draw files: {n_results} / {plan.sampling_chkpts}")


@app.command()
def init_config(
    path: str = typer.Argument("run_config.toml", help="Where to write the run TOML"),
) -> None:
    """Write an example run_config.toml."""
    out = Path(path).expanduser()
    if out.exists():
        raise typer.BadParameter(f"Refusing to overwrite existing file: {out}")

    out.write_text(EXAMPLE_CONFIG)
    typer.echo(f"Wrote {out} (edit it, then run: chkpt-mcmc run --config {out})")


if __name__ == "__main__":
    app()
