from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from chkpt_mcmc import cli
from chkpt_mcmc.pipeline.checkpointing import CheckpointStore
from chkpt_mcmc.sampler.interfaces import Phase, SamplerState


runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)


def _write_config(tmp_path: Path, **overrides: str) -> Path:
    lines = {
        "model": '"normal"',
        "path": '"run"',
        "iter_warmup": "20",
        "iter_sampling": "20",
        "iter_per_chkpt": "10",
        "iter_typical": "10",
        "chkpt_progress": "true",
    }
    lines.update(overrides)
    body = "\n".join(f"{k} = {v}" for k, v in lines.items())
    path = tmp_path / "run.toml"
    path.write_text(body + "\n[data]\ny = [1.0, 2.0, 3.0]\n")
    return path


def test_init_config_refuses_to_overwrite(tmp_path: Path) -> None:
    target = tmp_path / "run_config.toml"

    first = runner.invoke(cli.app, ["init-config", str(target)])
    assert first.exit_code == 0
    assert 'model = "eight_schools"' in target.read_text()

    second = runner.invoke(cli.app, ["init-config", str(target)])
    assert second.exit_code != 0


def test_run_then_status_then_idempotent_rerun(tmp_path: Path) -> None:
    config = _write_config(tmp_path)

    result = runner.invoke(cli.app, ["run", "--config", str(config)])
    assert result.exit_code == 0, result.output
    assert "Chkpt: 4 / 4; Iteration: 40 / 40 (sample)" in result.output
    assert CheckpointStore(tmp_path / "run").list_result_indices() == [3, 4]

    status = runner.invoke(cli.app, ["status", "--path", str(tmp_path / "run")])
    assert status.exit_code == 0, status.output
    assert "Checkpoint: 4 / 4 (complete)" in status.output
    assert "Draw files: 2 / 2" in status.output

    again = runner.invoke(cli.app, ["run", "--config", str(config), "--no-progress"])
    assert again.exit_code == 0, again.output
    assert "Checkpointing complete" in again.output


def test_run_reports_changed_configuration(tmp_path: Path) -> None:
    config = _write_config(tmp_path, chkpt_progress="false")
    assert runner.invoke(cli.app, ["run", "--config", str(config)]).exit_code == 0

    changed = _write_config(tmp_path, chkpt_progress="false", iter_per_chkpt="5")
    result = runner.invoke(cli.app, ["run", "--config", str(changed)])

    assert result.exit_code == 1
    assert "invalid restart" in result.output


def test_run_reports_bad_partition(tmp_path: Path) -> None:
    config = _write_config(tmp_path, iter_per_chkpt="15")
    result = runner.invoke(cli.app, ["run", "--config", str(config)])

    assert result.exit_code == 1
    assert "not divisible" in result.output


def test_status_without_run(tmp_path: Path) -> None:
    result = runner.invoke(cli.app, ["status", "--path", str(tmp_path)])

    assert result.exit_code == 1


def test_status_reports_checkpoints_beyond_the_plan(tmp_path: Path) -> None:
    config = _write_config(tmp_path, chkpt_progress="false")
    assert runner.invoke(cli.app, ["run", "--config", str(config)]).exit_code == 0
    store = CheckpointStore(tmp_path / "run")
    store.store_state(5, SamplerState(phase=Phase.SAMPLE, payload={}, index=5))

    result = runner.invoke(cli.app, ["status", "--path", str(tmp_path / "run")])

    assert result.exit_code == 1
    assert "exceeds the planned 4 checkpoints" in result.output
