from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest
from pydantic import ValidationError

from chkpt_mcmc.pipeline.config import RunConfiguration, load_run_toml
from chkpt_mcmc.pipeline.errors import InputTypeError


def _fields(tmp_path: Path, **overrides: object) -> dict[str, object]:
    fields: dict[str, object] = {
        "model": "normal",
        "data": {"y": [1.0, 2.0]},
        "path": str(tmp_path / "run"),
    }
    fields.update(overrides)
    return fields


def test_defaults_follow_entry_point(tmp_path: Path) -> None:
    cfg = RunConfiguration.create(**_fields(tmp_path))

    assert (cfg.iter_warmup, cfg.iter_sampling, cfg.iter_per_chkpt, cfg.iter_typical) == (1000, 1000, 100, 150)
    assert (cfg.parallel_chains, cfg.threads_per, cfg.seed) == (2, 1, 1)
    assert cfg.control is None
    assert cfg.storage_path == (tmp_path / "run").resolve()


def test_numpy_data_is_normalized_for_snapshot(tmp_path: Path) -> None:
    cfg = RunConfiguration.create(**_fields(tmp_path, data={"y": np.array([1.5, 2.5]), "n": np.int64(2)}))

    assert cfg.snapshot()["data"] == {"y": [1.5, 2.5], "n": 2}
    json.dumps(cfg.snapshot())


def test_snapshot_keeps_non_finite_floats(tmp_path: Path) -> None:
    cfg = RunConfiguration.create(**_fields(tmp_path, data={"y": np.array([1.0, np.inf, -np.inf])}))

    assert cfg.snapshot()["data"]["y"] == [1.0, float("inf"), float("-inf")]


def test_configuration_is_immutable(tmp_path: Path) -> None:
    cfg = RunConfiguration.create(**_fields(tmp_path))
    with pytest.raises(ValidationError):
        cfg.seed = 2  # type: ignore[misc]


@pytest.mark.parametrize(
    "overrides",
    [
        {"data": [1, 2, 3]},
        {"data": "y=1"},
        {"path": 42},
        {"iter_warmup": "1000"},
        {"iter_per_chkpt": 0},
        {"parallel_chains": True},
        {"unknown_option": 1},
    ],
)
def test_malformed_fields_raise_input_type_error(tmp_path: Path, overrides: dict[str, object]) -> None:
    with pytest.raises(InputTypeError):
        RunConfiguration.create(**_fields(tmp_path, **overrides))


def test_load_run_toml_with_data_file(tmp_path: Path) -> None:
    (tmp_path / "data.json").write_text(json.dumps({"y": [0.5, 1.5]}))
    toml_path = tmp_path / "run.toml"
    toml_path.write_text(
        'model = "normal"\n'
        'path = "out"\n'
        'data_file = "data.json"\n'
        "iter_warmup = 200\n"
        "iter_sampling = 200\n"
        "iter_per_chkpt = 50\n"
        "chkpt_progress = false\n"
        "[control]\n"
        "target_accept = 0.25\n"
    )

    cfg, progress = load_run_toml(toml_path)

    assert progress is False
    assert cfg.data == {"y": [0.5, 1.5]}
    assert cfg.storage_path == (tmp_path / "out").resolve()
    assert cfg.control == {"target_accept": 0.25}
    assert cfg.iter_per_chkpt == 50


def test_load_run_toml_rejects_data_and_data_file(tmp_path: Path) -> None:
    toml_path = tmp_path / "run.toml"
    toml_path.write_text('model = "normal"\npath = "out"\ndata_file = "d.json"\n[data]\ny = [1.0]\n')

    with pytest.raises(InputTypeError):
        load_run_toml(toml_path)
