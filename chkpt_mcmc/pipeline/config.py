from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Annotated, Any, Mapping

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticSerializationError

from chkpt_mcmc.pipeline.errors import InputTypeError


PositiveInt = Annotated[int, Field(ge=1, strict=True)]


def _expand(path: str) -> Path:
    return Path(os.path.expanduser(path)).resolve()


def _read_toml(path: Path) -> dict[str, Any]:
    """Read TOML into a dict, supporting Python 3.10+.

    Uses tomllib when available, falls back to tomli.
    """
    data = path.read_bytes()
    try:
        import tomllib  # type: ignore[attr-defined]

        return tomllib.loads(data.decode("utf-8"))
    except ModuleNotFoundError:
        import tomli  # type: ignore[import-not-found]

        return tomli.loads(data.decode("utf-8"))


def _jsonable(value: Any) -> Any:
    # Model data often arrives as numpy arrays; keep the snapshot plain JSON.
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class RunConfiguration(BaseModel):
    """Immutable description of one checkpointed sampling run.

    Persisted at the first invocation against `path` and compared field by
    field on every later invocation.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", ser_json_inf_nan="constants")

    model: str = Field(..., description="Model reference understood by the sampler.")
    data: dict[str, Any] = Field(..., description="Named model inputs.")
    iter_warmup: PositiveInt = 1000
    iter_sampling: PositiveInt = 1000
    iter_per_chkpt: PositiveInt = 100
    iter_typical: PositiveInt = 150
    parallel_chains: PositiveInt = 2
    threads_per: PositiveInt = 1
    control: dict[str, Any] | None = None
    seed: Annotated[int, Field(ge=0, strict=True)] = 1
    path: str = Field(..., description="Folder holding the checkpoints.")

    @field_validator("data", "control", mode="before")
    @classmethod
    def _normalize_mapping(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return _jsonable(value)
        return value

    @field_validator("path", mode="before")
    @classmethod
    def _normalize_path(cls, value: Any) -> Any:
        if isinstance(value, os.PathLike):
            value = os.fspath(value)
        if isinstance(value, str):
            return str(_expand(value))
        return value

    @classmethod
    def create(cls, **fields: Any) -> "RunConfiguration":
        """Build a configuration, reporting malformed fields as InputTypeError."""
        try:
            cfg = cls(**fields)
        except ValidationError as exc:
            bad = sorted({".".join(str(p) for p in err["loc"]) or "<root>" for err in exc.errors()})
            raise InputTypeError(f"malformed run configuration ({', '.join(bad)}): {exc}") from exc
        try:
            cfg.snapshot()
        except PydanticSerializationError as exc:
            raise InputTypeError(f"run configuration is not serializable: {exc}") from exc
        return cfg

    def snapshot(self) -> dict[str, Any]:
        # Through JSON text so NaN and infinities survive as floats.
        return json.loads(self.model_dump_json())

    @property
    def storage_path(self) -> Path:
        return Path(self.path)


def load_run_toml(path: Path) -> tuple[RunConfiguration, bool]:
    """Load a run description from TOML.

    Returns the configuration and the progress-display flag. `data` may be an
    inline table, or `data_file` may point to a JSON document; relative
    `data_file` and `path` entries resolve against the TOML file's folder.
    """
    raw = _read_toml(path)
    base = path.expanduser().resolve().parent

    progress = raw.pop("chkpt_progress", True)
    if not isinstance(progress, bool):
        raise InputTypeError("chkpt_progress must be true or false")

    data_file = raw.pop("data_file", None)
    if data_file is not None:
        if "data" in raw:
            raise InputTypeError("give either 'data' or 'data_file', not both")
        data_path = Path(str(data_file)).expanduser()
        if not data_path.is_absolute():
            data_path = base / data_path
        raw["data"] = json.loads(data_path.read_text(encoding="utf-8"))

    run_path = raw.get("path")
    if isinstance(run_path, str) and not Path(run_path).expanduser().is_absolute():
        raw["path"] = str(base / run_path)

    return RunConfiguration.create(**raw), progress
