from __future__ import annotations

import io
import json
import logging
import os
import re
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping

import numpy as np

from chkpt_mcmc.pipeline.errors import StorageError
from chkpt_mcmc.sampler.interfaces import ChunkResult, Phase, SamplerState


logger = logging.getLogger(__name__)

CONFIG_FILE = "run_config.json"
STATE_DIR = "cp_info"
RESULT_DIR = "cp_samples"

_STATE_RE = re.compile(r"^cp_info_(\d+)\.json$")
_RESULT_RE = re.compile(r"^samples_(\d+)\.npz$")


def _atomic_write_bytes(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "wb") as fh:
        fh.write(payload)
        fh.flush()
        os.fsync(fh.fileno())
    os.replace(tmp, path)


def _atomic_write_json(path: Path, payload: dict[str, Any]) -> None:
    _atomic_write_bytes(path, json.dumps(payload, indent=2, sort_keys=True).encode("utf-8"))


def _encode_draws(draws: Mapping[str, Any]) -> bytes:
    arrays = {name: np.asarray(values) for name, values in draws.items()}
    # Draws are read back with allow_pickle=False.
    pickled = sorted(name for name, arr in arrays.items() if arr.dtype.hasobject)
    if pickled:
        raise StorageError(f"draws must be numeric arrays, got object dtype for: {', '.join(pickled)}")
    buf = io.BytesIO()
    np.savez(buf, **arrays)
    return buf.getvalue()


def _indices(folder: Path, pattern: re.Pattern[str]) -> list[int]:
    if not folder.is_dir():
        return []
    out: list[int] = []
    for entry in folder.iterdir():
        m = pattern.match(entry.name)
        if m is not None:
            out.append(int(m.group(1)))
    return sorted(out)


@dataclass(frozen=True)
class CheckpointStore:
    """Durable storage for one run's configuration, sampler states and draws.

    Layout under `root`:
    - run_config.json
    - cp_info/cp_info_<i>.json   (SamplerState of checkpoint i)
    - cp_samples/samples_<i>.npz (ChunkResult of sampling checkpoint i)

    States and results are write-once per index. Every write goes through a
    temporary file and os.replace, so a file with a final name is complete.
    """

    root: Path

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILE

    @property
    def state_dir(self) -> Path:
        return self.root / STATE_DIR

    @property
    def result_dir(self) -> Path:
        return self.root / RESULT_DIR

    def state_path(self, index: int) -> Path:
        return self.state_dir / f"cp_info_{index}.json"

    def result_path(self, index: int) -> Path:
        return self.result_dir / f"samples_{index}.npz"

    # --- run configuration -------------------------------------------------

    def has_config(self) -> bool:
        return self.config_path.exists()

    def load_config(self) -> dict[str, Any] | None:
        if not self.config_path.exists():
            return None
        return self._guard(f"read {self.config_path}", lambda: json.loads(self.config_path.read_text()))

    def save_config(self, snapshot: dict[str, Any]) -> None:
        self._guard(f"write {self.config_path}", lambda: _atomic_write_json(self.config_path, snapshot))

    # --- sampler states ----------------------------------------------------

    def list_state_indices(self) -> list[int]:
        return self._guard(f"list {self.state_dir}", lambda: _indices(self.state_dir, _STATE_RE))

    def last_index(self) -> int | None:
        """Resume point: the highest persisted checkpoint, or None."""
        indices = self.list_state_indices()
        return indices[-1] if indices else None

    def load_state(self, index: int) -> SamplerState:
        path = self.state_path(index)
        raw = self._guard(f"read {path}", lambda: json.loads(path.read_text()))
        try:
            state = SamplerState(phase=Phase(raw["phase"]), payload=raw["payload"], index=int(raw["index"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"malformed sampler state in {path}: {exc}") from exc
        if state.index != index:
            raise StorageError(f"{path} records checkpoint {state.index}, expected {index}")
        return state

    def store_state(self, index: int, state: SamplerState) -> None:
        path = self.state_path(index)
        if path.exists():
            raise StorageError(f"sampler state for checkpoint {index} already exists: {path}")
        payload = {"index": int(index), "phase": state.phase.value, "payload": state.payload}
        try:
            encoded = json.dumps(payload, indent=2, sort_keys=True).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise StorageError(f"sampler state for checkpoint {index} is not JSON-compatible: {exc}") from exc
        self._guard(f"write {path}", lambda: _atomic_write_bytes(path, encoded))
        logger.debug("Stored sampler state %s", path)

    # --- chunk results -----------------------------------------------------

    def list_result_indices(self) -> list[int]:
        return self._guard(f"list {self.result_dir}", lambda: _indices(self.result_dir, _RESULT_RE))

    def load_result(self, index: int) -> ChunkResult:
        path = self.result_path(index)

        def _read() -> ChunkResult:
            with np.load(path, allow_pickle=False) as npz:
                return ChunkResult(index=index, draws={k: npz[k] for k in npz.files})

        return self._guard(f"read {path}", _read)

    def store_result(self, index: int, result: ChunkResult) -> None:
        path = self.result_path(index)
        if path.exists():
            raise StorageError(f"draws for checkpoint {index} already exist: {path}")
        encoded = self._guard(f"encode draws for checkpoint {index}", lambda: _encode_draws(result.draws))
        self._guard(f"write {path}", lambda: _atomic_write_bytes(path, encoded))
        logger.debug("Stored draws %s", path)

    def discard_orphan_results(self, last_index: int) -> list[int]:
        """Remove draws written after the last persisted state.

        Such files come from an interruption between writing a chunk's draws
        and its sampler state; the chunk is re-run as a whole.
        """
        orphans = [i for i in self.list_result_indices() if i > last_index]
        for i in orphans:
            logger.warning("Removing draws of unfinished checkpoint %d", i)
            self._guard(f"remove {self.result_path(i)}", self.result_path(i).unlink)
        return orphans

    @staticmethod
    def _guard(action: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except StorageError:
            raise
        except (OSError, ValueError, zipfile.BadZipFile) as exc:
            raise StorageError(f"failed to {action}: {exc}") from exc
