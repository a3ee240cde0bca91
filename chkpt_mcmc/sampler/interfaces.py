from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol

import numpy as np


class Phase(str, Enum):
    WARMUP = "warmup"
    SAMPLE = "sample"


@dataclass(frozen=True)
class SamplerState:
    """Opaque snapshot sufficient to resume sampling.

    `payload` belongs to the sampler capability and must be JSON-compatible;
    the checkpointing layer only reads `phase` and `index`.
    """

    phase: Phase
    payload: Mapping[str, Any]
    index: int = 0


@dataclass(frozen=True)
class ChunkResult:
    """Retained draws of one sampling-phase checkpoint.

    Every array in `draws` has shape (chains, iterations).
    """

    index: int
    draws: Mapping[str, np.ndarray] = field(default_factory=dict)

    def n_iterations(self) -> int:
        if not self.draws:
            return 0
        first = next(iter(self.draws.values()))
        return int(first.shape[-1])


class SamplerCapability(Protocol):
    """External sampler that runs one chunk of iterations per call."""

    def run(
        self,
        prior_state: SamplerState | None,
        phase: Phase,
        num_iterations: int,
        seed: int,
        chains: int,
        threads_per_chain: int,
        control: Mapping[str, Any] | None,
    ) -> tuple[SamplerState, ChunkResult | None]:
        """Advance the chains by `num_iterations`.

        `prior_state=None` starts from fresh inits (the typical-set bootstrap).
        A ChunkResult is expected only for the sampling phase.
        """
        ...
