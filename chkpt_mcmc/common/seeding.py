from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class SeedContext:
    seed: int

    def rng(self) -> np.random.Generator:
        """Fresh generator; two contexts with equal seeds yield identical streams."""
        return np.random.default_rng(self.seed)


def chunk_seed(base_seed: int, index: int) -> int:
    """Seed for checkpoint `index`; the typical set (index 0) uses the base seed.

    Depends on nothing but the index, so a retried chunk sees the same seed.
    """
    if index < 0:
        raise ValueError(f"checkpoint index must be >= 0, got {index}")
    return int(base_seed) + int(index)
