from __future__ import annotations

from dataclasses import dataclass

from chkpt_mcmc.pipeline.errors import ConfigurationError
from chkpt_mcmc.sampler.interfaces import Phase


@dataclass(frozen=True)
class CheckpointPlan:
    """Fixed-size partition of warmup and sampling iterations.

    Checkpoints are numbered 1..total_chkpts; checkpoint i ends at absolute
    iteration i * iter_per_chkpt (typical-set iterations not counted).
    """

    warmup_chkpts: int
    total_chkpts: int
    iter_per_chkpt: int

    @property
    def sampling_chkpts(self) -> int:
        return self.total_chkpts - self.warmup_chkpts

    @property
    def total_iterations(self) -> int:
        return self.total_chkpts * self.iter_per_chkpt

    def phase_of(self, index: int) -> Phase:
        if not 1 <= index <= self.total_chkpts:
            raise ValueError(f"checkpoint index {index} outside 1..{self.total_chkpts}")
        return Phase.WARMUP if index <= self.warmup_chkpts else Phase.SAMPLE

    def iterations_done(self, index: int) -> int:
        return index * self.iter_per_chkpt


def plan_checkpoints(
    iter_warmup: int,
    iter_sampling: int,
    iter_per_chkpt: int,
    iter_typical: int | None = None,
) -> CheckpointPlan:
    """Partition warmup and sampling into checkpoints of iter_per_chkpt.

    iter_typical runs before checkpoint 1 and is not part of the partition.
    """
    if iter_per_chkpt <= 0:
        raise ConfigurationError(f"iter_per_chkpt must be positive, got {iter_per_chkpt}")
    if iter_warmup % iter_per_chkpt != 0:
        raise ConfigurationError(
            f"iter_warmup ({iter_warmup}) is not divisible by iter_per_chkpt ({iter_per_chkpt})"
        )
    if iter_sampling % iter_per_chkpt != 0:
        raise ConfigurationError(
            f"iter_sampling ({iter_sampling}) is not divisible by iter_per_chkpt ({iter_per_chkpt})"
        )

    warmup_chkpts = iter_warmup // iter_per_chkpt
    return CheckpointPlan(
        warmup_chkpts=warmup_chkpts,
        total_chkpts=warmup_chkpts + iter_sampling // iter_per_chkpt,
        iter_per_chkpt=iter_per_chkpt,
    )
