from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import numpy as np

from chkpt_mcmc.common.seeding import SeedContext
from chkpt_mcmc.sampler.interfaces import ChunkResult, Phase, SamplerCapability, SamplerState
from chkpt_mcmc.sampler.targets import Target, build_target


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetropolisControl:
    target_accept: float = 0.3
    init_step_size: float = 1.0
    adapt_rate: float = 0.5

    @classmethod
    def from_mapping(cls, control: Mapping[str, Any] | None) -> "MetropolisControl":
        control = dict(control or {})
        unknown = sorted(set(control) - {"target_accept", "init_step_size", "adapt_rate"})
        if unknown:
            raise ValueError(f"unsupported control options: {', '.join(unknown)}")
        out = cls(**{k: float(v) for k, v in control.items()})
        if not 0.0 < out.target_accept < 1.0:
            raise ValueError("target_accept must be in (0, 1)")
        if out.init_step_size <= 0.0 or out.adapt_rate <= 0.0:
            raise ValueError("init_step_size and adapt_rate must be positive")
        return out


class RandomWalkMetropolis(SamplerCapability):
    """Multi-chain random-walk Metropolis with warmup step-size adaptation.

    During warmup each chain's log step size follows a Robbins-Monro update
    towards `target_accept`; during sampling it is frozen and draws are kept.
    The payload of the returned SamplerState holds chain positions, step
    sizes and the adaptation counter, all as plain lists so it survives a
    JSON round trip unchanged. Every random number comes from
    the generator seeded with `seed`, so a call is a pure function of its
    arguments.
    """

    def __init__(self, target: Target) -> None:
        self.target = target

    @classmethod
    def for_model(cls, model: str, data: Mapping[str, Any]) -> "RandomWalkMetropolis":
        return cls(build_target(model, data))

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
        opts = MetropolisControl.from_mapping(control)
        rng = SeedContext(seed).rng()
        dim = self.target.dim
        if threads_per_chain != 1:
            logger.debug("threads_per_chain=%d ignored by the reference sampler", threads_per_chain)

        if prior_state is None:
            position = rng.uniform(-2.0, 2.0, size=(chains, dim))
            step = np.full(chains, opts.init_step_size)
            adapt_count = 0
        else:
            position, step, adapt_count = self._unpack(prior_state.payload, chains, dim)

        lp = self.target.log_density(position)
        adapt = phase is Phase.WARMUP
        keep = phase is Phase.SAMPLE

        draws: dict[str, np.ndarray] = {}
        if keep:
            for name in self.target.constrain(position):
                draws[name] = np.empty((chains, num_iterations))
            draws["lp__"] = np.empty((chains, num_iterations))
            draws["accept_stat__"] = np.empty((chains, num_iterations))

        for t in range(num_iterations):
            proposal = position + step[:, None] * rng.standard_normal((chains, dim))
            lp_prop = self.target.log_density(proposal)
            with np.errstate(over="ignore", invalid="ignore"):
                accept_prob = np.exp(np.minimum(0.0, lp_prop - lp))
            accept_prob = np.where(np.isfinite(lp_prop), accept_prob, 0.0)
            accepted = rng.uniform(size=chains) < accept_prob

            position = np.where(accepted[:, None], proposal, position)
            lp = np.where(accepted, lp_prop, lp)

            if adapt:
                adapt_count += 1
                gamma = opts.adapt_rate / adapt_count**0.6
                step = step * np.exp(gamma * (accept_prob - opts.target_accept))
            if keep:
                for name, values in self.target.constrain(position).items():
                    draws[name][:, t] = values
                draws["lp__"][:, t] = lp
                draws["accept_stat__"][:, t] = accept_prob

        state = SamplerState(
            phase=phase,
            payload={
                "position": position.tolist(),
                "step_size": step.tolist(),
                "adapt_count": int(adapt_count),
            },
        )
        return state, (ChunkResult(index=0, draws=draws) if keep else None)

    @staticmethod
    def _unpack(payload: Mapping[str, Any], chains: int, dim: int) -> tuple[np.ndarray, np.ndarray, int]:
        position = np.asarray(payload["position"], dtype=float)
        step_size = np.asarray(payload["step_size"], dtype=float)
        if position.shape != (chains, dim) or step_size.shape != (chains,):
            raise ValueError(
                f"sampler state holds {position.shape} positions, expected ({chains}, {dim})"
            )
        return position, step_size, int(payload["adapt_count"])
