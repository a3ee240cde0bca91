from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from rich.progress import TaskID

from chkpt_mcmc.common.seeding import chunk_seed
from chkpt_mcmc.pipeline.checkpointing import CheckpointStore
from chkpt_mcmc.pipeline.config import RunConfiguration
from chkpt_mcmc.pipeline.errors import ChkptError, ConfigurationError, SamplerExecutionError, StorageError
from chkpt_mcmc.pipeline.planner import CheckpointPlan, plan_checkpoints
from chkpt_mcmc.pipeline.progress_ui import Ui, format_progress
from chkpt_mcmc.pipeline.restart import check_restart
from chkpt_mcmc.sampler.interfaces import ChunkResult, Phase, SamplerCapability, SamplerState

logger = logging.getLogger(__name__)

TYPICAL_SET_INDEX = 0


class RunState(str, Enum):
    NOT_STARTED = "not_started"
    TYPICAL_SET = "typical_set"
    WARMUP = "warmup"
    SAMPLING = "sampling"
    COMPLETE = "complete"


@dataclass(frozen=True)
class RunHandle:
    """Summary of a run that reached its last checkpoint in this invocation."""

    config: RunConfiguration
    plan: CheckpointPlan
    chunks_run: tuple[int, ...]
    result_indices: tuple[int, ...]
    finished_at: datetime

    @property
    def path(self) -> Path:
        return self.config.storage_path

    def __str__(self) -> str:
        return (
            "chkpt_mcmc \n"
            "----- \n"
            f"Date: {self.finished_at.isoformat(timespec='seconds')} \n"
            f"Draws: {len(self.result_indices)} checkpoints in {self.path / 'cp_samples'} \n"
        )


@dataclass(frozen=True)
class CompletionNotice:
    """Returned when every checkpoint was already persisted before this call."""

    path: Path
    total_chkpts: int
    message: str = "Checkpointing complete"

    def __str__(self) -> str:
        return self.message


@dataclass
class CheckpointRunner:
    """Chunked, resumable execution of a sampler against a checkpoint folder.

    One invocation plans the partition, validates the restart, bootstraps the
    typical set when nothing is persisted yet, and then runs the remaining
    checkpoints strictly in order. A chunk's draws and sampler state are
    persisted only after the sampler returns, so an interrupted chunk is
    re-run whole on the next invocation with the same seed.
    """

    config: RunConfiguration
    sampler: SamplerCapability
    store: CheckpointStore | None = None
    ui: Ui | None = None
    progress: bool = True
    transitions: list[RunState] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.store is None:
            self.store = CheckpointStore(self.config.storage_path)

    @property
    def state(self) -> RunState:
        return self.transitions[-1] if self.transitions else RunState.NOT_STARTED

    def run(self) -> RunHandle | CompletionNotice:
        cfg = self.config
        store = self._store()
        plan = plan_checkpoints(cfg.iter_warmup, cfg.iter_sampling, cfg.iter_per_chkpt, cfg.iter_typical)
        self._enter(RunState.NOT_STARTED)

        last = store.last_index()
        if last is not None and not store.has_config():
            raise StorageError(f"checkpoints found in {store.root} without a recorded run configuration")
        check_restart(store, cfg)

        if last is None:
            store.discard_orphan_results(TYPICAL_SET_INDEX)
            state = self._typical_set()
            last = TYPICAL_SET_INDEX
        else:
            if last > plan.total_chkpts:
                raise StorageError(
                    f"persisted checkpoint {last} exceeds the planned {plan.total_chkpts} checkpoints"
                )
            state = store.load_state(last)
            store.discard_orphan_results(last)

        if last == plan.total_chkpts:
            self._enter(RunState.COMPLETE)
            logger.info("Checkpointing complete")
            return CompletionNotice(path=store.root, total_chkpts=plan.total_chkpts)

        if last > TYPICAL_SET_INDEX:
            logger.info("Sampling next checkpoint")

        task = self._progress_task(plan, completed=last)
        chunks_run: list[int] = []
        for i in range(last + 1, plan.total_chkpts + 1):
            phase = plan.phase_of(i)
            self._enter(RunState.WARMUP if phase is Phase.WARMUP else RunState.SAMPLING)
            state = self._run_chunk(i, phase, state)
            chunks_run.append(i)
            self._emit_progress(plan, i, phase, task)

        self._enter(RunState.COMPLETE)
        logger.info("Checkpointing complete")
        return RunHandle(
            config=cfg,
            plan=plan,
            chunks_run=tuple(chunks_run),
            result_indices=tuple(store.list_result_indices()),
            finished_at=datetime.now(timezone.utc),
        )

    def _store(self) -> CheckpointStore:
        assert self.store is not None
        return self.store

    def _enter(self, new_state: RunState) -> None:
        if self.transitions and self.transitions[-1] is new_state:
            return
        logger.debug("Run state %s -> %s", self.state.value, new_state.value)
        self.transitions.append(new_state)

    def _typical_set(self) -> SamplerState:
        self._enter(RunState.TYPICAL_SET)
        logger.info("Initial Warmup (Typical Set)")
        new_state, _ = self._invoke(
            None,
            Phase.WARMUP,
            self.config.iter_typical,
            index=TYPICAL_SET_INDEX,
        )
        return replace(new_state, phase=Phase.WARMUP, index=TYPICAL_SET_INDEX)

    def _run_chunk(self, index: int, phase: Phase, prior: SamplerState) -> SamplerState:
        store = self._store()
        new_state, result = self._invoke(prior, phase, self.config.iter_per_chkpt, index=index)

        if phase is Phase.SAMPLE:
            if result is None:
                raise SamplerExecutionError(
                    f"sampler returned no draws for sampling checkpoint {index}",
                    index=index,
                )
            store.store_result(index, replace(result, index=index))
        elif result is not None:
            logger.warning("Discarding draws returned for warmup checkpoint %d", index)

        store.store_state(index, replace(new_state, phase=phase, index=index))
        # Continue from the persisted form, as a resumed run does.
        return store.load_state(index)

    def _invoke(
        self,
        prior: SamplerState | None,
        phase: Phase,
        num_iterations: int,
        *,
        index: int,
    ) -> tuple[SamplerState, ChunkResult | None]:
        cfg = self.config
        seed = chunk_seed(cfg.seed, index)
        logger.debug("Checkpoint %d: %s, %d iterations, seed %d", index, phase.value, num_iterations, seed)
        try:
            new_state, result = self.sampler.run(
                prior,
                phase,
                num_iterations,
                seed,
                cfg.parallel_chains,
                cfg.threads_per,
                cfg.control,
            )
        except ChkptError:
            raise
        except Exception as exc:
            label = "the typical set" if index == TYPICAL_SET_INDEX else f"checkpoint {index}"
            raise SamplerExecutionError(f"sampler failed during {label}: {exc}", index=index) from exc

        if not isinstance(new_state, SamplerState):
            raise SamplerExecutionError(
                f"sampler returned {type(new_state).__name__} instead of a SamplerState",
                index=index,
            )
        return new_state, result

    def _progress_task(self, plan: CheckpointPlan, completed: int) -> TaskID | None:
        if not self.progress or self.ui is None:
            return None
        return self.ui.checkpoint_task(plan, completed=completed)

    def _emit_progress(self, plan: CheckpointPlan, index: int, phase: Phase, task: TaskID | None) -> None:
        if not self.progress:
            return
        line = format_progress(plan, index, phase)
        if self.ui is None:
            logger.info(line)
            return
        self.ui.log(line)
        if task is not None:
            self.ui.progress.advance(task)


def chkpt_sample(
    model: str,
    data: Any,
    iter_warmup: int = 1000,
    iter_sampling: int = 1000,
    iter_per_chkpt: int = 100,
    iter_typical: int = 150,
    parallel_chains: int = 2,
    threads_per: int = 1,
    chkpt_progress: bool = True,
    control: Any = None,
    seed: int = 1,
    *,
    path: Any,
    sampler: SamplerCapability | None = None,
    ui: Ui | None = None,
) -> RunHandle | CompletionNotice:
    """Fit a model with checkpointing, resuming from `path` when possible.

    Re-invoking with identical arguments continues an interrupted run; an
    already finished run returns a CompletionNotice without sampling.
    `sampler` defaults to the built-in random-walk Metropolis sampler, which
    reads `model` as a target name.
    """
    config = RunConfiguration.create(
        model=model,
        data=data,
        iter_warmup=iter_warmup,
        iter_sampling=iter_sampling,
        iter_per_chkpt=iter_per_chkpt,
        iter_typical=iter_typical,
        parallel_chains=parallel_chains,
        threads_per=threads_per,
        control=control,
        seed=seed,
        path=path,
    )
    plan_checkpoints(iter_warmup, iter_sampling, iter_per_chkpt, iter_typical)

    if sampler is None:
        from chkpt_mcmc.sampler.metropolis import RandomWalkMetropolis

        try:
            sampler = RandomWalkMetropolis.for_model(config.model, config.data)
        except (KeyError, ValueError) as exc:
            raise ConfigurationError(f"cannot build the default sampler: {exc}") from exc

    runner = CheckpointRunner(config=config, sampler=sampler, ui=ui, progress=chkpt_progress)
    return runner.run()
