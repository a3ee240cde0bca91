from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from chkpt_mcmc.pipeline.checkpointing import CheckpointStore
from chkpt_mcmc.pipeline.config import RunConfiguration
from chkpt_mcmc.pipeline.errors import RestartConsistencyError


logger = logging.getLogger(__name__)


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


def diff_configurations(recorded: Mapping[str, Any], current: Mapping[str, Any]) -> tuple[str, ...]:
    """Names of fields whose values differ, including fields present on one side only.

    Values are compared as canonical JSON text, so NaN matches NaN and is
    distinct from null or an infinity.
    """
    keys = sorted(set(recorded) | set(current))
    return tuple(
        k
        for k in keys
        if k not in recorded or k not in current or _canonical(recorded[k]) != _canonical(current[k])
    )


def check_restart(store: CheckpointStore, config: RunConfiguration) -> bool:
    """Gate a (re)invocation against the configuration recorded at the first one.

    Returns True when a recorded configuration matched, False when none was
    recorded yet (the current one is then persisted). Raises
    RestartConsistencyError on any mismatch without touching the store.
    """
    current = config.snapshot()
    recorded = store.load_config()
    if recorded is None:
        store.save_config(current)
        logger.debug("Recorded run configuration at %s", store.config_path)
        return False

    mismatched = diff_configurations(recorded, current)
    if mismatched:
        for name in mismatched:
            logger.error(
                "Restart mismatch on %s: recorded=%r current=%r",
                name,
                recorded.get(name),
                current.get(name),
            )
        raise RestartConsistencyError(mismatched)
    return True
