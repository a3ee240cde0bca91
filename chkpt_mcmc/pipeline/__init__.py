"""Checkpointed, resumable MCMC runs.

This package provides:
- Run configuration (pydantic, TOML)
- Checkpoint planning and durable checkpoint storage
- Restart validation and progress reporting
- The chunked run driver

A run is robust to interruption: invoking it again with the same
configuration continues from the last persisted checkpoint.
"""
