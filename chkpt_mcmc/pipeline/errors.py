from __future__ import annotations


class ChkptError(Exception):
    """Base class for all checkpointed-run failures."""


class ConfigurationError(ChkptError):
    """Iteration counts do not partition into whole checkpoints."""


class InputTypeError(ChkptError):
    """A run configuration field has the wrong type or shape."""


class RestartConsistencyError(ChkptError):
    """The persisted run configuration differs from the current one."""

    def __init__(self, mismatched: tuple[str, ...]) -> None:
        self.mismatched = mismatched
        fields = ", ".join(mismatched)
        super().__init__(f"invalid restart (arguments have been changed): {fields}")


class SamplerExecutionError(ChkptError):
    """The sampler capability failed while running a chunk."""

    def __init__(self, message: str, *, index: int) -> None:
        self.index = index
        super().__init__(message)


class StorageError(ChkptError):
    """Durable read or write of checkpoint data failed."""
