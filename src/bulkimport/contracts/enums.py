"""Status codes and states used across subsystem boundaries."""

from enum import IntEnum, StrEnum


class PipelineState(StrEnum):
    """State of an import pipeline.

    Transitions are strictly linear:
        IDLE -> LOCKING -> SPLITTING -> PROCESSING -> FINALIZING -> COMPLETED
    Any fatal error moves the pipeline to FAILED (after FINALIZING when the
    lock was acquired). COMPLETED and FAILED are terminal.
    """

    IDLE = "idle"
    LOCKING = "locking"
    SPLITTING = "splitting"
    PROCESSING = "processing"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.COMPLETED, PipelineState.FAILED)


class RunStatus(StrEnum):
    """Outcome of a run as stored in the status registry."""

    RUNNING = "running"
    COMPLETED = "completed"
    DEGRADED = "degraded"
    FAILED = "failed"


class BunchStatus(StrEnum):
    """Outcome of processing one bunch."""

    COMPLETED = "completed"
    FAILED = "failed"


class ExitCode(IntEnum):
    """Process exit codes reported by the CLI."""

    SUCCESS = 0
    DEGRADED = 1
    FAILED = 2
    ALREADY_RUNNING = 3
    CONFIG_ERROR = 4
