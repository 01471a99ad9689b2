"""
Error and warning types raised or reported by the alignment engine.

Errors abort the run. Warnings are collected on the returned
``AlignedTrack`` and logged, never raised.
"""


class AlignmentError(Exception):
    """Base class for fatal alignment errors."""


class MalformedIntervalsError(AlignmentError, ValueError):
    """Silence intervals or timeline boundaries are inconsistent."""


class NoSpeechBlocksError(AlignmentError):
    """The timeline contains no speech block to carry text."""


class DegenerateTimelineError(AlignmentError):
    """Speech blocks exist but their total duration is zero."""


class RunCancelled(AlignmentError):
    """The run was stopped at the confirmation checkpoint."""


class CollaboratorFailure(AlignmentError):
    """A synthesis, transform or concat call failed during assembly."""

    def __init__(
        self,
        operation: str,
        block_index: int | None = None,
        requested_duration: float | None = None,
        actual_duration: float | None = None,
        message: str | None = None,
    ) -> None:
        self.operation = operation
        self.block_index = block_index
        self.requested_duration = requested_duration
        self.actual_duration = actual_duration
        self.timeline = None  # set by the pipeline for retries
        parts = [f"{operation} failed"]
        if block_index is not None:
            parts.append(f"block={block_index}")
        if requested_duration is not None:
            parts.append(f"requested={requested_duration:.3f}s")
        if actual_duration is not None:
            parts.append(f"actual={actual_duration:.3f}s")
        if message:
            parts.append(message)
        super().__init__(" ".join(parts))


class AlignmentWarning(UserWarning):
    """Base class for non-fatal sync-quality warnings."""


class ClampedTempoWarning(AlignmentWarning):
    """A block needed more stretch than allowed; best effort was applied."""

    def __init__(
        self,
        block_index: int,
        target_duration: float,
        rendered_duration: float,
        factors: tuple[float, ...],
    ) -> None:
        self.block_index = block_index
        self.target_duration = target_duration
        self.rendered_duration = rendered_duration
        self.factors = tuple(factors)
        super().__init__(
            f"block {block_index}: tempo clamped to {list(self.factors)} "
            f"(rendered {rendered_duration:.2f}s, target {target_duration:.2f}s)"
        )


class AssemblyDriftWarning(AlignmentWarning):
    """The assembled track is outside the duration tolerance."""

    def __init__(self, expected_duration: float, actual_duration: float, tolerance: float) -> None:
        self.expected_duration = expected_duration
        self.actual_duration = actual_duration
        self.tolerance = tolerance
        super().__init__(
            f"final duration {actual_duration:.2f}s differs from expected "
            f"{expected_duration:.2f}s by more than {tolerance:.2f}s"
        )

    @property
    def drift(self) -> float:
        return self.actual_duration - self.expected_duration
