"""
Tunables for the alignment engine.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

ENV_PREFIX = "DUBSYNC_"


@dataclass(frozen=True)
class AlignmentConfig:
    """Alignment tunables (seconds unless noted)."""

    min_gap_duration: float = 2.0
    ratio_epsilon: float = 0.02
    tempo_bounds: tuple[float, float] = (0.5, 2.0)
    max_total_stretch: float = 4.0
    duration_tolerance: float = 1.0
    boundary_epsilon: float = 0.05
    max_concurrent: int = 5  # parallel synthesis requests

    def __post_init__(self) -> None:
        lo, hi = self.tempo_bounds
        if not 0 < lo < 1 < hi:
            raise ValueError(f"tempo_bounds must satisfy 0 < min < 1 < max, got {self.tempo_bounds}")
        if self.max_total_stretch < 1.0:
            raise ValueError("max_total_stretch must be >= 1.0")
        if self.min_gap_duration < 0:
            raise ValueError("min_gap_duration must be >= 0")
        if self.ratio_epsilon < 0:
            raise ValueError("ratio_epsilon must be >= 0")
        if self.duration_tolerance < 0 or self.boundary_epsilon < 0:
            raise ValueError("tolerances must be >= 0")
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AlignmentConfig":
        """
        Build a config from DUBSYNC_* variables, falling back to defaults.

        Recognized: DUBSYNC_MIN_GAP, DUBSYNC_RATIO_EPSILON, DUBSYNC_TEMPO_MIN,
        DUBSYNC_TEMPO_MAX, DUBSYNC_MAX_STRETCH, DUBSYNC_TOLERANCE,
        DUBSYNC_MAX_CONCURRENT.
        """
        env = os.environ if environ is None else environ
        base = cls()

        def _number(name: str, default, cast=float):
            raw = env.get(ENV_PREFIX + name)
            if raw is None or not raw.strip():
                return default
            try:
                return cast(raw)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from None

        return cls(
            min_gap_duration=_number("MIN_GAP", base.min_gap_duration),
            ratio_epsilon=_number("RATIO_EPSILON", base.ratio_epsilon),
            tempo_bounds=(
                _number("TEMPO_MIN", base.tempo_bounds[0]),
                _number("TEMPO_MAX", base.tempo_bounds[1]),
            ),
            max_total_stretch=_number("MAX_STRETCH", base.max_total_stretch),
            duration_tolerance=_number("TOLERANCE", base.duration_tolerance),
            boundary_epsilon=base.boundary_epsilon,
            max_concurrent=_number("MAX_CONCURRENT", base.max_concurrent, int),
        )
