"""
Tempo planning: bounded atempo chains that fit rendered speech to a target duration.
"""

import logging

from .models import TempoPlan

logger = logging.getLogger("dubsync")

MIN_ATEMPO = 0.5
MAX_ATEMPO = 2.0


def plan_tempo(
    rendered_duration: float,
    target_duration: float,
    bounds: tuple[float, float] = (MIN_ATEMPO, MAX_ATEMPO),
    max_total_stretch: float = 4.0,
    ratio_epsilon: float = 0.02,
) -> TempoPlan:
    """
    Plan the tempo factors mapping rendered_duration onto target_duration.

    NOTE (atempo semantics): a factor < 1.0 slows down (longer audio),
    > 1.0 speeds up (shorter audio). The composite factor is therefore
    rendered / target. Each factor stays within bounds; when the composite
    is outside them we chain bound-sized steps and finish with the
    remainder. When the fold change exceeds max_total_stretch, the chain
    is clamped to exactly a max_total_stretch-fold change and flagged.
    """
    if rendered_duration <= 0 or target_duration <= 0:
        raise ValueError(
            f"durations must be positive (rendered={rendered_duration}, target={target_duration})"
        )
    lo, hi = bounds
    if not 0 < lo < 1 < hi:
        raise ValueError(f"bounds must satisfy 0 < min < 1 < max, got {bounds}")

    required_ratio = target_duration / rendered_duration
    if abs(required_ratio - 1.0) <= ratio_epsilon:
        return TempoPlan(factors=(), required_ratio=required_ratio, needed_tempo=1.0)

    needed = 1.0 / required_ratio
    clamped = False
    # fold change in either direction
    stretch = max(needed, 1.0 / needed)
    if stretch > max_total_stretch:
        needed = max_total_stretch if needed > 1.0 else 1.0 / max_total_stretch
        clamped = True
        logger.debug(
            "Required ratio %.3f exceeds max stretch %.1fx, clamping tempo to %.3f",
            required_ratio,
            max_total_stretch,
            needed,
        )

    steps: list[float] = []
    r = needed
    while r < lo or r > hi:
        step = lo if r < 1.0 else hi
        steps.append(step)
        r /= step
    steps.append(r)

    return TempoPlan(
        factors=tuple(steps),
        required_ratio=required_ratio,
        needed_tempo=needed,
        clamped=clamped,
    )


def atempo_filter(plan: TempoPlan) -> str:
    """Render a plan as an ffmpeg audio filter chain ('' for an empty plan)."""
    return ",".join(f"atempo={s:.6f}" for s in plan.factors)
