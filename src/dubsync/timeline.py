"""
Speech/silence timeline building from silence intervals.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .errors import MalformedIntervalsError
from .models import BlockKind, Segment, SilenceInterval, Timeline, TimelineBlock

logger = logging.getLogger("dubsync")

DEFAULT_EPSILON = 0.05


def _coerce_interval(item: Any) -> SilenceInterval:
    """Accept SilenceInterval, (start, end) pairs or {'start', 'end'} mappings."""
    if isinstance(item, SilenceInterval):
        return item
    try:
        if isinstance(item, Mapping):
            return SilenceInterval(float(item["start"]), float(item["end"]))
        start, end = item
        return SilenceInterval(float(start), float(end))
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedIntervalsError(f"unreadable silence interval {item!r}") from e


def sanitize_intervals(
    intervals: Iterable[Any],
    total_duration: float,
    boundary_epsilon: float = DEFAULT_EPSILON,
) -> list[SilenceInterval]:
    """
    Normalize raw silence intervals:
    - drop zero/negative-duration entries,
    - sort by start and merge overlapping or touching intervals,
    - reject anything starting before 0 or ending after total_duration
      (ends within boundary_epsilon of the total are clamped to it).
    """
    cleaned = [iv for iv in map(_coerce_interval, intervals) if iv.end > iv.start]
    cleaned.sort(key=lambda iv: (iv.start, iv.end))

    merged: list[SilenceInterval] = []
    for iv in cleaned:
        if merged and iv.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = SilenceInterval(last.start, max(last.end, iv.end))
        else:
            merged.append(iv)

    result: list[SilenceInterval] = []
    for iv in merged:
        if iv.start < 0:
            raise MalformedIntervalsError(
                f"silence interval [{iv.start:.3f}, {iv.end:.3f}) starts before 0"
            )
        if iv.end > total_duration + boundary_epsilon:
            raise MalformedIntervalsError(
                f"silence interval [{iv.start:.3f}, {iv.end:.3f}) ends after "
                f"total duration {total_duration:.3f}"
            )
        end = min(iv.end, total_duration)
        if end > iv.start:
            result.append(SilenceInterval(iv.start, end))
    return result


def build_timeline(
    silence_intervals: Iterable[Any],
    total_duration: float,
    min_gap_duration: float = 2.0,
    *,
    boundary_epsilon: float = DEFAULT_EPSILON,
) -> Timeline:
    """
    Build a gap-free speech/silence timeline covering [0, total_duration).

    Silences shorter than min_gap_duration are treated as part of the
    surrounding speech and are not materialized as blocks.
    """
    if total_duration <= 0:
        raise MalformedIntervalsError(f"total duration must be positive, got {total_duration}")

    sanitized = sanitize_intervals(silence_intervals, total_duration, boundary_epsilon)
    kept = [iv for iv in sanitized if iv.duration >= min_gap_duration]
    if len(kept) < len(sanitized):
        logger.debug(
            "Absorbed %d silence interval(s) shorter than %.2fs into speech",
            len(sanitized) - len(kept),
            min_gap_duration,
        )

    blocks: list[TimelineBlock] = []
    cursor = 0.0
    for iv in kept:
        if iv.start > cursor:
            blocks.append(TimelineBlock(BlockKind.SPEECH, cursor, iv.start))
        blocks.append(TimelineBlock(BlockKind.SILENCE, iv.start, iv.end))
        cursor = iv.end

    if cursor < total_duration:
        blocks.append(TimelineBlock(BlockKind.SPEECH, cursor, total_duration))

    timeline = Timeline(blocks=tuple(blocks), total_duration=total_duration)
    logger.debug(
        "Timeline: %d blocks (%d speech, %d silence) over %.2fs",
        len(timeline),
        len(timeline.speech_blocks),
        len(timeline.silence_blocks),
        total_duration,
    )
    return timeline


def validate_timeline(timeline: Timeline, epsilon: float = DEFAULT_EPSILON) -> None:
    """Check contiguity and full coverage; raise MalformedIntervalsError otherwise."""
    blocks = timeline.blocks
    if not blocks:
        raise MalformedIntervalsError("timeline has no blocks")
    if abs(blocks[0].start) > epsilon:
        raise MalformedIntervalsError(f"timeline starts at {blocks[0].start:.3f}, expected 0")
    for i, block in enumerate(blocks):
        if block.end <= block.start:
            raise MalformedIntervalsError(
                f"block {i} has non-positive duration [{block.start:.3f}, {block.end:.3f})"
            )
        if i + 1 < len(blocks) and abs(block.end - blocks[i + 1].start) > epsilon:
            raise MalformedIntervalsError(
                f"gap or overlap between block {i} (end {block.end:.3f}) "
                f"and block {i + 1} (start {blocks[i + 1].start:.3f})"
            )
    if abs(blocks[-1].end - timeline.total_duration) > epsilon:
        raise MalformedIntervalsError(
            f"timeline ends at {blocks[-1].end:.3f}, expected {timeline.total_duration:.3f}"
        )


def silence_from_segments(segments: Sequence[Segment], total_duration: float) -> list[SilenceInterval]:
    """
    Derive silence intervals from transcribed segments: the lead-in before
    the first segment, gaps between consecutive segments and the tail after
    the last one. Threshold filtering is left to build_timeline.
    """
    ordered = sorted(segments, key=lambda s: s.start)
    if not ordered:
        return [SilenceInterval(0.0, total_duration)] if total_duration > 0 else []

    silences: list[SilenceInterval] = []
    if ordered[0].start > 0:
        silences.append(SilenceInterval(0.0, ordered[0].start))

    speech_end = ordered[0].end
    for seg in ordered[1:]:
        if seg.start > speech_end:
            silences.append(SilenceInterval(speech_end, seg.start))
        speech_end = max(speech_end, seg.end)

    if speech_end < total_duration:
        silences.append(SilenceInterval(speech_end, total_duration))
    return silences
