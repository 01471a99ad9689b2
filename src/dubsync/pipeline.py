"""
End-to-end alignment run: timeline -> text distribution -> checkpoint -> assembly.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any

from .assemble import Collaborators, assemble_timeline
from .config import AlignmentConfig
from .distribute import distribute_text
from .errors import CollaboratorFailure, RunCancelled
from .models import AlignedTrack, Timeline
from .timeline import build_timeline

logger = logging.getLogger("dubsync")


def format_time(seconds: float) -> str:
    """Format seconds as M:SS.s for log lines."""
    mins = int(seconds // 60)
    return f"{mins}:{seconds - mins * 60:04.1f}"


def log_timeline(timeline: Timeline) -> None:
    logger.info(f"Timeline: {len(timeline)} blocks over {timeline.total_duration:.2f}s")
    for i, b in enumerate(timeline.blocks, start=1):
        label = "SPEECH " if b.is_speech else "SILENCE"
        extra = f" ({len(b.text)} chars)" if b.is_speech else ""
        logger.info(f"  {i:3d}. {label} {format_time(b.start)} -> {b.duration:.2f}s{extra}")


def prepare_timeline(
    silence_intervals: Iterable[Any],
    total_duration: float,
    translated_text: str,
    config: AlignmentConfig | None = None,
) -> Timeline:
    """Build the timeline and assign the translated text to its speech blocks."""
    config = config or AlignmentConfig()
    timeline = build_timeline(
        silence_intervals,
        total_duration,
        config.min_gap_duration,
        boundary_epsilon=config.boundary_epsilon,
    )
    return distribute_text(translated_text, timeline)


async def align_track(
    silence_intervals: Iterable[Any],
    total_duration: float,
    translated_text: str,
    collaborators: Collaborators,
    config: AlignmentConfig | None = None,
    confirm: Callable[[Timeline], bool] | None = None,
) -> AlignedTrack:
    """
    Run the full alignment.

    confirm, if given, is called once after text distribution and before
    any synthesis; a falsy answer raises RunCancelled. On a collaborator
    failure the distributed timeline is attached to the error so callers
    can retry assembly without rebuilding it.
    """
    config = config or AlignmentConfig()
    timeline = prepare_timeline(silence_intervals, total_duration, translated_text, config)
    log_timeline(timeline)

    if confirm is not None and not confirm(timeline):
        raise RunCancelled("run cancelled before synthesis")

    try:
        track = await assemble_timeline(timeline, collaborators, config)
    except CollaboratorFailure as e:
        e.timeline = timeline
        raise

    if track.warnings:
        logger.warning(f"Finished with {len(track.warnings)} sync-quality warning(s)")
    return track
