"""
Structural comparison of an original and a dubbed timeline.
"""

import logging
from dataclasses import dataclass, field
from itertools import zip_longest

from .models import Timeline, TimelineBlock
from .pipeline import format_time

logger = logging.getLogger("dubsync")


@dataclass
class BlockComparison:
    """One row of the block-by-block comparison."""

    index: int
    original: TimelineBlock | None
    dubbed: TimelineBlock | None
    ok: bool
    diff: float | None = None  # dubbed - original duration


@dataclass
class SyncReport:
    """Summary of how closely the dubbed structure follows the original."""

    original_duration: float
    dubbed_duration: float
    rows: list[BlockComparison] = field(default_factory=list)
    original_speech: tuple[int, float] = (0, 0.0)  # (count, total seconds)
    dubbed_speech: tuple[int, float] = (0, 0.0)
    original_silence: tuple[int, float] = (0, 0.0)
    dubbed_silence: tuple[int, float] = (0, 0.0)

    @property
    def duration_diff(self) -> float:
        return self.dubbed_duration - self.original_duration

    @property
    def speech_ratio(self) -> float | None:
        if self.original_speech[1] <= 0:
            return None
        return self.dubbed_speech[1] / self.original_speech[1]

    @property
    def mismatches(self) -> list[BlockComparison]:
        return [r for r in self.rows if not r.ok]

    @property
    def in_sync(self) -> bool:
        return not self.mismatches


def _totals(blocks: list[TimelineBlock]) -> tuple[int, float]:
    return len(blocks), sum(b.duration for b in blocks)


def compare_timelines(
    original: Timeline, dubbed: Timeline, mismatch_threshold: float = 2.0
) -> SyncReport:
    """
    Pair blocks by position and flag those whose duration differs by more
    than mismatch_threshold, or whose kind differs, or that are missing.
    """
    rows: list[BlockComparison] = []
    for i, (o, d) in enumerate(zip_longest(original.blocks, dubbed.blocks)):
        if o is None or d is None:
            rows.append(BlockComparison(i, o, d, ok=False))
            continue
        diff = d.duration - o.duration
        ok = o.kind is d.kind and abs(diff) <= mismatch_threshold
        rows.append(BlockComparison(i, o, d, ok=ok, diff=diff))

    return SyncReport(
        original_duration=original.total_duration,
        dubbed_duration=dubbed.total_duration,
        rows=rows,
        original_speech=_totals(original.speech_blocks),
        dubbed_speech=_totals(dubbed.speech_blocks),
        original_silence=_totals(original.silence_blocks),
        dubbed_silence=_totals(dubbed.silence_blocks),
    )


def _describe(b: TimelineBlock | None) -> str:
    if b is None:
        return "MISSING"
    return f"{b.kind.value[0].upper()} {b.duration:.1f}s ({format_time(b.start)})"


def log_report(report: SyncReport) -> None:
    """Write the comparison and its summary to the log."""
    logger.info(
        f"Durations: original {report.original_duration:.2f}s, "
        f"dubbed {report.dubbed_duration:.2f}s (diff {report.duration_diff:+.2f}s)"
    )
    for row in report.rows:
        diff = "" if row.diff is None else f" {row.diff:+.1f}s"
        mark = "ok" if row.ok else "MISMATCH"
        logger.info(f"  {row.index + 1:3d}. {_describe(row.original):<22} -> {_describe(row.dubbed):<22} {mark}{diff}")

    n_os, t_os = report.original_speech
    n_ds, t_ds = report.dubbed_speech
    logger.info(f"Speech blocks: original {n_os} ({t_os:.1f}s), dubbed {n_ds} ({t_ds:.1f}s)")
    if report.speech_ratio is not None:
        logger.info(f"Speech ratio: {report.speech_ratio * 100:.1f}%")
    n_osl, t_osl = report.original_silence
    n_dsl, t_dsl = report.dubbed_silence
    logger.info(f"Silences: original {n_osl} ({t_osl:.1f}s), dubbed {n_dsl} ({t_dsl:.1f}s)")
    if report.in_sync:
        logger.info("Structures match")
    else:
        logger.warning(f"{len(report.mismatches)} block(s) out of sync")
