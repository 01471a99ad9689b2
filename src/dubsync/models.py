"""
Data models for the alignment engine.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any


class BlockKind(Enum):
    """Kind of a timeline block."""

    SPEECH = "speech"
    SILENCE = "silence"


@dataclass
class Segment:
    """A single transcribed segment with timing and text."""

    start: float  # seconds
    end: float  # seconds
    text: str


@dataclass(frozen=True)
class SilenceInterval:
    """A span of detected silence in the original track."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class TimelineBlock:
    """A contiguous speech or silence span of the original track."""

    kind: BlockKind
    start: float
    end: float
    text: str = ""  # assigned to speech blocks only

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def is_speech(self) -> bool:
        return self.kind is BlockKind.SPEECH


@dataclass(frozen=True)
class Timeline:
    """Gap-free, ordered sequence of blocks covering [0, total_duration)."""

    blocks: tuple[TimelineBlock, ...]
    total_duration: float

    @property
    def speech_blocks(self) -> list[TimelineBlock]:
        return [b for b in self.blocks if b.is_speech]

    @property
    def silence_blocks(self) -> list[TimelineBlock]:
        return [b for b in self.blocks if not b.is_speech]

    @property
    def speech_duration(self) -> float:
        return sum(b.duration for b in self.speech_blocks)

    def __len__(self) -> int:
        return len(self.blocks)


@dataclass(frozen=True)
class TempoPlan:
    """
    Ordered tempo factors applied one after another to the same audio.

    Factors follow ffmpeg atempo semantics: values > 1 shorten the audio,
    values < 1 lengthen it.
    """

    factors: tuple[float, ...]
    required_ratio: float  # target / rendered
    needed_tempo: float  # composite factor actually planned
    clamped: bool = False

    @property
    def product(self) -> float:
        return math.prod(self.factors) if self.factors else 1.0

    @property
    def is_empty(self) -> bool:
        return not self.factors


@dataclass
class RenderedSegment:
    """Audio produced by the synthesis collaborator for one block."""

    audio: Any  # opaque handle, e.g. a file path
    measured_duration: float


@dataclass
class AlignedTrack:
    """Final duration-matched track plus any non-fatal warnings."""

    audio: Any
    duration: float
    warnings: tuple = ()
