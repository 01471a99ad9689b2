"""
Proportional distribution of translated text across speech blocks.
"""

import dataclasses
import logging
import math
from collections.abc import Sequence

from .errors import DegenerateTimelineError, NoSpeechBlocksError
from .models import Timeline

logger = logging.getLogger("dubsync")


def tokenize(text: str) -> list[str]:
    """Split text into whitespace-delimited words."""
    return text.split()


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def distribute_text(text: str | Sequence[str], timeline: Timeline) -> Timeline:
    """
    Assign words to speech blocks proportionally to their duration share.

    Words are consumed in order and never split. Any words left over by
    rounding go to the last speech block, so joining the block texts always
    reproduces the input word sequence.
    """
    tokens = tokenize(text) if isinstance(text, str) else list(text)

    speech_idx = [i for i, b in enumerate(timeline.blocks) if b.is_speech]
    if not speech_idx:
        raise NoSpeechBlocksError("timeline has no speech blocks to carry text")

    total_speech = timeline.speech_duration
    if total_speech <= 0:
        raise DegenerateTimelineError("total speech duration is zero")

    blocks = list(timeline.blocks)
    assigned: dict[int, list[str]] = {}
    pos = 0
    for n, i in enumerate(speech_idx, start=1):
        block = blocks[i]
        share = block.duration / total_speech
        count = min(_round_half_up(len(tokens) * share), len(tokens) - pos)
        assigned[i] = tokens[pos:pos + count]
        pos += count
        logger.info(
            f"Block {n}: {block.duration:.1f}s ({share * 100:.1f}%) -> {count} words"
        )

    if pos < len(tokens):
        leftover = len(tokens) - pos
        assigned[speech_idx[-1]].extend(tokens[pos:])
        logger.warning(f"{leftover} leftover word(s) appended to the last speech block")

    for i, words in assigned.items():
        blocks[i] = dataclasses.replace(blocks[i], text=" ".join(words))

    return dataclasses.replace(timeline, blocks=tuple(blocks))
