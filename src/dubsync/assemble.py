"""
Asynchronous assembly of a duration-matched track from a text-bearing timeline.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from tqdm.asyncio import tqdm

from .config import AlignmentConfig
from .errors import AlignmentError, AssemblyDriftWarning, ClampedTempoWarning, CollaboratorFailure
from .models import AlignedTrack, RenderedSegment, TempoPlan, Timeline, TimelineBlock
from .tempo import plan_tempo
from .timeline import validate_timeline

logger = logging.getLogger("dubsync")


@dataclass
class Collaborators:
    """Async audio services the assembler drives. Handles are opaque."""

    synthesize: Callable[[str], Awaitable[RenderedSegment]]
    apply_tempo: Callable[[Any, TempoPlan], Awaitable[Any]]
    silence: Callable[[float], Awaitable[Any]]
    concat: Callable[[list[Any]], Awaitable[Any]]
    probe_duration: Callable[[Any], Awaitable[float]]
    release: Callable[[Any], Awaitable[None]] | None = None


async def _call(
    operation: str,
    awaitable: Awaitable[Any],
    *,
    block_index: int | None = None,
    requested: float | None = None,
    actual: float | None = None,
) -> Any:
    """Await a collaborator call, wrapping failures with block context."""
    try:
        return await awaitable
    except AlignmentError:
        raise
    except Exception as e:
        raise CollaboratorFailure(
            operation,
            block_index=block_index,
            requested_duration=requested,
            actual_duration=actual,
            message=str(e) or type(e).__name__,
        ) from e


async def _release_all(collab: Collaborators, handles: Sequence[Any]) -> None:
    if collab.release is None:
        return
    for handle in handles:
        try:
            await collab.release(handle)
        except Exception as e:
            logger.warning(f"Failed to release audio handle {handle!r}: {e}")


async def assemble_timeline(
    timeline: Timeline,
    collab: Collaborators,
    config: AlignmentConfig | None = None,
) -> AlignedTrack:
    """
    Render every block and concatenate the results in timeline order.

    Speech blocks with text are synthesized and fitted to the block duration
    with a tempo chain; silence blocks and empty speech blocks become exact
    silence. Rendering runs with bounded concurrency, but each result lands
    in the slot of its block index, so completion order never affects the
    output. Any collaborator failure aborts the run and releases every
    handle produced so far.
    """
    config = config or AlignmentConfig()
    validate_timeline(timeline, config.boundary_epsilon)

    blocks = timeline.blocks
    slots: list[Any] = [None] * len(blocks)
    owned: list[Any] = []  # every handle produced by this run
    warnings: list[Any] = []
    semaphore = asyncio.Semaphore(config.max_concurrent)

    async def render_block(i: int, block: TimelineBlock) -> None:
        async with semaphore:
            if not block.is_speech or not block.text.strip():
                audio = await _call(
                    "silence", collab.silence(block.duration),
                    block_index=i, requested=block.duration,
                )
                owned.append(audio)
                slots[i] = audio
                return

            rendered = await _call(
                "synthesize", collab.synthesize(block.text),
                block_index=i, requested=block.duration,
            )
            owned.append(rendered.audio)
            try:
                plan = plan_tempo(
                    rendered.measured_duration,
                    block.duration,
                    bounds=config.tempo_bounds,
                    max_total_stretch=config.max_total_stretch,
                    ratio_epsilon=config.ratio_epsilon,
                )
            except ValueError as e:
                raise CollaboratorFailure(
                    "synthesize",
                    block_index=i,
                    requested_duration=block.duration,
                    actual_duration=rendered.measured_duration,
                    message=str(e),
                ) from e

            if plan.clamped:
                w = ClampedTempoWarning(i, block.duration, rendered.measured_duration, plan.factors)
                logger.warning(str(w))
                warnings.append(w)

            if plan.is_empty:
                slots[i] = rendered.audio
                return

            logger.debug(
                f"Block {i}: rendered {rendered.measured_duration:.2f}s -> "
                f"target {block.duration:.2f}s, tempo {list(plan.factors)}"
            )
            audio = await _call(
                "apply_tempo", collab.apply_tempo(rendered.audio, plan),
                block_index=i, requested=block.duration, actual=rendered.measured_duration,
            )
            owned.append(audio)
            slots[i] = audio

    tasks = [asyncio.create_task(render_block(i, b)) for i, b in enumerate(blocks)]
    try:
        n_speech = sum(1 for b in blocks if b.is_speech and b.text.strip())
        logger.info(f"Rendering {len(blocks)} blocks ({n_speech} with speech) asynchronously...")
        await tqdm.gather(*tasks, desc="Rendering blocks")
        final = await _call("concat", collab.concat(list(slots)))
    except BaseException:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await _release_all(collab, owned)
        raise

    await _release_all(collab, owned)

    try:
        final_duration = await _call("probe_duration", collab.probe_duration(final))
    except BaseException:
        await _release_all(collab, [final])
        raise
    drift = final_duration - timeline.total_duration
    logger.info(
        f"[dur] assembled = {final_duration:.3f}s, expected = {timeline.total_duration:.3f}s "
        f"(drift {drift:+.3f}s)"
    )
    if abs(drift) > config.duration_tolerance:
        w = AssemblyDriftWarning(timeline.total_duration, final_duration, config.duration_tolerance)
        logger.warning(str(w))
        warnings.append(w)

    return AlignedTrack(audio=final, duration=final_duration, warnings=tuple(warnings))
