"""
Tests for timeline assembly with in-memory collaborators.
"""

import asyncio

import pytest

from src.dubsync.assemble import assemble_timeline
from src.dubsync.config import AlignmentConfig
from src.dubsync.distribute import distribute_text
from src.dubsync.errors import (
    AssemblyDriftWarning,
    ClampedTempoWarning,
    CollaboratorFailure,
    MalformedIntervalsError,
)
from src.dubsync.models import BlockKind, Timeline, TimelineBlock
from src.dubsync.timeline import build_timeline
from src.tests.fakes import FakeStudio


def _names(op, studio):
    return [c for c in studio.calls if c[0] == op]


def _prepared(intervals, total, text):
    return distribute_text(text, build_timeline(intervals, total, min_gap_duration=2.0))


def test_end_to_end_duration_matches():
    """90 words over 40s + 10s pause + 50s, rendered at half length, fits exactly."""
    words = " ".join(f"w{i}" for i in range(90))
    timeline = _prepared([(40.0, 50.0)], 100.0, words)
    studio = FakeStudio(seconds_per_word=0.5)

    track = asyncio.run(assemble_timeline(timeline, studio.collaborators()))

    assert track.duration == pytest.approx(100.0)
    assert track.warnings == ()
    assert track.audio.labels == ("speech:w0", "silence", "speech:w40")
    assert [c[1] for c in _names("apply_tempo", studio)] == [(0.5,), (0.5,)]
    assert _names("silence", studio) == [("silence", 10.0)]


def test_order_is_preserved_when_renders_finish_out_of_order():
    # five speech blocks of 10s separated by 3s pauses
    intervals = [(10.0 + 13.0 * k, 13.0 + 13.0 * k) for k in range(4)]
    words = " ".join(f"b{i // 20}x{i}" for i in range(100))
    timeline = _prepared(intervals, 62.0, words)
    texts = [b.text for b in timeline.speech_blocks]
    # first blocks take longest to render
    studio = FakeStudio(seconds_per_word=0.5, delays={t: 0.05 * (5 - i) for i, t in enumerate(texts)})

    track = asyncio.run(
        assemble_timeline(timeline, studio.collaborators(), AlignmentConfig(max_concurrent=5))
    )

    speech_labels = [lbl for lbl in track.audio.labels if lbl != "silence"]
    assert speech_labels == [f"speech:{t.split()[0]}" for t in texts]
    assert len(track.audio.labels) == len(timeline)


def test_concurrency_is_bounded():
    intervals = [(10.0 + 13.0 * k, 13.0 + 13.0 * k) for k in range(4)]
    timeline = _prepared(intervals, 62.0, " ".join(f"w{i}" for i in range(100)))
    studio = FakeStudio(delays={b.text: 0.02 for b in timeline.speech_blocks})

    asyncio.run(assemble_timeline(timeline, studio.collaborators(), AlignmentConfig(max_concurrent=2)))

    assert studio.peak <= 2


def test_empty_speech_blocks_become_silence():
    timeline = _prepared([(40.0, 50.0)], 100.0, "")
    studio = FakeStudio()

    track = asyncio.run(assemble_timeline(timeline, studio.collaborators()))

    assert _names("synthesize", studio) == []
    assert [c[1] for c in _names("silence", studio)] == [40.0, 10.0, 50.0]
    assert track.duration == pytest.approx(100.0)


def test_clamped_tempo_and_drift_are_reported_not_raised():
    """One word for a 20s block needs a 40x slowdown; only 4x is applied."""
    timeline = _prepared([], 20.0, "hello")
    studio = FakeStudio(seconds_per_word=0.5)

    track = asyncio.run(assemble_timeline(timeline, studio.collaborators()))

    clamped = [w for w in track.warnings if isinstance(w, ClampedTempoWarning)]
    drift = [w for w in track.warnings if isinstance(w, AssemblyDriftWarning)]
    assert len(clamped) == 1 and clamped[0].block_index == 0
    assert clamped[0].factors == pytest.approx((0.5, 0.5))
    assert len(drift) == 1
    assert drift[0].actual_duration == pytest.approx(2.0)
    assert track.duration == pytest.approx(2.0)


def test_small_drift_skips_tempo():
    timeline = _prepared([], 10.1, " ".join(["w"] * 20))  # 20 words * 0.5s = 10s
    studio = FakeStudio(seconds_per_word=0.5)

    track = asyncio.run(assemble_timeline(timeline, studio.collaborators()))

    assert _names("apply_tempo", studio) == []
    assert track.warnings == ()


def test_collaborator_failure_aborts_and_releases():
    intervals = [(10.0 + 13.0 * k, 13.0 + 13.0 * k) for k in range(4)]
    words = " ".join(f"b{i // 20}x{i}" for i in range(100))
    timeline = _prepared(intervals, 62.0, words)
    studio = FakeStudio(fail_on="b2x")

    with pytest.raises(CollaboratorFailure) as excinfo:
        asyncio.run(assemble_timeline(timeline, studio.collaborators()))

    err = excinfo.value
    assert err.operation == "synthesize"
    assert err.block_index == 4  # third speech block
    assert err.requested_duration == pytest.approx(10.0)
    assert isinstance(err.__cause__, RuntimeError)
    assert _names("concat", studio) == []
    # nothing produced before the failure is leaked
    assert len(studio.released) == len(studio.produced)
    assert set(studio.released) == set(studio.produced)


def test_zero_length_render_is_a_collaborator_failure():
    timeline = _prepared([], 10.0, "hello world")
    studio = FakeStudio(seconds_per_word=0.0)

    with pytest.raises(CollaboratorFailure) as excinfo:
        asyncio.run(assemble_timeline(timeline, studio.collaborators()))

    assert excinfo.value.actual_duration == 0.0
    assert len(studio.released) == 1


def test_malformed_timeline_fails_before_any_call():
    broken = Timeline(
        blocks=(
            TimelineBlock(BlockKind.SPEECH, 0.0, 4.0, "hi"),
            TimelineBlock(BlockKind.SILENCE, 6.0, 10.0),
        ),
        total_duration=10.0,
    )
    studio = FakeStudio()

    with pytest.raises(MalformedIntervalsError):
        asyncio.run(assemble_timeline(broken, studio.collaborators()))

    assert studio.calls == []


def test_intermediate_handles_released_after_merge():
    timeline = _prepared([(40.0, 50.0)], 100.0, " ".join(f"w{i}" for i in range(90)))
    studio = FakeStudio(seconds_per_word=0.5)

    track = asyncio.run(assemble_timeline(timeline, studio.collaborators()))

    # 2 raw renders + 2 tempo outputs + 1 silence; the final track is kept
    assert len(studio.released) == 5
    assert track.audio not in studio.released


def test_cancellation_mid_render_releases_finished_blocks():
    intervals = [(10.0 + 13.0 * k, 13.0 + 13.0 * k) for k in range(4)]
    words = " ".join(f"b{i // 20}x{i}" for i in range(100))
    timeline = _prepared(intervals, 62.0, words)
    texts = [b.text for b in timeline.speech_blocks]
    # the first speech block finishes at once, the rest are still rendering
    studio = FakeStudio(seconds_per_word=0.5, delays={t: 5.0 for t in texts[1:]})

    async def run_and_cancel():
        task = asyncio.create_task(assemble_timeline(timeline, studio.collaborators()))
        await asyncio.sleep(0.1)
        task.cancel()
        await task

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(run_and_cancel())

    assert studio.produced
    assert set(studio.released) == set(studio.produced)
    assert _names("concat", studio) == []


def test_final_track_released_when_probe_fails():
    timeline = _prepared([(40.0, 50.0)], 100.0, " ".join(f"w{i}" for i in range(90)))
    studio = FakeStudio(seconds_per_word=0.5)
    merged = []

    async def concat(handles):
        audio = await studio.concat(handles)
        merged.append(audio)
        return audio

    async def probe_duration(audio):
        raise RuntimeError("ffprobe returned no duration")

    collab = studio.collaborators()
    collab.concat = concat
    collab.probe_duration = probe_duration

    with pytest.raises(CollaboratorFailure) as excinfo:
        asyncio.run(assemble_timeline(timeline, collab))

    assert excinfo.value.operation == "probe_duration"
    assert merged and merged[0] in studio.released
    assert set(studio.produced) <= set(studio.released)
