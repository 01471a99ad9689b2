"""
Audio and video processing collaborators using ffmpeg/ffprobe and pydub.
"""

import asyncio
import itertools
import logging
import shutil
import subprocess
import tempfile
import uuid
from collections.abc import Callable, Awaitable
from pathlib import Path

from pydub import AudioSegment
from pydub.silence import detect_silence

from .assemble import Collaborators
from .models import RenderedSegment, SilenceInterval, TempoPlan
from .tempo import atempo_filter

logger = logging.getLogger("dubsync")


def run(cmd: list[str], *, check: bool = True) -> str:
    """Run a shell command and return stdout."""
    logger.debug("Running: %s", ' '.join(map(str, cmd)))
    proc = subprocess.run(
        cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True, check=False
    )
    if proc.returncode != 0 and check:
        logger.error("Command failed with code %d: %s", proc.returncode, proc.stdout)
        msg = f"Command failed with code {proc.returncode}"
        raise RuntimeError(msg)
    return proc.stdout


def ensure_dir(path: str) -> None:
    """Ensure directory exists."""
    if path:
        Path(path).mkdir(parents=True, exist_ok=True)


class RunContext:
    """
    Per-run owner of transient audio files.

    Every file is allocated through path() inside a private temp directory
    named after the run id; leaving the context removes the directory
    whether the run succeeded or failed.
    """

    def __init__(self, base_dir: str | None = None, keep: bool = False) -> None:
        self.run_id = uuid.uuid4().hex[:12]
        self.base_dir = base_dir
        self.keep = keep
        self.dir: str | None = None
        self._files: set[str] = set()
        self._counter = itertools.count()

    def __enter__(self) -> "RunContext":
        if self.base_dir:
            ensure_dir(self.base_dir)
        self.dir = tempfile.mkdtemp(prefix=f"dubsync_{self.run_id}_", dir=self.base_dir)
        logger.debug(f"Run {self.run_id}: temp dir {self.dir}")
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def live_files(self) -> set[str]:
        return set(self._files)

    def path(self, tag: str, suffix: str = ".wav") -> str:
        if self.dir is None:
            raise RuntimeError("RunContext is not active")
        p = str(Path(self.dir) / f"{tag}_{next(self._counter):04d}{suffix}")
        self._files.add(p)
        return p

    def release(self, path: str) -> None:
        self._files.discard(path)
        Path(path).unlink(missing_ok=True)

    def close(self) -> None:
        if self.dir is None:
            return
        if self.keep:
            logger.info(f"Keeping temp files of run {self.run_id} in {self.dir}")
        else:
            shutil.rmtree(self.dir, ignore_errors=True)
        self._files.clear()
        self.dir = None


def time_stretch_wav_ffmpeg(in_wav: str, out_wav: str, plan: TempoPlan) -> None:
    """
    Apply a tempo plan via an ffmpeg atempo chain.
    NOTE (correct semantics): atempo < 1.0 => slow down (longer),
    atempo > 1.0 => speed up (shorter).
    """
    if plan.is_empty:
        shutil.copyfile(in_wav, out_wav)
        return
    run(["ffmpeg", "-y", "-i", in_wav, "-filter:a", atempo_filter(plan), out_wav])


def write_silence_wav(out_wav: str, duration: float, sample_rate: int = 24000) -> None:
    """Write an exact-duration silent wav (millisecond resolution)."""
    clip = AudioSegment.silent(duration=round(duration * 1000), frame_rate=sample_rate)
    clip.export(out_wav, format="wav")


def concat_wavs(paths: list[str], out_wav: str, sample_rate: int = 24000) -> None:
    """Concatenate audio files strictly in the given order."""
    track = AudioSegment.silent(duration=0, frame_rate=sample_rate)
    for p in paths:
        clip = AudioSegment.from_file(p).set_frame_rate(sample_rate).set_channels(1)
        track += clip
    track.export(out_wav, format="wav")


def get_duration_secs(path: str) -> float:
    """Get media duration in seconds via ffprobe."""
    out = run(
        [
            "ffprobe",
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            path,
        ]
    )
    try:
        return float(out.strip())
    except ValueError:
        raise RuntimeError(f"ffprobe returned no duration for {path}: {out.strip()!r}") from None


def detect_silence_intervals(
    audio_path: str,
    min_silence_secs: float = 2.0,
    silence_thresh_db: float = -30.0,
) -> list[SilenceInterval]:
    """Detect silent spans in an audio file, in seconds."""
    audio = AudioSegment.from_file(audio_path)
    spans = detect_silence(
        audio,
        min_silence_len=max(1, int(min_silence_secs * 1000)),
        silence_thresh=silence_thresh_db,
    )
    intervals = [SilenceInterval(start / 1000.0, end / 1000.0) for start, end in spans]
    logger.info(f"Detected {len(intervals)} silence interval(s) in {audio_path}")
    return intervals


def extract_audio(input_video: str, out_wav: str, sample_rate: int = 16000) -> None:
    """Extract audio from video file."""
    ensure_dir(str(Path(out_wav).parent))
    cmd = [
        "ffmpeg",
        "-y",
        "-i",
        input_video,
        "-vn",
        "-acodec",
        "pcm_s16le",
        "-ar",
        str(sample_rate),
        "-ac",
        "1",
        out_wav,
    ]
    run(cmd)


def mux_audio_to_video(input_video: str, audio_wav: str, output_video: str) -> None:
    """Replace the audio stream of a video (copy video stream)."""
    cmd = [
        "ffmpeg",
        "-y",
        "-i",
        input_video,
        "-i",
        audio_wav,
        "-c:v",
        "copy",
        "-c:a",
        "aac",
        "-b:a",
        "192k",
        "-map",
        "0:v:0",
        "-map",
        "1:a:0",
        "-shortest",
        output_video,
    ]
    run(cmd)


class FfmpegAudioBackend:
    """File-based audio collaborators; every file lives in the run context."""

    def __init__(self, ctx: RunContext, sample_rate: int = 24000) -> None:
        self.ctx = ctx
        self.sample_rate = sample_rate

    async def apply_tempo(self, audio: str, plan: TempoPlan) -> str:
        out = self.ctx.path("tempo")
        await asyncio.to_thread(time_stretch_wav_ffmpeg, audio, out, plan)
        return out

    async def silence(self, duration: float) -> str:
        out = self.ctx.path("silence")
        await asyncio.to_thread(write_silence_wav, out, duration, self.sample_rate)
        return out

    async def concat(self, paths: list[str], tag: str = "aligned") -> str:
        out = self.ctx.path(tag)
        await asyncio.to_thread(concat_wavs, paths, out, self.sample_rate)
        return out

    async def probe_duration(self, audio: str) -> float:
        return await asyncio.to_thread(get_duration_secs, audio)

    async def release(self, audio: str) -> None:
        self.ctx.release(audio)

    def collaborators(self, synthesize: Callable[[str], Awaitable[RenderedSegment]]) -> Collaborators:
        return Collaborators(
            synthesize=synthesize,
            apply_tempo=self.apply_tempo,
            silence=self.silence,
            concat=self.concat,
            probe_duration=self.probe_duration,
            release=self.release,
        )
