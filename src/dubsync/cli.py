"""
Command-line interface for aligning dubbed speech to an original track.
"""

import argparse
import asyncio
import json
import logging
import os
import shutil
import sys
from pathlib import Path

from dotenv import load_dotenv

from .config import AlignmentConfig
from .errors import AlignmentError, RunCancelled
from .io_ffmpeg import (
    FfmpegAudioBackend,
    RunContext,
    detect_silence_intervals,
    ensure_dir,
    extract_audio,
    get_duration_secs,
    mux_audio_to_video,
)
from .models import Segment, SilenceInterval, Timeline
from .pipeline import align_track
from .report import compare_timelines, log_report
from .timeline import build_timeline, silence_from_segments
from .tts_async import AsyncOpenAI, make_synth_elevenlabs_async, make_synth_openai_async

logger = logging.getLogger("dubsync")


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    ap = argparse.ArgumentParser(description="Align a dubbed speech track to the original timing")

    ap.add_argument(
        "--stage",
        choices=["align", "analyze"],
        default="align",
        help="align: synthesize and fit translated speech; analyze: compare original vs dubbed",
    )

    # IO
    ap.add_argument("--input_video", default=None, help="Original video (audio is extracted)")
    ap.add_argument("--input_audio", default=None, help="Original audio (instead of a video)")
    ap.add_argument("--text", default=None, help="UTF-8 file with the translated text")
    ap.add_argument(
        "--silences",
        default=None,
        help="Silence intervals JSON (list of {start,end}); detected from audio if omitted",
    )
    ap.add_argument("--dubbed", default=None, help="Dubbed video/audio for --stage analyze")
    ap.add_argument("--workdir", default=".work")
    ap.add_argument("--output", default="output_dubbed.mp4")
    ap.add_argument("--output-audio", default=None, help="Aligned wav (default: <workdir>/aligned.wav)")
    ap.add_argument("--keep-temp", action="store_true", help="Keep per-run temp files")

    # TTS provider & voice
    ap.add_argument("--tts-provider", choices=["openai", "elevenlabs"], default="openai")
    ap.add_argument("--tts-model", default="gpt-4o-mini-tts", help="Used when --tts-provider=openai")
    ap.add_argument("--voice", default=None, help="OpenAI voice or ElevenLabs voice_id")
    ap.add_argument(
        "--voice-instructions",
        default=os.getenv("OPENAI_TTS_INSTRUCTIONS"),
        help="Optional TTS style instructions for OpenAI (not read aloud)",
    )
    ap.add_argument("--elevenlabs-model-id", default="eleven_multilingual_v2")

    # Alignment tunables (override DUBSYNC_* environment)
    ap.add_argument("--min-gap", type=float, default=None, help="Shortest pause kept as silence (sec)")
    ap.add_argument("--silence-thresh", type=float, default=-30.0, help="Silence threshold (dBFS)")
    ap.add_argument("--ratio-epsilon", type=float, default=None)
    ap.add_argument("--tempo-min", type=float, default=None)
    ap.add_argument("--tempo-max", type=float, default=None)
    ap.add_argument("--max-stretch", type=float, default=None)
    ap.add_argument("--tolerance", type=float, default=None, help="Allowed final drift (sec)")
    ap.add_argument("--max-concurrent", type=int, default=None, help="Max concurrent TTS requests")
    ap.add_argument("--mismatch-threshold", type=float, default=2.0, help="Analyze: block diff (sec)")
    ap.add_argument("--yes", "-y", action="store_true", help="Do not ask before synthesis")

    # Logging
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return ap.parse_args(argv)


def build_config(args: argparse.Namespace) -> AlignmentConfig:
    """Environment config with CLI overrides applied."""
    base = AlignmentConfig.from_env()
    lo, hi = base.tempo_bounds

    def pick(value, default):
        return default if value is None else value

    return AlignmentConfig(
        min_gap_duration=pick(args.min_gap, base.min_gap_duration),
        ratio_epsilon=pick(args.ratio_epsilon, base.ratio_epsilon),
        tempo_bounds=(pick(args.tempo_min, lo), pick(args.tempo_max, hi)),
        max_total_stretch=pick(args.max_stretch, base.max_total_stretch),
        duration_tolerance=pick(args.tolerance, base.duration_tolerance),
        boundary_epsilon=base.boundary_epsilon,
        max_concurrent=pick(args.max_concurrent, base.max_concurrent),
    )


def load_silences(path: str, total_duration: float) -> list[SilenceInterval]:
    """
    Read silence intervals from JSON. Accepts a list of {start, end}
    silences, or transcribed segments ({start, end, text}) whose gaps are
    taken as silence. Either list may be wrapped under "silences",
    "silenceGaps" or "segments".
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("silences") or data.get("silenceGaps") or data.get("segments") or []
    if data and all(isinstance(d, dict) and "text" in d for d in data):
        segments = [Segment(float(d["start"]), float(d["end"]), d["text"]) for d in data]
        return silence_from_segments(segments, total_duration)
    return [SilenceInterval(float(d["start"]), float(d["end"])) for d in data]


def confirm_prompt(timeline: Timeline) -> bool:
    """Ask before spending synthesis requests."""
    n = len([b for b in timeline.speech_blocks if b.text.strip()])
    answer = input(f"Synthesize {n} speech block(s)? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def make_synthesizer(args: argparse.Namespace, ctx: RunContext, backend: FfmpegAudioBackend):
    if args.tts_provider == "openai":
        if not AsyncOpenAI:
            raise RuntimeError("openai package not installed. Install with: poetry add openai")
        openai_key = os.getenv("OPENAI_API_KEY")
        if not openai_key:
            raise RuntimeError("OPENAI_API_KEY is not set. Put it in .env or environment.")
        client = AsyncOpenAI(api_key=openai_key)
        return make_synth_openai_async(
            client, args.tts_model, args.voice or "alloy", ctx, backend, args.voice_instructions
        )
    return make_synth_elevenlabs_async(
        os.getenv("ELEVENLABS_API_KEY", ""),
        args.voice or os.getenv("ELEVENLABS_VOICE_ID", ""),
        ctx,
        backend,
        model_id=args.elevenlabs_model_id,
    )


def _source_audio(args: argparse.Namespace, ctx: RunContext) -> tuple[str, float]:
    """Return (audio path, target duration) for the original media."""
    if args.input_video:
        wav = ctx.path("extracted")
        extract_audio(args.input_video, wav, sample_rate=16000)
        return wav, get_duration_secs(args.input_video)
    if args.input_audio:
        return args.input_audio, get_duration_secs(args.input_audio)
    raise RuntimeError("--input_video or --input_audio is required")


async def run_align(args: argparse.Namespace, config: AlignmentConfig) -> None:
    if not args.text:
        raise RuntimeError("--text is required for --stage align")
    text = Path(args.text).read_text(encoding="utf-8")
    ensure_dir(args.workdir)
    out_wav = args.output_audio or os.path.join(args.workdir, "aligned.wav")

    with RunContext(base_dir=os.path.join(args.workdir, "tmp"), keep=args.keep_temp) as ctx:
        audio_path, total = _source_audio(args, ctx)
        logger.info(f"[dur] original = {total:.3f}s")

        if args.silences:
            silences = load_silences(args.silences, total)
            logger.info(f"Loaded {len(silences)} silence interval(s) from {args.silences}")
        else:
            silences = detect_silence_intervals(
                audio_path, config.min_gap_duration, silence_thresh_db=args.silence_thresh
            )

        backend = FfmpegAudioBackend(ctx)
        synthesize = make_synthesizer(args, ctx, backend)
        track = await align_track(
            silences,
            total,
            text,
            backend.collaborators(synthesize),
            config,
            confirm=None if args.yes else confirm_prompt,
        )

        ensure_dir(str(Path(out_wav).parent))
        shutil.copyfile(track.audio, out_wav)
        logger.info(f"Exported aligned audio -> {out_wav} ({track.duration:.3f}s)")

    if args.input_video:
        mux_audio_to_video(args.input_video, out_wav, args.output)
        logger.info(f"Done (dubbed) -> {args.output}")


def run_analyze(args: argparse.Namespace, config: AlignmentConfig) -> None:
    original = args.input_video or args.input_audio
    if not original or not args.dubbed:
        raise RuntimeError("--stage analyze needs --input_video/--input_audio and --dubbed")

    timelines = []
    with RunContext(base_dir=os.path.join(args.workdir, "tmp"), keep=args.keep_temp) as ctx:
        for label, media in (("original", original), ("dubbed", args.dubbed)):
            wav = ctx.path(label)
            extract_audio(media, wav, sample_rate=16000)
            total = get_duration_secs(wav)
            silences = detect_silence_intervals(
                wav, config.min_gap_duration, silence_thresh_db=args.silence_thresh
            )
            timelines.append(
                build_timeline(
                    silences, total, config.min_gap_duration,
                    boundary_epsilon=config.boundary_epsilon,
                )
            )

    log_report(compare_timelines(*timelines, mismatch_threshold=args.mismatch_threshold))


async def main_async(argv: list[str] | None = None) -> int:
    """Main async CLI entry point."""
    load_dotenv()
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = build_config(args)
        if args.stage == "analyze":
            run_analyze(args, config)
        else:
            await run_align(args, config)
    except RunCancelled:
        logger.info("Cancelled before synthesis, nothing was rendered")
        return 1
    except AlignmentError as e:
        logger.error(f"Alignment failed: {e}")
        return 1
    return 0


def main() -> None:
    """Main CLI entry point."""
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
