"""
Asynchronous text-to-speech collaborators for OpenAI and ElevenLabs.
"""

import asyncio
import hashlib
import logging
import re
from collections.abc import Awaitable, Callable
from pathlib import Path

import httpx
from pydub import AudioSegment

from .io_ffmpeg import FfmpegAudioBackend, RunContext
from .models import RenderedSegment

logger = logging.getLogger("dubsync")

# Optional OpenAI SDK
try:
    from openai import AsyncOpenAI
except ImportError:
    AsyncOpenAI = None

Synthesizer = Callable[[str], Awaitable[RenderedSegment]]


def _hash_for_cache(provider: str, model: str, voice: str, text: str) -> str:
    """Generate cache hash for TTS audio."""
    key = f"{provider}|{model}|{voice}|{text}".encode()
    return hashlib.sha1(key).hexdigest()[:12]


# OpenAI TTS accepts up to 4096 characters per request
MAX_TTS_CHARS = 4000

_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+$")


def _pack(pieces: list[str], max_chars: int, sep: str = "") -> list[str]:
    """Greedily join pieces into chunks of at most max_chars."""
    chunks: list[str] = []
    current = ""
    for piece in pieces:
        candidate = current + sep + piece if current else piece
        if len(candidate) <= max_chars:
            current = candidate
            continue
        if current:
            chunks.append(current)
        current = piece
    if current:
        chunks.append(current)
    return chunks


def split_text_into_chunks(text: str, max_chars: int = MAX_TTS_CHARS) -> list[str]:
    """
    Split text into request-sized chunks, preferring sentence boundaries.

    Sentences longer than max_chars are split on commas, then on whitespace,
    and as a last resort cut at max_chars.
    """
    text = text.strip()
    if len(text) <= max_chars:
        return [text] if text else []

    pieces: list[str] = []
    for sentence in _SENTENCE_RE.findall(text):
        sentence = sentence.strip()
        if not sentence:
            continue
        if len(sentence) <= max_chars:
            pieces.append(sentence)
            continue
        parts = [p.strip() for p in sentence.split(",")]
        parts = [p + "," for p in parts[:-1]] + parts[-1:]
        for part in _pack([p for p in parts if p], max_chars, " "):
            if len(part) <= max_chars:
                pieces.append(part)
                continue
            for word_chunk in _pack(part.split(), max_chars, " "):
                pieces.extend(
                    word_chunk[i : i + max_chars] for i in range(0, len(word_chunk), max_chars)
                )

    return _pack(pieces, max_chars, " ")


async def tts_speak_openai_async(
    client: AsyncOpenAI,
    text: str,
    model: str,
    voice: str,
    out_path: str,
    instructions: str | None = None,
) -> None:
    """Asynchronously synthesize speech using OpenAI TTS."""
    if client is None:
        raise RuntimeError("OpenAI client is not initialized (missing OPENAI_API_KEY)")

    try:
        kwargs = {"instructions": instructions} if instructions else {}
        response = await client.audio.speech.create(
            model=model,
            voice=voice,
            input=text,
            response_format="wav",
            **kwargs,
        )

        with open(out_path, "wb") as f:
            for chunk in response.iter_bytes():
                f.write(chunk)

    except Exception as e:
        logger.error(f"OpenAI TTS failed for text '{text[:50]}...': {e}")
        raise


async def elevenlabs_tts_speak_async(
    api_key: str, voice_id: str, text: str, out_path: str, model_id: str = "eleven_multilingual_v2"
) -> None:
    """Asynchronously synthesize speech using ElevenLabs TTS (mp3 converted to wav)."""
    if not api_key:
        raise RuntimeError("ELEVENLABS_API_KEY is not set.")
    if not voice_id:
        raise RuntimeError(
            "ElevenLabs voice_id is required (use --voice or ELEVENLABS_VOICE_ID)."
        )

    url = f"https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
    headers = {
        "xi-api-key": api_key,
        "accept": "audio/mpeg",
        "Content-Type": "application/json",
        "User-Agent": "dubsync/0.1",
    }
    payload = {
        "text": text,
        "model_id": model_id,
        "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
    }

    async with httpx.AsyncClient(follow_redirects=True, timeout=60.0) as client:
        r = await client.post(url, json=payload, headers=headers)
    ctype = r.headers.get("content-type", "")
    if r.status_code != 200 or not ctype.startswith(("audio/", "application/octet-stream")):
        raise RuntimeError(f"ElevenLabs TTS failed: {r.status_code} {r.text[:300]}")

    tmp_mp3 = out_path[:-4] + ".mp3" if out_path.endswith(".wav") else out_path + ".mp3"
    with open(tmp_mp3, "wb") as f:
        f.write(r.content)

    def _convert() -> None:
        try:
            AudioSegment.from_file(tmp_mp3, format="mp3").export(out_path, format="wav")
        finally:
            Path(tmp_mp3).unlink(missing_ok=True)

    await asyncio.to_thread(_convert)


def _make_synth(
    render: Callable[[str, str], Awaitable[None]],
    cache_sig: tuple[str, str, str],
    ctx: RunContext,
    backend: FfmpegAudioBackend,
    max_chars: int = MAX_TTS_CHARS,
) -> Synthesizer:
    """
    Wrap a provider call into synthesize(text) -> RenderedSegment.

    Text over max_chars is rendered chunk by chunk, in order, and the parts
    are concatenated into one file before measuring.
    """
    provider, model, voice = cache_sig

    async def synthesize(text: str) -> RenderedSegment:
        sig = _hash_for_cache(provider, model, voice, text)
        chunks = split_text_into_chunks(text, max_chars)
        if len(chunks) <= 1:
            out_path = ctx.path(f"speech_{sig}")
            await render(text, out_path)
        else:
            logger.info(f"Text of {len(text)} chars split into {len(chunks)} TTS requests")
            parts: list[str] = []
            try:
                for k, chunk in enumerate(chunks):
                    part = ctx.path(f"speech_{sig}_part{k}")
                    parts.append(part)
                    await render(chunk, part)
                out_path = await backend.concat(parts, tag=f"speech_{sig}")
            finally:
                for part in parts:
                    await backend.release(part)
        duration = await backend.probe_duration(out_path)
        logger.debug(f"Synthesized {len(text)} chars -> {duration:.2f}s ({out_path})")
        return RenderedSegment(audio=out_path, measured_duration=duration)

    return synthesize


def make_synth_openai_async(
    client: AsyncOpenAI,
    model: str,
    voice: str,
    ctx: RunContext,
    backend: FfmpegAudioBackend,
    instructions: str | None = None,
) -> Synthesizer:
    """Create an async OpenAI synthesis collaborator."""

    async def render(text: str, out_path: str) -> None:
        await tts_speak_openai_async(client, text, model, voice, out_path, instructions)

    return _make_synth(render, ("openai", model, voice), ctx, backend)


def make_synth_elevenlabs_async(
    api_key: str,
    voice_id: str,
    ctx: RunContext,
    backend: FfmpegAudioBackend,
    model_id: str = "eleven_multilingual_v2",
) -> Synthesizer:
    """Create an async ElevenLabs synthesis collaborator."""

    async def render(text: str, out_path: str) -> None:
        await elevenlabs_tts_speak_async(api_key, voice_id, text, out_path, model_id=model_id)

    return _make_synth(render, ("elevenlabs", model_id, voice_id), ctx, backend)
