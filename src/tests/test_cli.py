"""
Tests for CLI argument handling and config overrides.
"""

import json

import pytest

from src.dubsync.cli import build_config, confirm_prompt, load_silences, parse_args
from src.dubsync.models import SilenceInterval
from src.dubsync.timeline import build_timeline


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "DUBSYNC_MIN_GAP",
        "DUBSYNC_RATIO_EPSILON",
        "DUBSYNC_TEMPO_MIN",
        "DUBSYNC_TEMPO_MAX",
        "DUBSYNC_MAX_STRETCH",
        "DUBSYNC_TOLERANCE",
        "DUBSYNC_MAX_CONCURRENT",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    args = parse_args([])

    assert args.stage == "align"
    assert args.tts_provider == "openai"
    assert args.min_gap is None
    assert not args.yes


def test_flags_override_environment(monkeypatch):
    monkeypatch.setenv("DUBSYNC_MIN_GAP", "3.0")
    monkeypatch.setenv("DUBSYNC_MAX_CONCURRENT", "2")

    config = build_config(parse_args(["--min-gap", "1.0", "--tempo-max", "1.5"]))

    assert config.min_gap_duration == 1.0
    assert config.max_concurrent == 2
    assert config.tempo_bounds == (0.5, 1.5)


def test_invalid_flag_values_are_rejected():
    with pytest.raises(ValueError):
        build_config(parse_args(["--tempo-min", "1.2"]))


def test_load_silences_plain_list(tmp_path):
    path = tmp_path / "silences.json"
    path.write_text(json.dumps([{"start": 1, "end": 3.5}]), encoding="utf-8")

    assert load_silences(str(path), 10.0) == [SilenceInterval(1.0, 3.5)]


def test_load_silences_wrapped(tmp_path):
    path = tmp_path / "analysis.json"
    path.write_text(
        json.dumps({"duration": 10, "silenceGaps": [{"start": 4, "end": 7, "duration": 3}]}),
        encoding="utf-8",
    )

    assert load_silences(str(path), 10.0) == [SilenceInterval(4.0, 7.0)]


def test_load_silences_from_transcribed_segments(tmp_path):
    path = tmp_path / "segments.json"
    path.write_text(
        json.dumps(
            {
                "segments": [
                    {"start": 0.0, "end": 4.0, "text": "Hello there."},
                    {"start": 7.0, "end": 9.5, "text": "After a pause."},
                ]
            }
        ),
        encoding="utf-8",
    )

    silences = load_silences(str(path), 10.0)

    assert silences == [SilenceInterval(4.0, 7.0), SilenceInterval(9.5, 10.0)]


def test_confirm_prompt(monkeypatch):
    timeline = build_timeline([(40.0, 50.0)], 100.0)
    monkeypatch.setattr("builtins.input", lambda prompt: "y")
    assert confirm_prompt(timeline)

    monkeypatch.setattr("builtins.input", lambda prompt: "")
    assert not confirm_prompt(timeline)
