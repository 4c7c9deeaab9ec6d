"""Tests for renderer module."""

import io
import shutil

import pytest
from pydub import AudioSegment

from narration_producer.config import PipelineConfig
from narration_producer.errors import RenderError
from narration_producer.models import BackgroundTrack, MoodMetadata, ParagraphUnit
from narration_producer.renderer import (
    build_manifest,
    decode_audio,
    duration_seconds,
    render,
    sniff_format,
    summarize_episode,
)

from conftest import RATE, make_tone, wav_bytes


# --- Decoding ---

def test_sniff_formats():
    """Containers are recognised from their magic bytes."""
    assert sniff_format(wav_bytes(make_tone(0.1))) == "wav"
    assert sniff_format(b"ID3\x04\x00" + b"\x00" * 20) == "mp3"
    assert sniff_format(b"\xff\xfb\x90\x00" + b"\x00" * 20) == "mp3"
    assert sniff_format(b"OggS" + b"\x00" * 20) == "ogg"
    assert sniff_format(b"plain text") is None


def test_decode_wav_bytes():
    """WAV decodes without ffmpeg."""
    audio = decode_audio(wav_bytes(make_tone(0.5)))
    assert audio.frame_count() == RATE // 2
    assert audio.frame_rate == RATE


def test_decode_empty_raises():
    with pytest.raises(ValueError):
        decode_audio(b"")


def test_duration_from_frames():
    """Duration is exact, not rounded to milliseconds."""
    assert duration_seconds(make_tone(1.2345)) == pytest.approx(9876 / RATE)


# --- Rendering ---

def test_render_round_trip(config):
    """Rendered WAV decodes at the declared rate with the same duration."""
    final = make_tone(3.0)
    data = render(final, config)
    decoded = AudioSegment.from_file(io.BytesIO(data), format="wav")
    assert decoded.frame_rate == config.sample_rate
    assert decoded.channels == config.channels
    assert abs(duration_seconds(decoded) - 3.0) < 0.1


@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")
def test_render_mp3_round_trip(config):
    """MP3 output decodes within 100 ms of the final track."""
    mp3 = PipelineConfig(**{**config.to_dict(), "output_format": "mp3", "sample_rate": 44100})
    final = make_tone(2.0, rate=44100)
    decoded = AudioSegment.from_file(io.BytesIO(render(final, mp3)), format="mp3")
    assert decoded.frame_rate == 44100
    assert abs(duration_seconds(decoded) - 2.0) < 0.1


def test_render_rejects_rate_mismatch(config):
    """The final track must already be in the declared format."""
    with pytest.raises(RenderError):
        render(make_tone(1.0, rate=16000), config)


def test_render_rejects_channel_mismatch(config):
    with pytest.raises(RenderError):
        render(make_tone(1.0, channels=1), config)


def test_render_rejects_empty(config):
    with pytest.raises(RenderError):
        render(make_tone(0.0), config)


# --- Manifest ---

def test_manifest_contents(config):
    """Manifest records format, settings and per-paragraph choices."""
    unit = ParagraphUnit(index=0, raw_text="It was dark.")
    unit.mood = MoodMetadata("tense", intensity=8)
    unit.background = BackgroundTrack("Suspence", 6, "/lib/Suspence/Suspence_6.mp3", "Suspence_6.mp3")
    unit.mixed = make_tone(1.5)

    manifest = build_manifest("story", make_tone(1.5), [unit], config, url="memory://story.wav")

    assert manifest["name"] == "story"
    assert manifest["url"] == "memory://story.wav"
    assert manifest["format"] == {
        "container": "wav", "mime": "audio/wav", "sample_rate": RATE, "channels": 2,
    }
    assert manifest["stats"] == {"paragraphs": 1, "duration_seconds": 1.5}
    paragraph = manifest["paragraphs"][0]
    assert paragraph["mood"]["intensity"] == 8
    assert paragraph["background"]["filename"] == "Suspence_6.mp3"
    assert paragraph["duration_seconds"] == 1.5


def _unit(index, text, mood=None):
    unit = ParagraphUnit(index=index, raw_text=text)
    unit.mood = mood
    return unit


def test_episode_summary():
    """Most common mood and genre win; intensity is averaged."""
    units = [
        _unit(0, "The storm rolled in over the harbour.", MoodMetadata("tense", "thriller", 8)),
        _unit(1, "Nobody moved.", MoodMetadata("calm", "drama", 3)),
        _unit(2, "Then the lights went out.", MoodMetadata("tense", "thriller", 9)),
    ]
    assert summarize_episode(units) == {
        "title": "The storm rolled in...",
        "mood": "tense",
        "genre": "thriller",
        "average_intensity": 6.7,
    }


def test_episode_summary_tie_goes_to_first():
    units = [
        _unit(0, "Short.", MoodMetadata("happy", intensity=3)),
        _unit(1, "Also short.", MoodMetadata("sad", intensity=8)),
    ]
    summary = summarize_episode(units)
    assert summary["title"] == "Short."
    assert summary["mood"] == "happy"
    assert summary["average_intensity"] == 5.5


def test_episode_summary_without_metadata():
    assert summarize_episode([_unit(0, "Untold.")]) == {
        "title": "Untold.", "mood": "neutral", "genre": "fiction", "average_intensity": None,
    }


def test_manifest_includes_episode(config):
    unit = _unit(0, "It was dark.", MoodMetadata("tense", intensity=8))
    manifest = build_manifest("story", make_tone(1.0), [unit], config)
    assert manifest["episode"]["mood"] == "tense"
