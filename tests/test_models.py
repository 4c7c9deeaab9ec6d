"""Tests for constants, models and errors (Layer 0)."""

import pytest

from narration_producer import constants
from narration_producer.errors import MixingError, NarrationError, SynthesisError, UploadError
from narration_producer.models import (
    DEFAULT_MOOD,
    BackgroundTrack,
    MoodMetadata,
    ParagraphUnit,
    clamp_intensity,
)

from conftest import make_tone


def test_mood_defaults():
    """MoodMetadata fields exist and defaults work."""
    mood = MoodMetadata(mood="happy")
    assert (mood.genre, mood.intensity, mood.tempo) == ("fiction", 5, "medium")


@pytest.mark.parametrize("raw,expected", [
    (7, 7), (0, 1), (-3, 1), (11, 10), (6.6, 7), ("8", 8), ("high", 5), (None, 5), (float("nan"), 5),
])
def test_clamp_intensity(raw, expected):
    """Classifier intensities are coerced into 1..10."""
    assert clamp_intensity(raw) == expected


def test_mood_normalises_tempo():
    assert MoodMetadata("sad", tempo="FAST").tempo == "fast"
    assert MoodMetadata("sad", tempo="warp").tempo == "medium"


def test_mood_from_dict_requires_mood():
    with pytest.raises(ValueError):
        MoodMetadata.from_dict({"genre": "mystery", "intensity": 4})


def test_mood_round_trip_dict():
    assert MoodMetadata.from_dict(DEFAULT_MOOD.to_dict()) == DEFAULT_MOOD


def test_unit_release_drops_audio():
    """release() frees decoded buffers but keeps metadata."""
    unit = ParagraphUnit(index=2, raw_text="Text.", mood=DEFAULT_MOOD)
    unit.narration = make_tone(0.1)
    unit.mixed = make_tone(0.1)
    unit.release()
    assert unit.narration is None and unit.mixed is None
    assert unit.mood == DEFAULT_MOOD


def test_unit_summary():
    unit = ParagraphUnit(index=0, raw_text="Hello.", mood=DEFAULT_MOOD)
    unit.background = BackgroundTrack("Suspence", 4, "ref", "Suspence_4.mp3", is_fallback=False)
    unit.narration = make_tone(0.5)
    summary = unit.summary()
    assert summary["characters"] == 6
    assert summary["background"]["category"] == "Suspence"
    assert summary["duration_seconds"] == 0.5


def test_error_carries_stage_and_index():
    """Errors name their stage and paragraph."""
    error = SynthesisError("voice service down", paragraph_index=3)
    assert str(error) == "synthesize [paragraph 3]: voice service down"
    assert error.to_dict() == {"stage": "synthesize", "paragraph_index": 3, "message": "voice service down"}
    assert isinstance(error, NarrationError)


def test_error_without_index():
    assert str(UploadError("bucket gone")) == "upload: bucket gone"
    assert MixingError("x").stage == "mix"


def test_constants_exist():
    """All module-level constants are defined."""
    expected = [
        "PARAGRAPH_DELIMITER",
        "FALLBACK_MIN_CHARS",
        "MAX_PARAGRAPHS",
        "SAMPLE_RATE",
        "NARRATION_GAIN",
        "BACKGROUND_FLOOR",
        "FADE_IN_SECONDS",
        "FADE_OUT_SECONDS",
        "PARAGRAPH_GAP_SECONDS",
        "MUSIC_INDEX_MAX",
        "FALLBACK_ASSET",
        "RETRY_COUNT",
        "TTS_VOICE",
        "VERSION",
    ]
    for name in expected:
        assert hasattr(constants, name), f"Missing constant: {name}"
