"""Shared fixtures for narration producer tests.

Audio is generated in memory and passed around as WAV, so no test needs
ffmpeg or network access. Library files keep their .mp3 names; the decoder
sniffs the WAV container from the bytes.
"""

import io

import numpy as np
import pytest
from pydub import AudioSegment

from narration_producer.config import PipelineConfig
from narration_producer.models import MoodMetadata

RATE = 8000


def make_tone(seconds, rate=RATE, channels=2, amplitude=0.25, freq=440.0):
    """Sine tone of exactly round(seconds * rate) frames."""
    frames = int(round(seconds * rate))
    t = np.arange(frames) / rate
    wave = np.round(amplitude * np.sin(2 * np.pi * freq * t) * 32767).astype(np.int16)
    data = np.repeat(wave[:, np.newaxis], channels, axis=1)
    return AudioSegment(data=data.tobytes(), sample_width=2, frame_rate=rate, channels=channels)


def make_constant(seconds, value=0.5, rate=RATE, channels=2):
    """DC signal at ``value`` of full scale; makes envelopes easy to read back."""
    frames = int(round(seconds * rate))
    data = np.full((frames, channels), int(value * 32768), dtype=np.int16)
    return AudioSegment(data=data.tobytes(), sample_width=2, frame_rate=rate, channels=channels)


def wav_bytes(audio):
    buffer = io.BytesIO()
    audio.export(buffer, format="wav")
    return buffer.getvalue()


class FakeSynthesizer:
    """Returns a WAV tone per paragraph; texts in ``fail_on`` always fail."""

    def __init__(self, seconds=1.0, fail_on=(), fail_times=0):
        self.seconds = seconds
        self.fail_on = tuple(fail_on)
        self.fail_times = fail_times
        self.calls = []

    def synthesize(self, text):
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise RuntimeError("voice service unavailable")
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("transient failure")
        return wav_bytes(make_tone(self.seconds))


class FakeClassifier:
    """Looks moods up by keyword in the paragraph text."""

    def __init__(self, moods=None, fail=False):
        self.moods = moods or {}
        self.fail = fail
        self.calls = 0

    def classify(self, text):
        self.calls += 1
        if self.fail:
            raise RuntimeError("classifier offline")
        for keyword, metadata in self.moods.items():
            if keyword in text:
                return metadata
        return MoodMetadata(mood="calm", intensity=2)


class MemoryStorage:
    def __init__(self):
        self.objects = {}

    def store(self, data, path):
        self.objects[path] = data
        return f"memory://{path}"


@pytest.fixture
def config(tmp_path):
    """Fast settings: low sample rate, no backoff, fallback file in tmp."""
    fallback = tmp_path / "fallback-music.mp3"
    fallback.write_bytes(wav_bytes(make_tone(2.0, freq=110.0)))
    return PipelineConfig(
        sample_rate=RATE,
        channels=2,
        retry_base_delay=0.0,
        max_workers=2,
        paragraph_gap_seconds=0.5,
        fade_in_seconds=0.2,
        fade_out_seconds=0.3,
        crossfade_seconds=0.3,
        region_overlap_seconds=0.1,
        fallback_asset=str(fallback),
    )


@pytest.fixture
def music_library(tmp_path):
    """Factory: create <root>/<Category>/<Category>_<n><ext> files."""
    root = tmp_path / "music"
    root.mkdir()

    def build(files):
        for relative in files:
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(wav_bytes(make_tone(1.5, freq=220.0)))
        return str(root)

    return build
