"""Decode collaborator audio, encode the final track and build its manifest."""

import io
from collections import Counter
from datetime import datetime, timezone

from pydub import AudioSegment

from narration_producer.config import PipelineConfig
from narration_producer.constants import EPISODE_TITLE_CHARS, OUTPUT_BITRATE, VERSION
from narration_producer.errors import RenderError
from narration_producer.models import ParagraphUnit

MIME_TYPES = {"wav": "audio/wav", "mp3": "audio/mpeg"}


def sniff_format(data: bytes) -> str | None:
    """Guess the container from magic bytes; None lets ffmpeg probe."""
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "wav"
    if data[:3] == b"ID3" or (len(data) > 1 and data[0] == 0xFF and data[1] & 0xE0 == 0xE0):
        return "mp3"
    if data[:4] == b"OggS":
        return "ogg"
    return None


def decode_audio(data: bytes) -> AudioSegment:
    """Decode an in-memory audio file.

    WAV is read natively; other containers go through ffmpeg.
    """
    if not data:
        raise ValueError("audio data is empty")
    fmt = sniff_format(data)
    if fmt:
        return AudioSegment.from_file(io.BytesIO(data), format=fmt)
    return AudioSegment.from_file(io.BytesIO(data))


def duration_seconds(audio: AudioSegment) -> float:
    """Exact duration from the sample count (len() is rounded to ms)."""
    return int(audio.frame_count()) / audio.frame_rate


def encode(audio: AudioSegment, fmt: str = "wav", bitrate: str = OUTPUT_BITRATE) -> bytes:
    """Serialize audio to a container without resampling."""
    buffer = io.BytesIO()
    if fmt == "mp3":
        audio.export(buffer, format="mp3", bitrate=bitrate)
    else:
        audio.export(buffer, format=fmt)
    return buffer.getvalue()


def render(final: AudioSegment, config: PipelineConfig) -> bytes:
    """Encode the final track in the job's declared format.

    The track must already be at the declared sample rate and channel
    count; nothing is converted here.
    """
    if final.frame_rate != config.sample_rate or final.channels != config.channels:
        raise RenderError(
            f"final track is {final.frame_rate} Hz/{final.channels} ch, "
            f"declared {config.sample_rate} Hz/{config.channels} ch"
        )
    if final.frame_count() == 0:
        raise RenderError("final track is empty")
    try:
        return encode(final, config.output_format, config.bitrate)
    except Exception as e:
        raise RenderError(f"could not encode {config.output_format}: {e}") from e


def build_manifest(
    name: str,
    final: AudioSegment,
    units: list[ParagraphUnit],
    config: PipelineConfig,
    url: str | None = None,
) -> dict:
    """Provenance record for a finished job."""
    return {
        "name": name,
        "url": url,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "producer_version": VERSION,
        "format": {
            "container": config.output_format,
            "mime": MIME_TYPES.get(config.output_format),
            "sample_rate": final.frame_rate,
            "channels": final.channels,
        },
        "settings": {
            "mix_mode": config.mix_mode,
            "music": config.enable_music,
            "music_selection": config.music_selection,
            "narration_gain": config.narration_gain,
            "background_gain": config.background_target,
            "fade_in_seconds": config.fade_in_seconds,
            "fade_out_seconds": config.fade_out_seconds,
            "paragraph_gap_seconds": config.paragraph_gap_seconds,
        },
        "stats": {
            "paragraphs": len(units),
            "duration_seconds": round(duration_seconds(final), 3),
        },
        "episode": summarize_episode(units),
        "paragraphs": [unit.summary() for unit in units],
    }


def summarize_episode(units: list[ParagraphUnit]) -> dict:
    """Whole-job summary: dominant mood and genre, average intensity, a title.

    Ties go to the value seen first. Units without metadata are skipped.
    """
    moods = [unit.mood for unit in units if unit.mood is not None]
    mood_counts = Counter(m.mood for m in moods)
    genre_counts = Counter(m.genre for m in moods)

    title = ""
    if units:
        opening = units[0].raw_text.strip()
        title = opening[:EPISODE_TITLE_CHARS]
        if len(opening) > EPISODE_TITLE_CHARS:
            title = title.rstrip() + "..."

    return {
        "title": title,
        "mood": mood_counts.most_common(1)[0][0] if moods else "neutral",
        "genre": genre_counts.most_common(1)[0][0] if moods else "fiction",
        "average_intensity": round(sum(m.intensity for m in moods) / len(moods), 1) if moods else None,
    }
