"""Data models for narration production."""

import math
from dataclasses import dataclass, field

from pydub import AudioSegment

TEMPOS = ("slow", "medium", "fast")


def clamp_intensity(value) -> int:
    """Coerce a classifier intensity to an int in [1, 10]."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 5
    if math.isnan(number):
        return 5
    return int(max(1, min(10, round(number))))


@dataclass
class MoodMetadata:
    mood: str
    genre: str = "fiction"
    intensity: int = 5     # 1 (calm) .. 10 (intense)
    tempo: str = "medium"  # "slow", "medium" or "fast"

    def __post_init__(self):
        self.intensity = clamp_intensity(self.intensity)
        tempo = str(self.tempo or "").strip().lower()
        self.tempo = tempo if tempo in TEMPOS else "medium"

    @classmethod
    def from_dict(cls, data: dict) -> "MoodMetadata":
        """Build metadata from untrusted classifier output."""
        mood = str(data.get("mood") or "").strip()
        if not mood:
            raise ValueError("classifier output has no mood")
        return cls(
            mood=mood,
            genre=str(data.get("genre") or "fiction").strip(),
            intensity=data.get("intensity", 5),
            tempo=data.get("tempo", "medium"),
        )

    def to_dict(self) -> dict:
        return {
            "mood": self.mood,
            "genre": self.genre,
            "intensity": self.intensity,
            "tempo": self.tempo,
        }


# Substituted when classification fails for a paragraph
DEFAULT_MOOD = MoodMetadata(mood="suspense", genre="thriller", intensity=5, tempo="medium")


@dataclass
class BackgroundTrack:
    category: str
    index: int              # 1..7
    asset_ref: str          # URL or local path handed to the loader
    filename: str
    duration_seconds: float | None = None  # filled in once decoded
    is_fallback: bool = False              # last-resort file or generated drone


@dataclass
class MixingEnvelope:
    narration_gain: float
    background_gain: float
    fade_in: float          # seconds
    fade_out: float         # seconds
    loop_count: int


@dataclass
class ParagraphUnit:
    index: int
    raw_text: str
    mood: MoodMetadata | None = None
    narration: AudioSegment | None = None
    background: BackgroundTrack | None = None
    envelope: MixingEnvelope | None = None
    mixed: AudioSegment | None = None

    def release(self) -> None:
        """Drop decoded buffers held by this unit."""
        self.narration = None
        self.mixed = None

    def summary(self) -> dict:
        info = {
            "index": self.index,
            "characters": len(self.raw_text),
            "mood": self.mood.to_dict() if self.mood else None,
        }
        if self.background:
            info["background"] = {
                "category": self.background.category,
                "index": self.background.index,
                "filename": self.background.filename,
                "fallback": self.background.is_fallback,
            }
        audio = self.mixed if self.mixed is not None else self.narration
        if audio is not None:
            info["duration_seconds"] = round(audio.frame_count() / audio.frame_rate, 3)
        return info


@dataclass
class JobResult:
    url: str
    duration_seconds: float
    paragraph_count: int
    units: list[ParagraphUnit] = field(default_factory=list)
    manifest: dict = field(default_factory=dict)
