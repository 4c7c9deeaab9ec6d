"""Pipeline configuration: one object for every timing, gain and format knob."""

import dataclasses
import json
from dataclasses import dataclass

from narration_producer import constants


@dataclass(frozen=True)
class PipelineConfig:
    # Segmentation
    paragraph_delimiter: str = constants.PARAGRAPH_DELIMITER
    fallback_min_chars: int = constants.FALLBACK_MIN_CHARS
    max_paragraphs: int = constants.MAX_PARAGRAPHS

    # Job audio format
    sample_rate: int = constants.SAMPLE_RATE
    channels: int = constants.CHANNELS

    # Mixing
    enable_music: bool = True
    mix_mode: str = "paragraph"             # "paragraph" or "whole"
    music_selection: str = "intensity"      # "intensity" or "random"
    narration_gain: float = constants.NARRATION_GAIN
    background_volume: float = constants.BACKGROUND_VOLUME
    background_floor: float = constants.BACKGROUND_FLOOR
    fade_in_seconds: float = constants.FADE_IN_SECONDS
    fade_out_seconds: float = constants.FADE_OUT_SECONDS
    crossfade_seconds: float = constants.CROSSFADE_SECONDS
    region_overlap_seconds: float = constants.REGION_OVERLAP_SECONDS
    fallback_asset: str = constants.FALLBACK_ASSET

    # Sequencing
    paragraph_gap_seconds: float = constants.PARAGRAPH_GAP_SECONDS

    # External calls
    call_timeout_seconds: float = constants.CALL_TIMEOUT_SECONDS
    retry_count: int = constants.RETRY_COUNT
    retry_base_delay: float = constants.RETRY_BASE_DELAY
    max_workers: int = constants.MAX_WORKERS

    # Output
    output_format: str = constants.OUTPUT_FORMAT
    bitrate: str = constants.OUTPUT_BITRATE

    def __post_init__(self):
        if len(self.paragraph_delimiter) != 1:
            raise ValueError("paragraph_delimiter must be a single character")
        if self.max_paragraphs < 1:
            raise ValueError("max_paragraphs must be at least 1")
        if self.sample_rate <= 0 or self.channels not in (1, 2):
            raise ValueError("sample_rate must be positive and channels 1 or 2")
        if self.mix_mode not in ("paragraph", "whole"):
            raise ValueError(f"Unknown mix_mode: {self.mix_mode}")
        if self.music_selection not in ("intensity", "random"):
            raise ValueError(f"Unknown music_selection: {self.music_selection}")
        if self.output_format not in ("wav", "mp3"):
            raise ValueError(f"Unsupported output_format: {self.output_format}")
        for name in (
            "fade_in_seconds", "fade_out_seconds", "crossfade_seconds",
            "region_overlap_seconds", "paragraph_gap_seconds",
            "narration_gain", "background_volume", "background_floor",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if self.retry_count < 1 or self.max_workers < 1:
            raise ValueError("retry_count and max_workers must be at least 1")

    @property
    def background_target(self) -> float:
        """Background hold gain, never below the audibility floor."""
        return max(self.background_floor, self.background_volume)

    def with_overrides(self, **overrides) -> "PipelineConfig":
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


# Two observed production variants: the immediate (client-side) renderer and
# the batch (server-side) renderer.
PRESETS = {
    "client": PipelineConfig(),
    "batch": PipelineConfig(
        background_volume=0.2,
        fade_in_seconds=0.0,
        fade_out_seconds=0.0,
        crossfade_seconds=0.0,
        paragraph_gap_seconds=constants.BATCH_PARAGRAPH_GAP_SECONDS,
    ),
}


def load_config(path: str | None = None, preset: str = "client") -> PipelineConfig:
    """Build a PipelineConfig from a preset plus an optional JSON overrides file.

    Unknown keys in the file raise ValueError so typos are not silently ignored.
    """
    if preset not in PRESETS:
        raise ValueError(f"Unknown preset: {preset} (choose from {', '.join(sorted(PRESETS))})")
    config = PRESETS[preset]
    if not path:
        return config

    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a JSON object: {path}")

    known = {f.name for f in dataclasses.fields(PipelineConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown config keys in {path}: {', '.join(unknown)}")
    _check_types(data, path)
    return dataclasses.replace(config, **data)


def _check_types(data: dict, path: str) -> None:
    """Reject values whose JSON type does not match the field."""
    types = {f.name: f.type for f in dataclasses.fields(PipelineConfig)}
    for key, value in data.items():
        expected = types[key]
        if expected is float:
            ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        elif expected is int:
            ok = isinstance(value, int) and not isinstance(value, bool)
        else:
            ok = isinstance(value, expected)
        if not ok:
            raise ValueError(
                f"Config key {key} in {path} must be {expected.__name__}, "
                f"got {type(value).__name__}"
            )
