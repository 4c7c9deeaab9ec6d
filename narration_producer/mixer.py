"""Sample-accurate narration/background mixing.

The narration decides the length of the output, always. Backgrounds are
looped or trimmed to fit the region they cover and shaped by a linear
fade-in / hold / fade-out envelope that reaches silence on the region's last
sample. Mixing is a per-sample, per-channel sum after gain staging.

Two regimes share the same code path: a single background under a whole
narration is just one region spanning the full narration, while the
whole-track regime places one region per paragraph and crossfades where
they meet.
"""

import math
from dataclasses import dataclass

import numpy as np
from pydub import AudioSegment

from narration_producer.config import PipelineConfig
from narration_producer.constants import SAMPLE_WIDTH
from narration_producer.errors import MixingError
from narration_producer.models import MixingEnvelope

FULL_SCALE = float(1 << (8 * SAMPLE_WIDTH - 1))


@dataclass
class BackgroundRegion:
    start_seconds: float
    end_seconds: float
    audio: AudioSegment


def conform(audio: AudioSegment, config: PipelineConfig) -> AudioSegment:
    """Bring audio to the job's sample rate, channel count and 16-bit width."""
    if audio.sample_width != SAMPLE_WIDTH:
        audio = audio.set_sample_width(SAMPLE_WIDTH)
    if audio.frame_rate != config.sample_rate:
        audio = audio.set_frame_rate(config.sample_rate)
    if audio.channels != config.channels:
        audio = audio.set_channels(config.channels)
    return audio


def to_samples(audio: AudioSegment) -> np.ndarray:
    """16-bit AudioSegment -> float32 array of shape (frames, channels) in [-1, 1)."""
    raw = np.array(audio.get_array_of_samples(), dtype=np.float32)
    return raw.reshape(-1, audio.channels) / FULL_SCALE


def from_samples(samples: np.ndarray, frame_rate: int) -> AudioSegment:
    pcm = np.clip(np.round(samples * FULL_SCALE), -FULL_SCALE, FULL_SCALE - 1).astype("<i2")
    return AudioSegment(
        data=pcm.tobytes(),
        sample_width=SAMPLE_WIDTH,
        frame_rate=frame_rate,
        channels=samples.shape[1],
    )


def fit_to_length(samples: np.ndarray, length: int) -> np.ndarray:
    """Loop (tile) or trim from the start so exactly ``length`` frames remain."""
    if length <= 0:
        return samples[:0]
    if len(samples) == 0:
        return np.zeros((length, samples.shape[1]), dtype=np.float32)
    loops = math.ceil(length / len(samples))
    if loops > 1:
        samples = np.tile(samples, (loops, 1))
    return samples[:length]


def build_envelope(length: int, target: float, fade_in: int, fade_out: int) -> np.ndarray:
    """Gain curve: 0 -> target over fade_in frames, hold, target -> 0 over fade_out.

    The fade-out ends at exactly 0 on the last frame. When the fades do not
    fit, both shrink in proportion.
    """
    if length <= 0:
        return np.zeros(0, dtype=np.float32)
    fade_in, fade_out = max(0, fade_in), max(0, fade_out)
    if fade_in + fade_out > length:
        scale = length / (fade_in + fade_out)
        fade_in = int(fade_in * scale)
        fade_out = length - fade_in

    envelope = np.full(length, target, dtype=np.float32)
    if fade_in:
        envelope[:fade_in] = np.linspace(0.0, target, fade_in, endpoint=False)
    if fade_out:
        envelope[length - fade_out:] = np.linspace(target, 0.0, fade_out + 1)[1:]
    return envelope


def describe_envelope(
    config: PipelineConfig,
    narration_seconds: float,
    background_seconds: float,
) -> MixingEnvelope:
    """The envelope a single-background mix applies."""
    loops = math.ceil(narration_seconds / background_seconds) if background_seconds > 0 else 0
    return MixingEnvelope(
        narration_gain=config.narration_gain,
        background_gain=config.background_target,
        fade_in=config.fade_in_seconds,
        fade_out=config.fade_out_seconds,
        loop_count=max(loops, 1),
    )


def _region_bounds(regions, total, rate, config):
    """Frame bounds and fade lengths for each region, in order."""
    extension = config.region_overlap_seconds if config.crossfade_seconds > 0 else 0.0
    last = len(regions) - 1
    bounds = []
    for i, region in enumerate(regions):
        start = min(max(0, round(region.start_seconds * rate)), total)
        end_seconds = region.end_seconds if i == last else region.end_seconds + extension
        end = min(max(start, round(end_seconds * rate)), total)
        if i == last:
            end = total
        fade_in = config.fade_in_seconds if i == 0 else config.crossfade_seconds
        fade_out = config.fade_out_seconds if i == last else config.crossfade_seconds
        bounds.append((start, end, round(fade_in * rate), round(fade_out * rate)))
    return bounds


def mix_regions(
    narration: AudioSegment,
    regions: list[BackgroundRegion],
    config: PipelineConfig,
    paragraph_index: int | None = None,
) -> AudioSegment:
    """Mix several backgrounds under one narration at the given offsets.

    Region start/end are seconds into the narration. Every region except the
    last keeps playing ``region_overlap_seconds`` past its end so it can
    crossfade with the next; the last region always runs to the end of the
    narration. The result has exactly the narration's frame count.
    """
    try:
        voice_audio = conform(narration, config)
        rate = voice_audio.frame_rate
        voice = to_samples(voice_audio) * config.narration_gain
        total = len(voice)
        if not regions or not config.enable_music:
            return from_samples(voice, rate)

        bed = np.zeros_like(voice)
        target = config.background_target
        for region, (start, end, fade_in, fade_out) in zip(
            regions, _region_bounds(regions, total, rate, config)
        ):
            length = end - start
            if length <= 0:
                continue
            background = fit_to_length(to_samples(conform(region.audio, config)), length)
            envelope = build_envelope(length, target, fade_in, fade_out)
            bed[start:end] += background * envelope[:, np.newaxis]

        return from_samples(voice + bed, rate)
    except MixingError:
        raise
    except Exception as e:
        raise MixingError(str(e), paragraph_index) from e


def mix_narration(
    narration: AudioSegment,
    background: AudioSegment | None,
    config: PipelineConfig,
    paragraph_index: int | None = None,
) -> AudioSegment:
    """Mix one background under a whole narration."""
    if background is None:
        return mix_regions(narration, [], config, paragraph_index)
    whole = BackgroundRegion(0.0, narration.frame_count() / narration.frame_rate, background)
    return mix_regions(narration, [whole], config, paragraph_index)
