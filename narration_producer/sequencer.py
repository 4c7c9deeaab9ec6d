"""Concatenate paragraph audio with fixed silence gaps between them."""

from pydub import AudioSegment

from narration_producer.errors import MixingError


def silence(frames: int, like: AudioSegment) -> AudioSegment:
    """Exactly ``frames`` frames of silence in the format of ``like``."""
    return AudioSegment(
        data=b"\x00" * (max(0, frames) * like.frame_width),
        sample_width=like.sample_width,
        frame_rate=like.frame_rate,
        channels=like.channels,
    )


def gap_frames(gap_seconds: float, frame_rate: int) -> int:
    return round(gap_seconds * frame_rate)


def _check_format(buffers: list[AudioSegment]) -> None:
    first = buffers[0]
    expected = (first.frame_rate, first.channels, first.sample_width)
    for i, buffer in enumerate(buffers[1:], start=1):
        actual = (buffer.frame_rate, buffer.channels, buffer.sample_width)
        if actual != expected:
            raise MixingError(
                f"format {actual} does not match first paragraph {expected}", paragraph_index=i,
            )


def sequence(buffers: list[AudioSegment], gap_seconds: float) -> AudioSegment:
    """Join buffers in order with one gap between each adjacent pair.

    No gap is added before the first buffer, after the last, or at all for
    a single buffer. Gap length is counted in frames so the result is
    exactly sum(frames) + (n - 1) * gap frames.
    """
    if not buffers:
        raise MixingError("nothing to sequence")
    _check_format(buffers)

    gap = silence(gap_frames(gap_seconds, buffers[0].frame_rate), buffers[0])
    result = buffers[0]
    for buffer in buffers[1:]:
        result += gap + buffer
    return result


def paragraph_timings(durations: list[float], gap_seconds: float) -> list[tuple[float, float]]:
    """(start, end) seconds of each paragraph inside the sequenced track."""
    timings = []
    position = 0.0
    for i, duration in enumerate(durations):
        if i:
            position += gap_seconds
        timings.append((position, position + duration))
        position += duration
    return timings
