"""Narration synthesis via edge-tts."""

import asyncio
import os
import tempfile
from typing import Protocol

import edge_tts

from narration_producer.constants import CALL_TIMEOUT_SECONDS, TTS_RATE, TTS_VOICE
from narration_producer.errors import SynthesisError


class NarrationSynthesizer(Protocol):
    def synthesize(self, text: str) -> bytes:
        """Return a whole decodable audio file for the text."""
        ...


class EdgeTTSSynthesizer:
    """Single-attempt edge-tts call with a timeout.

    Retries belong to the caller. Rate is a relative string like "-10%".
    A 0-byte result counts as a failure.
    """

    def __init__(
        self,
        voice: str = TTS_VOICE,
        rate: str = TTS_RATE,
        timeout: float = CALL_TIMEOUT_SECONDS,
    ):
        self.voice = voice
        self.rate = rate
        self.timeout = timeout

    async def _save(self, text: str, output_path: str) -> None:
        communicate = edge_tts.Communicate(text, self.voice, rate=self.rate)
        await asyncio.wait_for(communicate.save(output_path), timeout=self.timeout)

    def synthesize(self, text: str) -> bytes:
        fd, path = tempfile.mkstemp(suffix=".mp3")
        os.close(fd)
        try:
            try:
                asyncio.run(self._save(text, path))
            except asyncio.TimeoutError as e:
                raise SynthesisError(f"edge-tts timed out after {self.timeout}s") from e
            with open(path, "rb") as f:
                data = f.read()
        finally:
            os.remove(path)

        if not data:
            raise SynthesisError(f"TTS produced 0 bytes for: {text[:50]}...")
        return data
