"""Paragraph mood classification adapters."""

import json
import logging
from typing import Protocol

import requests

from narration_producer.constants import CALL_TIMEOUT_SECONDS, LLM_MODEL, LLM_TEMPERATURE
from narration_producer.errors import ClassificationError
from narration_producer.models import DEFAULT_MOOD, MoodMetadata

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an expert content analyzer that extracts emotional metadata from text.
Analyze the provided paragraph and extract the following information:
- mood: The primary emotional tone (e.g., suspense, happy, sad, thriller, romantic)
- genre: The content genre (e.g., mystery, romance, adventure, sci-fi)
- intensity: A number from 1-10 representing emotional intensity (1=calm, 10=intense)
- tempo: The appropriate pace for narration (slow, medium, fast)

Return ONLY a JSON object with these fields, no additional text.
Example:
{"mood": "suspense", "genre": "mystery", "intensity": 8, "tempo": "medium"}
"""


class MoodClassifier(Protocol):
    def classify(self, text: str) -> MoodMetadata: ...


class FixedMoodClassifier:
    """Offline classifier: every paragraph gets the same metadata."""

    def __init__(self, metadata: MoodMetadata = DEFAULT_MOOD):
        self.metadata = metadata

    def classify(self, text: str) -> MoodMetadata:
        return MoodMetadata(**self.metadata.to_dict())


class LLMMoodClassifier:
    """Classify through an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        model: str = LLM_MODEL,
        timeout: float = CALL_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ):
        self.url = base_url.rstrip("/") + "/chat/completions"
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def classify(self, text: str) -> MoodMetadata:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": f"Analyze this paragraph: {text}"},
            ],
            "temperature": LLM_TEMPERATURE,
            "max_tokens": 500,
            "response_format": {"type": "json_object"},
        }
        try:
            response = self.session.post(
                self.url, json=payload, headers=self._headers(), timeout=self.timeout,
            )
            response.raise_for_status()
            content = response.json()["choices"][0]["message"]["content"]
            return MoodMetadata.from_dict(json.loads(content))
        except requests.RequestException as e:
            raise ClassificationError(f"classifier request failed: {e}") from e
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as e:
            raise ClassificationError(f"unreadable classifier response: {e}") from e
