"""Tests for classifier module."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from narration_producer.classifier import FixedMoodClassifier, LLMMoodClassifier
from narration_producer.errors import ClassificationError
from narration_producer.models import DEFAULT_MOOD, MoodMetadata


def _session(content=None, error=None, body=None):
    """Mock requests.Session whose post() returns a chat completion."""
    session = MagicMock()
    if error:
        session.post.side_effect = error
        return session
    response = MagicMock()
    response.json.return_value = body if body is not None else {
        "choices": [{"message": {"content": json.dumps(content)}}]
    }
    session.post.return_value = response
    return session


def test_fixed_classifier_returns_copy():
    """Every paragraph gets an independent copy of the metadata."""
    classifier = FixedMoodClassifier()
    first = classifier.classify("a")
    first.intensity = 9
    assert classifier.classify("b") == DEFAULT_MOOD


def test_llm_classifier_parses_metadata():
    session = _session({"mood": "suspense", "genre": "mystery", "intensity": 8, "tempo": "fast"})
    classifier = LLMMoodClassifier("https://api.example.com/v1/", api_key="k", session=session)
    assert classifier.classify("The door creaked.") == MoodMetadata("suspense", "mystery", 8, "fast")


def test_llm_classifier_request_shape():
    """Posts a JSON-mode chat completion with auth and a timeout."""
    session = _session({"mood": "happy"})
    classifier = LLMMoodClassifier(
        "https://api.example.com/v1", api_key="secret", model="small-model", timeout=12, session=session,
    )
    classifier.classify("Sunny day.")

    url = session.post.call_args.args[0]
    kwargs = session.post.call_args.kwargs
    assert url == "https://api.example.com/v1/chat/completions"
    assert kwargs["timeout"] == 12
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert kwargs["json"]["model"] == "small-model"
    assert kwargs["json"]["response_format"] == {"type": "json_object"}
    assert "Sunny day." in kwargs["json"]["messages"][1]["content"]


def test_llm_classifier_no_key_no_auth_header():
    session = _session({"mood": "happy"})
    LLMMoodClassifier("http://localhost:8080", session=session).classify("x")
    assert "Authorization" not in session.post.call_args.kwargs["headers"]


def test_llm_classifier_clamps_values():
    """Out-of-range intensity and unknown tempo are normalised."""
    session = _session({"mood": "sad", "intensity": 42, "tempo": "glacial"})
    metadata = LLMMoodClassifier("http://x", session=session).classify("x")
    assert metadata.intensity == 10
    assert metadata.tempo == "medium"


def test_llm_classifier_network_error():
    session = _session(error=requests.ConnectionError("refused"))
    with pytest.raises(ClassificationError, match="request failed"):
        LLMMoodClassifier("http://x", session=session).classify("x")


def test_llm_classifier_http_error():
    """Non-2xx responses are classification errors."""
    session = _session({"mood": "sad"})
    session.post.return_value.raise_for_status.side_effect = requests.HTTPError("500")
    with pytest.raises(ClassificationError):
        LLMMoodClassifier("http://x", session=session).classify("x")


@pytest.mark.parametrize("body", [
    {},
    {"choices": []},
    {"choices": [{"message": {"content": "not json"}}]},
    {"choices": [{"message": {"content": "[1, 2]"}}]},
    {"choices": [{"message": {"content": "{\"genre\": \"mystery\"}"}}]},
])
def test_llm_classifier_unreadable_response(body):
    """Malformed replies raise ClassificationError, never a raw exception."""
    session = _session(body=body)
    with pytest.raises(ClassificationError):
        LLMMoodClassifier("http://x", session=session).classify("x")
