"""Mood-driven background music resolution with an ordered fallback chain.

Resolution never fails: a mood maps to a category (or the default one), the
intensity picks an index, and an ordered list of candidate keys is probed
against the asset store. When nothing in the library exists the last-resort
track is returned: the configured fallback file, or a generated drone.
"""

import logging
import os
import random
import re

import numpy as np
import requests
from pydub import AudioSegment

from narration_producer.assets import AssetStore
from narration_producer.config import PipelineConfig
from narration_producer.constants import (
    FALLBACK_DRONE_SECONDS,
    GENERATED_FALLBACK_REF,
    MUSIC_INDEX_MAX,
    MUSIC_INDEX_MIN,
    SAMPLE_RATE,
)
from narration_producer.errors import AssetResolutionError
from narration_producer.models import BackgroundTrack, MoodMetadata
from narration_producer.renderer import decode_audio

logger = logging.getLogger(__name__)

# Directory names as they exist in the music library
CATEGORIES = ("Horror", "Suspence", "Happy", "Clam", "Historic", "Romantic", "Mystery", "Sad")
DEFAULT_CATEGORY = "Suspence"

# Ordered keyword groups: first group with a keyword contained in the mood
# wins. A group naming several categories picks one at random.
KEYWORD_GROUPS = (
    (("horror", "scary", "terrifying"), ("Horror",)),
    (("suspense", "tension", "anxious", "tense"), ("Suspence",)),
    (("drama",), ("Suspence", "Horror")),
    (("happy", "joyful", "cheerful"), ("Happy",)),
    (("calm", "peaceful", "serene", "tranquil"), ("Clam",)),
    (("historic", "ancient", "old", "traditional"), ("Historic",)),
    (("romantic", "love", "passionate"), ("Romantic",)),
    (("mystery", "enigmatic", "puzzling", "curious"), ("Mystery",)),
    (("sad", "melancholy", "melancholic", "sorrowful", "depressing", "despair"), ("Sad",)),
)

# Categories tried, in order, when the mapped category has no assets at all
FALLBACK_CATEGORIES = ("Suspence", "Happy", "Horror", "Mystery", "Clam", "Sad", "Romantic", "Historic")

# Filename casings used by the library, tried in order
EXTENSIONS = (".MP3", ".mp3")

_INDEX_RE = re.compile(r"_(\d+)\.mp3$", re.IGNORECASE)


def map_mood_to_category(mood: str, rng: random.Random | None = None) -> str:
    """Map a free-form mood string to a music category.

    Pure function of the mood except for the "drama" group, which draws from
    ``rng`` (module-level random when not given).
    """
    normalized = (mood or "").lower()
    for keywords, categories in KEYWORD_GROUPS:
        if any(keyword in normalized for keyword in keywords):
            if len(categories) == 1:
                return categories[0]
            return (rng or random).choice(categories)
    logger.warning("No category matches mood %r; defaulting to %s", mood, DEFAULT_CATEGORY)
    return DEFAULT_CATEGORY


def intensity_to_index(intensity: int) -> int:
    """Scale intensity 1..10 onto asset index 1..7, rounding up."""
    scaled = -(-int(intensity) * MUSIC_INDEX_MAX // 10)
    return max(MUSIC_INDEX_MIN, min(MUSIC_INDEX_MAX, scaled))


def _index_order(first: int) -> list[int]:
    order = [first, MUSIC_INDEX_MIN] + list(range(MUSIC_INDEX_MIN, MUSIC_INDEX_MAX + 1))
    return list(dict.fromkeys(order))


def candidate_keys(category: str, index: int) -> list[tuple[str, int, str]]:
    """Ordered (category, index, path) candidates for one resolution.

    The mapped category at the computed index comes first, then index 1 and
    the remaining indices, then every fallback category from index 1 up.
    Each index is tried with each filename casing.
    """
    categories = [category] + [c for c in FALLBACK_CATEGORIES if c != category]
    keys = []
    for position, name in enumerate(categories):
        indices = _index_order(index if position == 0 else MUSIC_INDEX_MIN)
        for idx in indices:
            for ext in EXTENSIONS:
                keys.append((name, idx, f"{name}/{name}_{idx}{ext}"))
    return keys


def fallback_track(config: PipelineConfig) -> BackgroundTrack:
    """Last-resort track: the configured file, or the generated drone if none is set."""
    if not config.fallback_asset:
        return BackgroundTrack(
            category=DEFAULT_CATEGORY,
            index=MUSIC_INDEX_MIN,
            asset_ref=GENERATED_FALLBACK_REF,
            filename="ambient-drone",
            is_fallback=True,
        )
    return BackgroundTrack(
        category=DEFAULT_CATEGORY,
        index=MUSIC_INDEX_MIN,
        asset_ref=config.fallback_asset,
        filename=os.path.basename(config.fallback_asset),
        is_fallback=True,
    )


def generate_ambient_background(
    seconds: float = FALLBACK_DRONE_SECONDS,
    sample_rate: int = SAMPLE_RATE,
) -> AudioSegment:
    """Generate a procedural ambient drone using numpy sine waves.

    A-minor chord (A2 + C3 + E3) with slow amplitude modulation, used as the
    last-resort background when no fallback file is configured.
    """
    t = np.arange(int(sample_rate * seconds)) / sample_rate

    # A-minor chord: A2 (110 Hz), C3 (130.81 Hz), E3 (164.81 Hz)
    chord = (
        np.sin(2 * np.pi * 110.0 * t) * 0.3
        + np.sin(2 * np.pi * 130.81 * t) * 0.25
        + np.sin(2 * np.pi * 164.81 * t) * 0.2
    )
    mod = 0.7 + 0.3 * np.sin(2 * np.pi * 0.1 * t)
    combined = chord * mod

    peak = np.max(np.abs(combined)) if len(combined) else 0.0
    if peak > 0:
        combined = combined / peak * 0.8
    samples = (combined * 32767).astype(np.int16)

    return AudioSegment(
        data=samples.tobytes(),
        sample_width=2,
        frame_rate=sample_rate,
        channels=1,
    )


def _probe(store: AssetStore, path: str) -> str | None:
    """Return the URL for path if it exists; store errors count as missing."""
    try:
        if store.exists(path):
            return store.resolve_url(path)
    except Exception as e:
        logger.warning("Asset store lookup failed for %s: %s", path, e)
    return None


def resolve_background(
    metadata: MoodMetadata,
    store: AssetStore,
    config: PipelineConfig | None = None,
    rng: random.Random | None = None,
) -> BackgroundTrack:
    """Resolve the background track for one paragraph's mood. Never raises."""
    config = config or PipelineConfig()
    if config.music_selection == "random":
        return resolve_random_background(metadata, store, config, rng)

    category = map_mood_to_category(metadata.mood, rng)
    index = intensity_to_index(metadata.intensity)

    for name, idx, path in candidate_keys(category, index):
        url = _probe(store, path)
        if url:
            if (name, idx) != (category, index):
                logger.info("Using %s for %s_%d", path, category, index)
            return BackgroundTrack(
                category=name, index=idx, asset_ref=url, filename=path.rsplit("/", 1)[-1],
            )

    track = fallback_track(config)
    logger.warning("No background music in any category; using %s", track.asset_ref)
    return track


def resolve_random_background(
    metadata: MoodMetadata,
    store: AssetStore,
    config: PipelineConfig | None = None,
    rng: random.Random | None = None,
) -> BackgroundTrack:
    """Pick a random asset from the mood's category, falling back by category."""
    config = config or PipelineConfig()
    rng = rng or random.Random()
    category = map_mood_to_category(metadata.mood, rng)
    categories = [category] + [c for c in FALLBACK_CATEGORIES if c != category]

    for name in categories:
        try:
            files = [f for f in store.list_assets_in_category(name) if f.lower().endswith(".mp3")]
        except Exception as e:
            logger.warning("Could not list category %s: %s", name, e)
            continue
        if not files:
            continue
        filename = rng.choice(sorted(files))
        url = _probe(store, f"{name}/{filename}")
        if not url:
            continue
        match = _INDEX_RE.search(filename)
        return BackgroundTrack(
            category=name,
            index=int(match.group(1)) if match else MUSIC_INDEX_MIN,
            asset_ref=url,
            filename=filename,
        )

    track = fallback_track(config)
    logger.warning("No background music in any category; using %s", track.asset_ref)
    return track


def resolve_for_paragraphs(
    moods: list[MoodMetadata],
    store: AssetStore,
    config: PipelineConfig | None = None,
    rng: random.Random | None = None,
) -> list[BackgroundTrack]:
    """Resolve one track per paragraph, sharing a track across repeated moods.

    For a repeated mood the most intense paragraph decides the index.
    """
    strongest: dict[str, MoodMetadata] = {}
    for metadata in moods:
        current = strongest.get(metadata.mood)
        if current is None or metadata.intensity > current.intensity:
            strongest[metadata.mood] = metadata
    by_mood = {
        mood: resolve_background(metadata, store, config, rng)
        for mood, metadata in strongest.items()
    }
    return [by_mood[metadata.mood] for metadata in moods]


def load_background(
    track: BackgroundTrack,
    timeout: float = 60.0,
    sample_rate: int = SAMPLE_RATE,
) -> AudioSegment:
    """Fetch and decode a resolved track, recording its duration on it.

    The generated drone is synthesized at ``sample_rate``. A configured
    fallback file is a configuration requirement: if it cannot be read or
    decoded an AssetResolutionError is raised. Library assets that
    fail to load raise the same error so the caller can report the stage.
    """
    ref = track.asset_ref
    if ref == GENERATED_FALLBACK_REF:
        audio = generate_ambient_background(sample_rate=sample_rate)
        track.duration_seconds = audio.frame_count() / audio.frame_rate
        return audio

    try:
        if ref.startswith(("http://", "https://")):
            response = requests.get(ref, timeout=timeout)
            response.raise_for_status()
            data = response.content
        else:
            with open(ref[len("file://"):] if ref.startswith("file://") else ref, "rb") as f:
                data = f.read()
        audio = decode_audio(data)
    except Exception as e:
        what = "Fallback asset" if track.is_fallback else "Background asset"
        raise AssetResolutionError(f"{what} {ref} could not be loaded: {e}") from e

    track.duration_seconds = audio.frame_count() / audio.frame_rate
    return audio
