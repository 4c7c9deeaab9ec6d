"""CLI interface with subcommand routing."""

import argparse
import json
import logging
import os
import random
import re
import shutil
import sys

from botocore.exceptions import BotoCoreError, ClientError

from narration_producer.assets import CachedAssetStore, LocalAssetStore
from narration_producer.classifier import FixedMoodClassifier, LLMMoodClassifier
from narration_producer.config import PRESETS, load_config
from narration_producer.constants import (
    LLM_MODEL,
    MUSIC_LIBRARY_DIR,
    OUTPUT_DIR,
    TTS_VOICE,
    VERSION,
)
from narration_producer.errors import NarrationError
from narration_producer.models import MoodMetadata
from narration_producer.music import intensity_to_index, resolve_background
from narration_producer.pipeline import NarrationPipeline
from narration_producer.segmenter import split_paragraphs
from narration_producer.storage import LocalStorage, S3AssetStore, S3Storage
from narration_producer.tts import EdgeTTSSynthesizer


def _check_ffmpeg():
    """Verify ffmpeg is installed."""
    if not shutil.which("ffmpeg"):
        print("Error: ffmpeg is required but not found.", file=sys.stderr)
        print("Install with: brew install ffmpeg", file=sys.stderr)
        raise SystemExit(1)


def _fail(message: str):
    print(f"Error: {message}", file=sys.stderr)
    raise SystemExit(1)


def slug_from_path(path: str) -> str:
    """Job name from a text filename.

    "Tell-Tale Heart.txt" → "tell_tale_heart"
    """
    basename = os.path.splitext(os.path.basename(path))[0]
    return re.sub(r"[^a-zA-Z0-9]+", "_", basename).strip("_").lower() or "narration"


def _read_text(path: str) -> str:
    if not os.path.exists(path):
        _fail(f"File not found: {path}")
    with open(path, encoding="utf-8") as f:
        return f.read()


def _asset_store(location: str, endpoint_url: str | None = None):
    """Local directory, or s3://bucket/prefix for a bucket-hosted library."""
    if location.startswith("s3://"):
        bucket, _, prefix = location[len("s3://"):].partition("/")
        return S3AssetStore(bucket, prefix=prefix, endpoint_url=endpoint_url)
    return LocalAssetStore(location)


def _rng(seed):
    return random.Random(seed) if seed is not None else random.Random()


def cmd_narrate(args):
    """Produce a narrated track from a text file."""
    _check_ffmpeg()
    text = _read_text(args.file)
    name = args.name or slug_from_path(args.file)

    try:
        config = load_config(args.config, args.preset).with_overrides(
            mix_mode=args.mode,
            paragraph_gap_seconds=args.gap,
            output_format=args.format,
            music_selection=args.selection,
            enable_music=False if args.no_music else None,
        )
    except (OSError, ValueError) as e:
        _fail(str(e))

    if args.llm_url:
        classifier = LLMMoodClassifier(
            args.llm_url,
            api_key=os.environ.get("OPENAI_API_KEY", ""),
            model=args.llm_model,
            timeout=config.call_timeout_seconds,
        )
    else:
        classifier = FixedMoodClassifier()

    if args.s3_bucket:
        storage = S3Storage(
            args.s3_bucket,
            prefix=args.s3_prefix,
            endpoint_url=args.s3_endpoint,
            public_base_url=args.s3_public_url,
        )
    else:
        storage = LocalStorage(args.output_dir)

    assets = CachedAssetStore(_asset_store(args.assets, args.s3_endpoint))
    if args.assets.startswith("s3://"):
        try:
            print(f"Music library: {assets.warm()} files in {args.assets}")
        except (BotoCoreError, ClientError) as e:
            print(f"Warning: could not list music library {args.assets}: {e}", file=sys.stderr)

    pipeline = NarrationPipeline(
        classifier=classifier,
        synthesizer=EdgeTTSSynthesizer(voice=args.voice, timeout=config.call_timeout_seconds),
        assets=assets,
        storage=storage,
        config=config,
        rng=_rng(args.seed),
    )

    print(f"Narrating {args.file} ({config.mix_mode} mix, {config.output_format})...")
    try:
        result = pipeline.run(text, name=name)
        manifest_url = storage.store(
            json.dumps(result.manifest, indent=2).encode("utf-8"), f"{name}.json",
        )
    except NarrationError as e:
        _fail(str(e))
    finally:
        pipeline.close()

    for unit in result.units:
        mood = unit.mood.mood if unit.mood else "?"
        track = unit.background.filename if unit.background else "none"
        print(f"  [{unit.index + 1:>2}] {mood:<12} {track}")
    print(f"Done! {result.paragraph_count} paragraphs, {result.duration_seconds:.1f}s")
    print(f"  Audio:    {result.url}")
    print(f"  Manifest: {manifest_url}")


def cmd_resolve(args):
    """Show which background track a mood resolves to."""
    metadata = MoodMetadata(mood=args.mood, intensity=args.intensity)
    try:
        config = PRESETS["client"].with_overrides(music_selection=args.selection)
    except ValueError as e:
        _fail(str(e))
    store = CachedAssetStore(_asset_store(args.assets))
    rng = _rng(args.seed)

    track = resolve_background(metadata, store, config, rng)
    print(f"Mood:      {metadata.mood} (intensity {metadata.intensity})")
    print(f"Wanted:    index {intensity_to_index(metadata.intensity)}")
    marker = " [fallback]" if track.is_fallback else ""
    print(f"Track:     {track.category}/{track.filename}{marker}")
    print(f"Reference: {track.asset_ref}")


def cmd_assets(args):
    """List the music library."""
    store = _asset_store(args.assets)
    categories = store.list_categories()
    if not categories:
        print(f"No music categories found in {args.assets}.")
        return
    print("Music library:")
    for category in categories:
        files = store.list_assets_in_category(category)
        print(f"  {category:<10} {len(files)} files")
        for filename in files:
            print(f"    {filename}")


def cmd_segments(args):
    """Show how a text file splits into paragraphs."""
    text = _read_text(args.file)
    try:
        paragraphs = split_paragraphs(text, load_config(args.config, args.preset))
    except (OSError, ValueError, NarrationError) as e:
        _fail(str(e))
    print(f"{len(paragraphs)} paragraphs:")
    for i, paragraph in enumerate(paragraphs):
        preview = paragraph if len(paragraph) <= 60 else paragraph[:57] + "..."
        print(f"  [{i + 1:>2}] ({len(paragraph)} chars) {preview}")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="narration-producer",
        description="Narration Producer — turn prepared text into narrated audio with mood-matched music",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log pipeline progress")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # narrate
    narrate_parser = subparsers.add_parser("narrate", help="Produce a narrated track from a text file")
    narrate_parser.add_argument("file", help="Path to the prepared text file")
    narrate_parser.add_argument("--preset", choices=sorted(PRESETS), default="client", help="Mixing preset")
    narrate_parser.add_argument("--config", help="JSON file overriding preset settings")
    narrate_parser.add_argument("--assets", default=MUSIC_LIBRARY_DIR,
                                help="Music library directory or s3://bucket/prefix")
    narrate_parser.add_argument("--output-dir", default=OUTPUT_DIR, help="Local output directory")
    narrate_parser.add_argument("--name", help="Output name (default: from filename)")
    narrate_parser.add_argument("--voice", default=TTS_VOICE, help="edge-tts voice")
    narrate_parser.add_argument("--mode", choices=["paragraph", "whole"], help="Mix per paragraph or over the whole track")
    narrate_parser.add_argument("--gap", type=float, help="Silence between paragraphs in seconds")
    narrate_parser.add_argument("--format", choices=["wav", "mp3"], help="Output container")
    narrate_parser.add_argument("--selection", choices=["intensity", "random"], help="Background selection mode")
    narrate_parser.add_argument("--no-music", action="store_true", help="Narration only")
    narrate_parser.add_argument("--seed", type=int, help="Seed for random music choices")
    narrate_parser.add_argument("--llm-url", help="OpenAI-compatible API base URL for mood classification")
    narrate_parser.add_argument("--llm-model", default=LLM_MODEL, help="Classifier model name")
    narrate_parser.add_argument("--s3-bucket", help="Upload to this S3/R2 bucket instead of --output-dir")
    narrate_parser.add_argument("--s3-endpoint", help="S3-compatible endpoint URL (R2, MinIO)")
    narrate_parser.add_argument("--s3-prefix", default="", help="Key prefix for uploads")
    narrate_parser.add_argument("--s3-public-url", help="Public base URL of the bucket")
    narrate_parser.set_defaults(func=cmd_narrate)

    # resolve
    resolve_parser = subparsers.add_parser("resolve", help="Show the background track for a mood")
    resolve_parser.add_argument("mood", help="Mood word, e.g. 'tense'")
    resolve_parser.add_argument("--intensity", type=int, default=5, help="Intensity 1-10")
    resolve_parser.add_argument("--assets", default=MUSIC_LIBRARY_DIR, help="Music library directory")
    resolve_parser.add_argument("--selection", choices=["intensity", "random"], help="Selection mode")
    resolve_parser.add_argument("--seed", type=int, help="Seed for random choices")
    resolve_parser.set_defaults(func=cmd_resolve)

    # assets
    assets_parser = subparsers.add_parser("assets", help="List the music library")
    assets_parser.add_argument("--assets", default=MUSIC_LIBRARY_DIR, help="Music library directory or s3://bucket/prefix")
    assets_parser.set_defaults(func=cmd_assets)

    # segments
    segments_parser = subparsers.add_parser("segments", help="Show how a file splits into paragraphs")
    segments_parser.add_argument("file", help="Path to the prepared text file")
    segments_parser.add_argument("--preset", choices=sorted(PRESETS), default="client", help="Settings preset")
    segments_parser.add_argument("--config", help="JSON file overriding preset settings")
    segments_parser.set_defaults(func=cmd_segments)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    args.func(args)
