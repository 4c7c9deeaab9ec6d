"""Narration job orchestration.

A job segments the text, runs the per-paragraph stages (classify,
synthesize, resolve music, mix) concurrently on a thread pool, reassembles
the results in document order, renders the final track and hands the bytes
to the storage collaborator.

A job either returns a JobResult or raises a NarrationError naming the stage
and paragraph. Any paragraph failure aborts the whole job; nothing partial
is ever stored.
"""

import logging
import random
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import replace

from pydub import AudioSegment

from narration_producer.assets import AssetStore, CachedAssetStore
from narration_producer.classifier import MoodClassifier
from narration_producer.config import PipelineConfig
from narration_producer.errors import (
    AssetResolutionError,
    JobCancelled,
    NarrationError,
    RenderError,
    SynthesisError,
    UploadError,
)
from narration_producer.mixer import (
    BackgroundRegion,
    conform,
    describe_envelope,
    mix_narration,
    mix_regions,
)
from narration_producer.models import DEFAULT_MOOD, JobResult, MoodMetadata, ParagraphUnit
from narration_producer.music import (
    fallback_track,
    load_background,
    resolve_background,
    resolve_for_paragraphs,
)
from narration_producer.renderer import build_manifest, decode_audio, duration_seconds, render
from narration_producer.segmenter import segment
from narration_producer.sequencer import paragraph_timings, sequence
from narration_producer.storage import Storage
from narration_producer.tts import NarrationSynthesizer

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation, checked between paragraph stages."""

    def __init__(self, parent: "CancellationToken | None" = None):
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or (self._parent is not None and self._parent.cancelled)

    def check(self, stage: str, paragraph_index: int | None = None) -> None:
        if self.cancelled:
            raise JobCancelled(f"job cancelled before {stage}", paragraph_index)

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True early if cancelled."""
        deadline = time.monotonic() + seconds
        while not self.cancelled:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._event.wait(min(remaining, 0.1))
        return True


def call_with_retry(fn, attempts: int, base_delay: float, token: CancellationToken | None = None,
                    description: str = "call"):
    """Call fn up to ``attempts`` times with exponential backoff.

    Re-raises the last error once attempts are exhausted. Cancellation
    during a backoff raises JobCancelled.
    """
    last_error = None
    for attempt in range(attempts):
        try:
            return fn()
        except JobCancelled:
            raise
        except Exception as e:
            last_error = e
            logger.warning("%s failed (attempt %d/%d): %s", description, attempt + 1, attempts, e)

        if attempt < attempts - 1:
            delay = base_delay * (2 ** attempt)
            if token is not None:
                if token.wait(delay):
                    raise JobCancelled(f"job cancelled while retrying {description}")
            else:
                time.sleep(delay)

    raise last_error


class _Job:
    """State for one run: its units, cancellation and decoded backgrounds."""

    def __init__(self, pipeline: "NarrationPipeline", units: list[ParagraphUnit],
                 token: CancellationToken):
        self.pipeline = pipeline
        self.config = pipeline.config
        self.units = units
        self.token = token
        self._decoded: dict[str, AudioSegment] = {}
        self._lock = threading.Lock()
        # Drawn up front in document order so seeded runs stay reproducible
        # whatever order the workers finish in.
        self.seeds = [pipeline.rng.getrandbits(32) for _ in units]

    # -- per-paragraph stages ---------------------------------------------------

    def classify(self, unit: ParagraphUnit) -> MoodMetadata:
        try:
            return call_with_retry(
                lambda: self.pipeline.classifier.classify(unit.raw_text),
                self.config.retry_count, self.config.retry_base_delay, self.token,
                f"classification of paragraph {unit.index}",
            )
        except JobCancelled:
            raise
        except Exception as e:
            logger.warning("Paragraph %d: classification failed (%s); using default mood", unit.index, e)
            return MoodMetadata(**DEFAULT_MOOD.to_dict())

    def synthesize(self, unit: ParagraphUnit) -> AudioSegment:
        try:
            data = call_with_retry(
                lambda: self.pipeline.synthesizer.synthesize(unit.raw_text),
                self.config.retry_count, self.config.retry_base_delay, self.token,
                f"synthesis of paragraph {unit.index}",
            )
        except JobCancelled:
            raise
        except Exception as e:
            raise SynthesisError(
                f"failed after {self.config.retry_count} attempts: {e}", unit.index,
            ) from e
        try:
            return conform(decode_audio(data), self.config)
        except Exception as e:
            raise RenderError(f"narration audio could not be decoded: {e}", unit.index) from e

    def _decode_background(self, track) -> AudioSegment:
        with self._lock:
            cached = self._decoded.get(track.asset_ref)
        if cached is not None:
            track.duration_seconds = duration_seconds(cached)
            return cached
        audio = load_background(track, self.config.call_timeout_seconds, self.config.sample_rate)
        audio = conform(audio, self.config)
        with self._lock:
            self._decoded.setdefault(track.asset_ref, audio)
        return audio

    def background_for(self, unit: ParagraphUnit) -> AudioSegment:
        """Load the unit's background, resolving it first if needed."""
        if unit.background is None:
            rng = random.Random(self.seeds[unit.index])
            unit.background = resolve_background(unit.mood, self.pipeline.assets, self.config, rng)
        try:
            return self._decode_background(unit.background)
        except AssetResolutionError as e:
            if unit.background.is_fallback:
                raise AssetResolutionError(e.message, unit.index) from e
            logger.warning("Paragraph %d: %s; using last-resort fallback", unit.index, e.message)
        unit.background = fallback_track(self.config)
        try:
            return self._decode_background(unit.background)
        except AssetResolutionError as e:
            raise AssetResolutionError(e.message, unit.index) from e

    def process(self, unit: ParagraphUnit) -> int:
        i = unit.index
        self.token.check("classify", i)
        unit.mood = self.classify(unit)

        self.token.check("synthesize", i)
        unit.narration = self.synthesize(unit)

        if self.config.mix_mode == "paragraph":
            background = None
            if self.config.enable_music:
                self.token.check("resolve", i)
                background = self.background_for(unit)
            self.token.check("mix", i)
            unit.mixed = mix_narration(unit.narration, background, self.config, i)
            if background is not None:
                unit.envelope = describe_envelope(
                    self.config, duration_seconds(unit.narration), duration_seconds(background),
                )
            unit.narration = None
        logger.info("Paragraph %d ready (%s)", i, unit.mood.mood)
        return i

    # -- whole job -------------------------------------------------------------

    def process_all(self) -> None:
        workers = min(self.config.max_workers, len(self.units))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="narration") as pool:
            futures = [pool.submit(self.process, unit) for unit in self.units]
            try:
                for future in as_completed(futures):
                    future.result()
            except BaseException:
                self.token.cancel()
                for future in futures:
                    future.cancel()
                raise

    def assemble(self) -> AudioSegment:
        gap = self.config.paragraph_gap_seconds
        if self.config.mix_mode == "paragraph":
            return sequence([unit.mixed for unit in self.units], gap)

        track = sequence([unit.narration for unit in self.units], gap)
        if not self.config.enable_music:
            return mix_regions(track, [], self.config)

        # Repeated moods share one track across the whole narration
        self.token.check("resolve")
        rng = random.Random(self.seeds[0])
        tracks = resolve_for_paragraphs(
            [unit.mood for unit in self.units], self.pipeline.assets, self.config, rng,
        )
        timings = paragraph_timings([duration_seconds(u.narration) for u in self.units], gap)
        regions = []
        for position, (unit, track_ref, (start, end)) in enumerate(zip(self.units, tracks, timings)):
            unit.background = replace(track_ref)
            audio = self.background_for(unit)
            if position + 1 < len(timings):
                end = timings[position + 1][0]
            regions.append(BackgroundRegion(start, end, audio))
        self.token.check("mix")
        return mix_regions(track, regions, self.config)

    def release(self) -> None:
        for unit in self.units:
            unit.release()
        self._decoded.clear()


class NarrationPipeline:
    """Runs narration jobs against a set of collaborators."""

    def __init__(
        self,
        classifier: MoodClassifier,
        synthesizer: NarrationSynthesizer,
        assets: AssetStore,
        storage: Storage,
        config: PipelineConfig | None = None,
        rng: random.Random | None = None,
    ):
        self.classifier = classifier
        self.synthesizer = synthesizer
        self.assets = assets if isinstance(assets, CachedAssetStore) else CachedAssetStore(assets)
        self.storage = storage
        self.config = config or PipelineConfig()
        self.rng = rng or random.Random()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="narration-job")

    def run(self, text: str, name: str = "narration",
            token: CancellationToken | None = None) -> JobResult:
        """Produce one finished narration and return its stored reference."""
        units = segment(text, self.config)
        logger.info("Job %s: %d paragraphs", name, len(units))
        # Assets added since the last job become visible; known hits stay cached
        self.assets.invalidate(misses_only=True)
        job = _Job(self, units, CancellationToken(parent=token))
        try:
            job.process_all()
            job.token.check("sequence")
            final = job.assemble()

            job.token.check("render")
            data = render(final, self.config)

            job.token.check("upload")
            path = f"{name}.{self.config.output_format}"
            try:
                url = self.storage.store(data, path)
            except NarrationError:
                raise
            except Exception as e:
                raise UploadError(f"storing {path} failed: {e}") from e

            manifest = build_manifest(name, final, units, self.config, url)
            return JobResult(
                url=url,
                duration_seconds=duration_seconds(final),
                paragraph_count=len(units),
                units=units,
                manifest=manifest,
            )
        finally:
            job.release()

    def submit(self, text: str, name: str = "narration",
               token: CancellationToken | None = None) -> Future:
        """Run a job on the pipeline's worker thread."""
        return self._executor.submit(self.run, text, name, token)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
