"""Split prepared text into ordered paragraph units.

Upstream text preparation marks paragraph boundaries with a reserved
delimiter character ("$" by default). That is the primary convention.
Splitting on blank lines is a fallback heuristic, used only when the
delimiter produced a single unit and the text is long enough that a single
paragraph is implausible.
"""

import logging
import re

from narration_producer.config import PipelineConfig
from narration_producer.errors import InputError
from narration_producer.models import ParagraphUnit

logger = logging.getLogger(__name__)

_BLANK_LINE_RE = re.compile(r"\n\s*\n")


def _non_empty(parts: list[str]) -> list[str]:
    return [p.strip() for p in parts if p.strip()]


def split_paragraphs(text: str, config: PipelineConfig | None = None) -> list[str]:
    """Return the ordered, non-empty paragraph texts of a document.

    Raises InputError when the text is empty or yields no paragraphs.
    """
    config = config or PipelineConfig()
    if text is None or not text.strip():
        raise InputError("text is empty")

    normalized = text.replace("\r\n", "\n")
    paragraphs = _non_empty(normalized.split(config.paragraph_delimiter))

    if len(paragraphs) <= 1 and len(normalized) > config.fallback_min_chars:
        blank_line_split = _non_empty(_BLANK_LINE_RE.split(normalized))
        if len(blank_line_split) > 1:
            logger.info(
                "No '%s' delimiters found; split on blank lines into %d paragraphs",
                config.paragraph_delimiter, len(blank_line_split),
            )
            # Stray delimiters must not be narrated
            paragraphs = _non_empty(
                [p.replace(config.paragraph_delimiter, " ") for p in blank_line_split]
            )

    if len(paragraphs) > config.max_paragraphs:
        dropped = paragraphs[config.max_paragraphs:]
        logger.warning(
            "Dropping %d of %d paragraphs (%d characters) beyond the %d-paragraph limit",
            len(dropped), len(paragraphs), sum(len(p) for p in dropped), config.max_paragraphs,
        )
        paragraphs = paragraphs[:config.max_paragraphs]

    if not paragraphs:
        raise InputError("text contains no paragraphs")

    return paragraphs


def segment(text: str, config: PipelineConfig | None = None) -> list[ParagraphUnit]:
    """Split text into ParagraphUnits indexed in document order."""
    return [
        ParagraphUnit(index=i, raw_text=paragraph)
        for i, paragraph in enumerate(split_paragraphs(text, config))
    ]
