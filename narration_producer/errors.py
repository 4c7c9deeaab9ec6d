"""Error taxonomy for narration jobs.

Every error carries the pipeline stage it came from and, where one applies,
the index of the paragraph being processed, so a failed job can be reported
as a structured record instead of a bare message.
"""


class NarrationError(Exception):
    stage = "job"

    def __init__(self, message: str, paragraph_index: int | None = None):
        super().__init__(message)
        self.message = message
        self.paragraph_index = paragraph_index

    def __str__(self) -> str:
        if self.paragraph_index is None:
            return f"{self.stage}: {self.message}"
        return f"{self.stage} [paragraph {self.paragraph_index}]: {self.message}"

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "paragraph_index": self.paragraph_index,
            "message": self.message,
        }


class InputError(NarrationError):
    """Empty or invalid source text."""
    stage = "segment"


class ClassificationError(NarrationError):
    """Mood classification failed; callers substitute default metadata."""
    stage = "classify"


class SynthesisError(NarrationError):
    """Narration synthesis failed after all retries."""
    stage = "synthesize"


class AssetResolutionError(NarrationError):
    """No usable background asset, including the last-resort fallback."""
    stage = "resolve"


class MixingError(NarrationError):
    stage = "mix"


class RenderError(NarrationError):
    stage = "render"


class UploadError(NarrationError):
    """Raised by storage collaborators; never retried by the pipeline."""
    stage = "upload"


class JobCancelled(NarrationError):
    stage = "cancel"
