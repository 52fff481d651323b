"""Error taxonomy for study material generation.

Recoverable errors (GenerationError, CountMismatchError) are retried by the
bounded retry utility. Fatal errors surface to the orchestrator, which wraps
them in PipelineError. ContentValidationError is never fatal: callers keep the
pre-adjustment content.
"""

from enum import Enum


class GenerationErrorKind(str, Enum):
    """Failure class of a single model call."""

    PARSE_FAILURE = "parse_failure"
    MODEL_ERROR = "model_error"
    TIMEOUT = "timeout"


class InputError(Exception):
    """Request is invalid; surfaced immediately, never retried."""

    pass


class GenerationError(Exception):
    """A model call failed in a recoverable way."""

    def __init__(self, kind: GenerationErrorKind, message: str, *, content_kind: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.content_kind = content_kind

    def __str__(self) -> str:
        prefix = f"{self.content_kind} " if self.content_kind else ""
        return f"{prefix}{self.kind.value}: {self.args[0]}"


class CountMismatchError(Exception):
    """Model returned a different number of items than requested."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"expected {expected} items, got {actual}")
        self.expected = expected
        self.actual = actual


class ContentValidationError(Exception):
    """Adjusted content no longer satisfies its structural contract."""

    pass


class GenerationCancelledError(Exception):
    """Generation was cancelled by the caller."""

    pass


class RetryExhaustedError(Exception):
    """All attempts of a bounded retry failed."""

    def __init__(self, attempts: int, last_error: BaseException | None):
        super().__init__(f"failed after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class SectionGenerationError(Exception):
    """A quiz section could not produce its exact quota."""

    def __init__(self, section_index: int, quota: int, last_count: int | None, attempts: int):
        observed = "no parseable output" if last_count is None else f"last returned {last_count}"
        super().__init__(
            f"section {section_index + 1} failed after {attempts} attempt(s): "
            f"expected {quota} questions, {observed}"
        )
        self.section_index = section_index
        self.quota = quota
        self.last_count = last_count
        self.attempts = attempts


class PipelineError(Exception):
    """Fatal pipeline failure; the originating error is chained as __cause__."""

    def __init__(self, material_type: str, message: str, *, unit: str | None = None):
        super().__init__(message)
        self.material_type = material_type
        self.unit = unit

    def user_message(self) -> str:
        """Single user-facing message naming the material type and failing unit."""
        label = self.material_type.replace("_", " ")
        where = f" ({self.unit})" if self.unit else ""
        return f"Failed to generate {label}{where}: {self.args[0]}"
