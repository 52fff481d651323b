"""Section planner - disjoint macro-sections with per-section item quotas."""

import math
import re

from backend.app.models.docs import Section

_WHITESPACE = re.compile(r"\s+")
# A sentence runs up to and including its terminal punctuation; trailing text
# without punctuation is a sentence of its own.
_SENTENCE = re.compile(r"\S[^.!?]*(?:[.!?]+|$)")


def quotas(total_questions: int, section_count: int) -> list[int]:
    """Distribute a question total across sections as evenly as possible.

    Every element is floor(total/count) or one more; the remainder goes to the
    last sections, e.g. quotas(10, 3) == [3, 3, 4].

    Raises:
        ValueError: If section_count < 1 or total_questions < 0
    """
    if section_count < 1:
        raise ValueError("section_count must be >= 1")
    if total_questions < 0:
        raise ValueError("total_questions must be >= 0")

    base, remainder = divmod(total_questions, section_count)
    return [base + (1 if i >= section_count - remainder else 0) for i in range(section_count)]


def split_sentences(text: str) -> list[tuple[int, int]]:
    """Return (start, end) spans of sentences in single-line text."""
    return [(m.start(), m.end()) for m in _SENTENCE.finditer(text)]


def plan_sections(text: str, section_count: int) -> list[Section]:
    """Partition a document into at most section_count ordered sections.

    Whitespace is collapsed to single spaces first. Whole sentences are
    accumulated while the running length stays within
    ceil(total_length / section_count). A section is also closed early when the
    remaining sentences are only just enough to give each remaining section one,
    so there are exactly section_count non-empty sections whenever the text has
    at least that many sentences, and one section per sentence otherwise.

    Returns:
        Sections with quota 0; use assign_quotas to attach quotas.

    Raises:
        ValueError: If section_count < 1
    """
    if section_count < 1:
        raise ValueError("section_count must be >= 1")

    clean = _WHITESPACE.sub(" ", text).strip()
    if not clean:
        return []

    spans = split_sentences(clean)
    target = math.ceil(len(clean) / section_count)

    sections: list[Section] = []
    current_start: int | None = None
    current_end = 0

    def flush() -> None:
        nonlocal current_start
        if current_start is not None:
            sections.append(
                Section(index=len(sections), start=current_start, text=clean[current_start:current_end])
            )
            current_start = None

    for i, (sent_start, sent_end) in enumerate(spans):
        remaining = len(spans) - i
        # Sections still to open after the current one
        open_slots = section_count - len(sections) - 1
        if current_start is not None and open_slots > 0:
            too_long = (sent_end - current_start) > target
            if too_long or remaining <= open_slots:
                flush()

        if current_start is None:
            current_start = sent_start
        current_end = sent_end

    flush()
    return sections


def assign_quotas(sections: list[Section], total_questions: int) -> list[Section]:
    """Attach the quota distribution over the actual number of sections."""
    if not sections:
        return []
    distribution = quotas(total_questions, len(sections))
    return [section.model_copy(update={"quota": q}) for section, q in zip(sections, distribution)]
