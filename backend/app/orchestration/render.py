"""Render generated items into the markdown content returned to clients."""

from backend.app.models.common import SkillLevel
from backend.app.models.items import (
    OPTION_LETTERS,
    ConceptReview,
    Explanation,
    QuizQuestion,
    StudyGuideSection,
    SummaryItem,
)

STUDY_GUIDE_FOOTER = "---\n*Review each section, then test yourself with a practice quiz.*"


def render_summary(items: list[SummaryItem]) -> str:
    """Join chunk summaries with blank lines; one chunk gives its summary verbatim."""
    return "\n\n".join(item.text for item in items)


def render_study_guide(
    sections: list[StudyGuideSection],
    review: ConceptReview | None,
    level: SkillLevel,
    subject: str | None = None,
) -> str:
    """Study guide with fixed header, one heading per section, review, and footer."""
    title = f"# Study Guide: {subject}" if subject else "# Study Guide"
    parts = [f"{title}\n\n*Skill level: {level.value}*"]
    for section in sections:
        parts.append(f"## Section {section.index + 1} of {section.total}\n\n{section.text}")
    if review is not None:
        parts.append(f"## Key Concepts Review\n\n{review.text}")
    parts.append(STUDY_GUIDE_FOOTER)
    return "\n\n".join(parts)


def render_explanation(explanation: Explanation) -> str:
    """Step-by-step explanation block."""
    lines = ["Step-by-Step Explanation:"]
    lines.extend(f"{i + 1}. {step}" for i, step in enumerate(explanation.steps))
    if explanation.concepts_used:
        lines.append(f"Key Concepts: {', '.join(explanation.concepts_used)}")
    if explanation.additional_notes:
        lines.append(f"Note: {explanation.additional_notes}")
    return "\n".join(lines)


def render_question(number: int, question: QuizQuestion) -> str:
    """One numbered question with options, answer, and explanation."""
    lines = [f"{number}. {question.prompt}"]
    if question.options is not None:
        lines.extend(f"   {OPTION_LETTERS[i]}. {opt}" for i, opt in enumerate(question.options))
        answer = f"{question.correct_answer}. {question.options[question.correct_index or 0]}"
    else:
        answer = question.correct_answer
    lines.append(f"   Answer: {answer}")
    lines.append(f"   Explanation: {question.explanation}")
    if question.detailed_explanation is not None:
        detail = render_explanation(question.detailed_explanation)
        lines.extend(f"   {line}" for line in detail.splitlines())
    return "\n".join(lines)


def render_quiz(questions: list[QuizQuestion], subject: str | None = None) -> str:
    """Numbered practice quiz."""
    title = f"# Practice Quiz: {subject}" if subject else "# Practice Quiz"
    body = "\n\n".join(render_question(i + 1, q) for i, q in enumerate(questions))
    return f"{title}\n\n{body}"
