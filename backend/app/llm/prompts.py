"""Prompt templates for each content kind.

Every prompt asks for a single JSON object so responses can be validated
against the item models. Level guidance is fixed per skill level.
"""

import json
from typing import Any

from backend.app.models.common import ContentType, QuestionFormat, SkillLevel

SUMMARY_GUIDANCE: dict[SkillLevel, str] = {
    SkillLevel.beginner: (
        "Create a simple, easy-to-understand summary using basic vocabulary and clear "
        "explanations. Avoid technical terms where possible."
    ),
    SkillLevel.intermediate: (
        "Create a detailed summary that balances technical accuracy with accessibility. "
        "Include key terminology with brief explanations."
    ),
    SkillLevel.advanced: (
        "Create a comprehensive summary using field-specific terminology and advanced "
        "concepts. Assume the reader has strong background knowledge."
    ),
}

QUESTION_LEVEL_CONTEXT: dict[SkillLevel, str] = {
    SkillLevel.beginner: "using simple language and basic concepts",
    SkillLevel.intermediate: "incorporating field-specific terminology and moderate complexity",
    SkillLevel.advanced: "using advanced concepts and challenging application of knowledge",
}

EXPLANATION_GUIDANCE: dict[SkillLevel, str] = {
    SkillLevel.beginner: (
        "Compare this to something from everyday life. Use simple 'like when you...' "
        "examples. Avoid technical terms."
    ),
    SkillLevel.intermediate: (
        "Explain using a mix of real-world examples and field-specific concepts. "
        "Compare with a related but different concept."
    ),
    SkillLevel.advanced: (
        "Analyze the theoretical framework, highlight critical nuances, and discuss "
        "relationships with other advanced concepts."
    ),
}

# Bloom's taxonomy emphasis per level
BLOOM_LEVELS: dict[SkillLevel, list[str]] = {
    SkillLevel.beginner: ["remember", "understand"],
    SkillLevel.intermediate: ["apply", "analyze"],
    SkillLevel.advanced: ["evaluate", "create"],
}

SKILL_LEVEL_GUIDELINES: dict[SkillLevel, dict[str, Any]] = {
    SkillLevel.beginner: {
        "vocabulary": ["basic", "fundamental", "introductory"],
        "concept_depth": "Focus on core concepts with simple explanations",
        "example_complexity": "Use straightforward examples with minimal variables",
        "assumed_knowledge": ["basic arithmetic", "simple logic"],
    },
    SkillLevel.intermediate: {
        "vocabulary": ["moderate", "applied", "analytical"],
        "concept_depth": "Include underlying principles and some theoretical background",
        "example_complexity": "Use multi-step problems with real-world applications",
        "assumed_knowledge": ["algebra", "basic principles", "terminology"],
    },
    SkillLevel.advanced: {
        "vocabulary": ["complex", "theoretical", "comprehensive"],
        "concept_depth": "Explore advanced concepts and edge cases",
        "example_complexity": "Use complex scenarios with multiple variables",
        "assumed_knowledge": ["advanced concepts", "theoretical foundations"],
    },
}

_FORMAT_INSTRUCTIONS: dict[QuestionFormat, str] = {
    QuestionFormat.multiple_choice: """For each question:
1. Write a clear question
2. Provide exactly 4 options (A, B, C, D) as plain text without letter prefixes
3. Give the correct answer as the letter A, B, C or D
4. Add a brief explanation of why it is correct
Each question object has fields: question, options (array of 4), correctAnswer, explanation""",
    QuestionFormat.open_ended: """For each question:
1. Write a thought-provoking question that requires explanation
2. Provide a model answer
3. Include key points that should be addressed
Each question object has fields: question, modelAnswer, keyPoints (array)""",
    QuestionFormat.fill_in_blank: """For each question:
1. Write a sentence with a key term or concept replaced by "_____"
2. Provide the correct answer
3. Add a brief explanation of the concept
Each question object has fields: question, answer, explanation""",
}

Messages = list[dict[str, str]]


def _subject_context(subject: str | None) -> str:
    return f" in the context of {subject}" if subject else ""


def summary_messages(text: str, level: SkillLevel, subject: str | None) -> Messages:
    """Messages for summarising one chunk."""
    system = (
        f"You are an expert at creating summaries{_subject_context(subject)}. "
        f"{SUMMARY_GUIDANCE[level]}\n"
        'Respond with a JSON object: {"summary": "<the summary>"}'
    )
    return [{"role": "system", "content": system}, {"role": "user", "content": text}]


def study_guide_messages(
    text: str, level: SkillLevel, subject: str | None, index: int, total: int
) -> Messages:
    """Messages for one study guide section (index is 0-based)."""
    system = f"""You are a study guide creator that breaks down complex topics into clear, organized sections.
Write for a {level.value} learner. {SKILL_LEVEL_GUIDELINES[level]["concept_depth"]}.
Create a detailed study guide that includes:
- Main concepts and definitions
- Key points and explanations
- Examples and applications
- Important relationships between concepts
This is section {index + 1} of {total}.
Respond with a JSON object: {{"content": "<the study guide section as markdown>"}}"""
    user = f"Create a comprehensive study guide for this{_subject_context(subject)} content:\n\n{text}"
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


def concept_review_messages(sections: list[str], level: SkillLevel, subject: str | None) -> Messages:
    """Messages for the cross-section key concepts review."""
    system = (
        f"Create a concise review of the key concepts from all sections"
        f"{_subject_context(subject)}, written for a {level.value} learner.\n"
        'Respond with a JSON object: {"review": "<the review as markdown>"}'
    )
    user = "Summarize the key concepts from these study guide sections:\n\n" + "\n\n".join(sections)
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


def quiz_section_messages(
    text: str,
    quota: int,
    question_format: QuestionFormat,
    level: SkillLevel,
    subject: str | None,
    section_index: int,
    section_total: int,
) -> Messages:
    """Messages asking for exactly `quota` questions from one section."""
    position = f"{section_index + 1} of {section_total}"
    bloom = ", ".join(BLOOM_LEVELS[level])
    system = f"""Generate exactly {quota} questions from this section ({position}){_subject_context(subject)}.
Do not reference information outside this specific section.
Rules:
1. Generate EXACTLY {quota} questions
2. Questions must be specific to this section's content
3. Each question must cover a different concept
4. Format: {question_format.value}
5. Difficulty: {level.value}, emphasising the cognitive levels: {bloom}
Create {question_format.value.replace("_", " ")} questions {QUESTION_LEVEL_CONTEXT[level]}.
{_FORMAT_INSTRUCTIONS[question_format]}
Respond with a JSON object: {{"questions": [...]}}"""
    user = (
        f"Section {section_index + 1}/{section_total}:\n\n{text}\n\n"
        f"Generate exactly {quota} questions from this section only."
    )
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


def explanation_messages(
    question: str, answer: str, context: str, level: SkillLevel, subject: str | None
) -> Messages:
    """Messages for a step-by-step answer explanation."""
    system = f"""You are an engaging tutor{_subject_context(subject)} who makes complex ideas relatable. {EXPLANATION_GUIDANCE[level]}
Never just restate the question. Instead:
1. Use vivid examples or analogies
2. Compare with opposite or related concepts
3. Explain practical implications
Respond with a JSON object:
{{
  "steps": ["analogy or real-world example", "comparison with a related concept", "practical implication"],
  "conceptsUsed": ["2-3 core concepts that illuminate the answer"],
  "additionalNotes": "one memorable fact or common misconception to avoid"
}}
For multiple choice, explain why the correct answer makes sense and why a tempting wrong answer is incorrect."""
    user = (
        f"Question: {question}\nAnswer: {answer}\n\n"
        f"Make this concept clear and memorable using this context:\n{context}"
    )
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


def difficulty_messages(
    payload: Any,
    content_type: ContentType,
    from_level: SkillLevel,
    to_level: SkillLevel,
    preserve_core: bool,
    subject: str | None,
) -> Messages:
    """Messages for rewriting content from one skill level to another."""
    guidelines = SKILL_LEVEL_GUIDELINES[to_level]
    lines = [
        f"Adjust the following {content_type.value}{_subject_context(subject)} "
        f"from {from_level.value} level to {to_level.value} level.",
        "",
        "Target Level Guidelines:",
        f"- Vocabulary Level: {', '.join(guidelines['vocabulary'])}",
        f"- Concept Depth: {guidelines['concept_depth']}",
        f"- Example Complexity: {guidelines['example_complexity']}",
        f"- Assumed Knowledge: {', '.join(guidelines['assumed_knowledge'])}",
        f"- Cognitive Focus: {', '.join(BLOOM_LEVELS[to_level])}",
        "",
        "Additional Instructions:",
    ]
    if preserve_core:
        lines.append("- Maintain core concepts while adjusting complexity")
    lines.extend(
        [
            "- Adjust language and examples to match target level",
            "- Maintain the same basic structure and format",
            "- Ensure accuracy and clarity at the new level",
            "",
            "Return the adjusted content as a JSON object with the same fields as the input.",
        ]
    )
    user = "Original Content:\n" + json.dumps(payload, indent=2, ensure_ascii=False)
    return [{"role": "system", "content": "\n".join(lines)}, {"role": "user", "content": user}]
