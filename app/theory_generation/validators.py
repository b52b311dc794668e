"""Structural validation of generated section documents.

Pure functions: a document in, a ``ValidationOutcome`` out. Checks cover
required fields and minimum list cardinality only. Semantic quality is
left to the model and to human review. Stats (character and entry
counts) are informational and never affect the verdict.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from app.theory_generation.models import SectionKind, ValidationOutcome

UNKNOWN_CONTENT_TYPE = "unknown content type"
NOT_AN_OBJECT = "document must be a JSON object"

# Cardinality thresholds
MIN_CONCEPT_SECTIONS = 2
MIN_KEY_POINTS = 2
MIN_MODEL_STEPS = 4
MAX_MODEL_STEPS = 6
MIN_KEY_LESSONS = 3

STEPS_TOO_FEW = "steps too few"
STEPS_TOO_MANY = "steps too many"


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def is_blank(value: Any) -> bool:
    """None, whitespace-only strings and empty containers count as missing."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def _length(value: Any) -> int:
    if isinstance(value, (str, list)):
        return len(value)
    return 0


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _require(
    doc: dict[str, Any], key: str, errors: list[str], prefix: str = "",
) -> None:
    if is_blank(doc.get(key)):
        errors.append(f"{prefix}{key} is required")


# ---------------------------------------------------------------------------
# Concepts
# ---------------------------------------------------------------------------


def validate_concepts(doc: dict[str, Any]) -> ValidationOutcome:
    errors: list[str] = []
    _require(doc, "title", errors)
    _require(doc, "introduction", errors)

    sections = doc.get("sections")
    if not isinstance(sections, list) or len(sections) < MIN_CONCEPT_SECTIONS:
        errors.append(
            f"sections must have at least {MIN_CONCEPT_SECTIONS} entries",
        )
    for i, raw in enumerate(_as_list(sections)):
        section = _as_dict(raw)
        prefix = f"sections[{i}]."
        _require(section, "heading", errors, prefix)
        _require(section, "content", errors, prefix)
        key_points = section.get("keyPoints")
        if not isinstance(key_points, list) or len(key_points) < MIN_KEY_POINTS:
            errors.append(
                f"{prefix}keyPoints must have at least "
                f"{MIN_KEY_POINTS} entries",
            )

    _require(doc, "summary", errors)
    return ValidationOutcome(
        is_valid=not errors, errors=errors, stats=concepts_stats(doc),
    )


def concepts_stats(doc: dict[str, Any]) -> dict[str, Any]:
    sections = [
        {
            "heading": _length(s.get("heading")),
            "content": _length(s.get("content")),
            "key_points_count": _length(s.get("keyPoints")),
            "examples_count": _length(s.get("examples")),
        }
        for s in map(_as_dict, _as_list(doc.get("sections")))
    ]
    return {
        "title": _length(doc.get("title")),
        "introduction": _length(doc.get("introduction")),
        "sections": sections,
        "summary": _length(doc.get("summary")),
        "next_steps": _length(doc.get("nextSteps")),
        "total_sections": len(sections),
        "total_content_length": sum(s["content"] for s in sections),
    }


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


def validate_models(doc: dict[str, Any]) -> ValidationOutcome:
    errors: list[str] = []
    _require(doc, "frameworkName", errors)
    _require(doc, "introduction", errors)

    steps = doc.get("steps")
    if not isinstance(steps, list) or len(steps) < MIN_MODEL_STEPS:
        errors.append(STEPS_TOO_FEW)
    if isinstance(steps, list) and len(steps) > MAX_MODEL_STEPS:
        errors.append(STEPS_TOO_MANY)
    for i, raw in enumerate(_as_list(steps)):
        step = _as_dict(raw)
        prefix = f"steps[{i}]."
        _require(step, "description", errors, prefix)
        _require(step, "tips", errors, prefix)
        _require(step, "commonMistakes", errors, prefix)

    _require(doc, "applicationExample", errors)
    return ValidationOutcome(
        is_valid=not errors, errors=errors, stats=models_stats(doc),
    )


def models_stats(doc: dict[str, Any]) -> dict[str, Any]:
    steps = [
        {
            "step": _length(s.get("step")),
            "description": _length(s.get("description")),
            "tips": _length(s.get("tips")),
            "common_mistakes": _length(s.get("commonMistakes")),
            "example": _length(s.get("example")),
        }
        for s in map(_as_dict, _as_list(doc.get("steps")))
    ]
    return {
        "framework_name": _length(doc.get("frameworkName")),
        "introduction": _length(doc.get("introduction")),
        "steps": steps,
        "application_example": _length(doc.get("applicationExample")),
        "when_to_use": _length(doc.get("whenToUse")),
        "total_steps": len(steps),
        "total_step_descriptions": sum(s["description"] for s in steps),
    }


# ---------------------------------------------------------------------------
# Demonstrations
# ---------------------------------------------------------------------------


def validate_demonstrations(doc: dict[str, Any]) -> ValidationOutcome:
    errors: list[str] = []
    _require(doc, "scenario", errors)
    _require(_as_dict(doc.get("goodAnalysis")), "content", errors, "goodAnalysis.")
    _require(_as_dict(doc.get("poorAnalysis")), "content", errors, "poorAnalysis.")
    _require(doc, "expertCommentary", errors)

    key_lessons = doc.get("keyLessons")
    if not isinstance(key_lessons, list) or len(key_lessons) < MIN_KEY_LESSONS:
        errors.append(
            f"keyLessons must have at least {MIN_KEY_LESSONS} entries",
        )
    return ValidationOutcome(
        is_valid=not errors, errors=errors, stats=demonstrations_stats(doc),
    )


def demonstrations_stats(doc: dict[str, Any]) -> dict[str, Any]:
    good = _as_dict(doc.get("goodAnalysis"))
    poor = _as_dict(doc.get("poorAnalysis"))
    return {
        "scenario": _length(doc.get("scenario")),
        "question": _length(doc.get("question")),
        "good_analysis": {
            "title": _length(good.get("title")),
            "content": _length(good.get("content")),
            "strengths_count": _length(good.get("strengths")),
            "applied_concepts_count": _length(good.get("appliedConcepts")),
        },
        "poor_analysis": {
            "title": _length(poor.get("title")),
            "content": _length(poor.get("content")),
            "problems_count": _length(poor.get("problems")),
            "missed_points_count": _length(poor.get("missedPoints")),
        },
        "expert_commentary": _length(doc.get("expertCommentary")),
        "key_lessons_count": _length(doc.get("keyLessons")),
        "reflection_questions_count": _length(doc.get("reflectionQuestions")),
    }


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

_VALIDATORS: dict[SectionKind, Callable[[dict[str, Any]], ValidationOutcome]] = {
    SectionKind.CONCEPTS: validate_concepts,
    SectionKind.MODELS: validate_models,
    SectionKind.DEMONSTRATIONS: validate_demonstrations,
}


class ContentValidator:
    """Dispatches a document to the validator for its section kind."""

    def validate(
        self, section_kind: SectionKind | str, document: Any,
    ) -> ValidationOutcome:
        """Validate one section document.

        Args:
            section_kind: Section kind (enum or its string value).
            document: Parsed reply.

        Returns:
            Verdict with every failed check and structural stats.
        """
        try:
            kind = SectionKind(section_kind)
        except ValueError:
            return ValidationOutcome(
                is_valid=False, errors=[UNKNOWN_CONTENT_TYPE],
            )
        if not isinstance(document, dict):
            return ValidationOutcome(is_valid=False, errors=[NOT_AN_OBJECT])
        return _VALIDATORS[kind](document)
