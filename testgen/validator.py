"""
Hard validation for backend output. Reject invalid; the slot generator repairs or falls back.

Every malformed input maps to a typed ValidationError. Nothing here raises for
input-shape reasons.
"""

import hashlib
import json
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

from testgen.models import PracticeQuestion, QuestionFormat, Slot

MCQ_OPTION_COUNT = 4
MIN_EXPLANATION_WORDS = 5


@dataclass
class ValidationError(Exception):
    """One rejected rule. kind is machine-readable; message is for repair prompts and logs."""
    kind: str
    message: str
    field: Optional[str] = None
    category: str = "schema"  # schema | content | duplicate

    def __str__(self) -> str:
        if self.field:
            return f"[{self.category}] {self.field}: {self.message}"
        return f"[{self.category}] {self.message}"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "field": self.field,
            "category": self.category,
        }


@dataclass
class ValidationResult:
    question: Optional[PracticeQuestion] = None
    errors: List[ValidationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.question is not None and not self.errors


def normalize_text(text: str) -> str:
    return " ".join((text or "").lower().split())


def hash_prompt(prompt: str) -> str:
    """SHA-256 of the normalised prompt; used for duplicate detection."""
    return hashlib.sha256(normalize_text(prompt).encode("utf-8")).hexdigest()


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text.strip()


def _parse(raw_text: Any) -> tuple[Optional[dict], Optional[ValidationError]]:
    if not isinstance(raw_text, str) or not raw_text.strip():
        return None, ValidationError(kind="invalid_json", message="Empty model output")
    try:
        obj = json.loads(_strip_fences(raw_text))
    except json.JSONDecodeError as e:
        return None, ValidationError(kind="invalid_json", message=f"Model output is not valid JSON ({e.msg})")
    except (ValueError, RecursionError) as e:
        # Oversized integer literals and pathological nesting.
        return None, ValidationError(kind="invalid_json", message=f"Model output is not valid JSON ({type(e).__name__})")
    if not isinstance(obj, dict):
        return None, ValidationError(kind="invalid_schema", message="Model output must be a JSON object")
    return obj, None


def _text_field(obj: dict, names: tuple, errors: List[ValidationError]) -> str:
    """First present alias wins. Missing/non-string/blank values record an error."""
    label = names[0]
    for name in names:
        if name in obj and obj[name] is not None:
            value = obj[name]
            if not isinstance(value, str):
                errors.append(ValidationError(kind="invalid_schema", field=label, message=f"{label} must be a string"))
                return ""
            if not value.strip():
                errors.append(ValidationError(kind="empty_field", field=label, message=f"{label} cannot be empty"))
                return ""
            return value.strip()
    errors.append(ValidationError(kind="missing_field", field=label, message=f"{label} is required"))
    return ""


def _word_count(text: str) -> int:
    return len(text.split())


def _banned_hits(text: str, banned) -> List[str]:
    lower = text.lower()
    return [p for p in banned if re.search(rf"\b{re.escape(p.lower())}\b", lower)]


def check_question(question: PracticeQuestion, slot: Slot, correct_index: Any = None) -> List[ValidationError]:
    """Structural and content rules for a built question against its slot."""
    errors: List[ValidationError] = []
    if not (question.prompt or "").strip():
        errors.append(ValidationError(kind="empty_field", field="prompt", message="Prompt cannot be empty"))
    if not (question.correct_answer or "").strip():
        errors.append(ValidationError(kind="empty_field", field="correctAnswer", message="Correct answer cannot be empty"))
    if not (question.explanation or "").strip():
        errors.append(ValidationError(kind="empty_field", field="rationale", message="Rationale cannot be empty"))
    if question.format != slot.format:
        errors.append(ValidationError(
            kind="invalid_schema", field="format",
            message=f"Format mismatch: expected '{slot.format.value}', got '{question.format.value}'",
        ))

    options = question.options
    if slot.format == QuestionFormat.MULTIPLE_CHOICE:
        if options is None:
            errors.append(ValidationError(kind="missing_field", field="choices", message="Multiple choice requires choices"))
        else:
            if len(options) != MCQ_OPTION_COUNT:
                errors.append(ValidationError(
                    kind="wrong_option_count", field="choices",
                    message=f"MCQ must have exactly {MCQ_OPTION_COUNT} choices, got {len(options)}",
                ))
            normalized = [normalize_text(o) for o in options]
            if any(not o for o in normalized):
                errors.append(ValidationError(kind="empty_field", field="choices", message="Choices cannot be empty"))
            if len(set(normalized)) != len(normalized):
                errors.append(ValidationError(
                    kind="duplicate_options", field="choices", category="content",
                    message="Choices must be unique (found duplicates after normalization)",
                ))
            answer = normalize_text(question.correct_answer)
            if answer and answer not in normalized:
                errors.append(ValidationError(
                    kind="answer_not_in_options", field="correctAnswer", category="content",
                    message="Correct answer must be one of the choices",
                ))
            if correct_index is not None:
                if isinstance(correct_index, bool) or not isinstance(correct_index, int) \
                        or not 0 <= correct_index < len(options):
                    errors.append(ValidationError(
                        kind="correct_index_mismatch", field="correctIndex",
                        message=f"correctIndex must be 0-{len(options) - 1}, got {correct_index!r}",
                    ))
                elif answer and normalized[correct_index] != answer:
                    errors.append(ValidationError(
                        kind="correct_index_mismatch", field="correctIndex", category="content",
                        message=f"Correct answer doesn't match choice at correctIndex {correct_index}",
                    ))
    elif options is not None:
        errors.append(ValidationError(
            kind="unexpected_options", field="choices",
            message=f"{slot.format.value} questions must not have choices",
        ))

    prompt_words = _word_count(question.prompt or "")
    if prompt_words > slot.max_prompt_words:
        errors.append(ValidationError(
            kind="prompt_too_long", field="prompt", category="content",
            message=f"Prompt exceeds {slot.max_prompt_words} words (got {prompt_words})",
        ))
    for phrase in _banned_hits(question.prompt or "", slot.banned_phrases):
        errors.append(ValidationError(
            kind="banned_phrase", field="prompt", category="content",
            message=f"Contains banned phrase: '{phrase}'",
        ))
    for i, opt in enumerate(options or ()):
        for phrase in _banned_hits(opt, slot.banned_phrases):
            errors.append(ValidationError(
                kind="banned_phrase", field=f"choices[{i}]", category="content",
                message=f"Contains banned phrase: '{phrase}'",
            ))
    explanation = question.explanation or ""
    if explanation.strip() and _word_count(explanation) < MIN_EXPLANATION_WORDS:
        errors.append(ValidationError(
            kind="explanation_too_short", field="rationale", category="content",
            message=f"Rationale too short (minimum {MIN_EXPLANATION_WORDS} words, got {_word_count(explanation)})",
        ))
    return errors


def validate(raw_text: Any, slot: Slot) -> ValidationResult:
    """
    Parse raw backend output into a PracticeQuestion for slot.

    Returns ValidationResult(question, []) on success, or (None, errors) with
    one or more typed errors.
    """
    obj, parse_error = _parse(raw_text)
    if parse_error:
        return ValidationResult(errors=[parse_error])

    if obj.get("error") == "CONTRACT_VIOLATION":
        reason = obj.get("reason")
        reason = reason if isinstance(reason, str) and reason.strip() else "Unknown reason"
        return ValidationResult(errors=[ValidationError(
            kind="contract_violation", message=f"CONTRACT_VIOLATION: {reason}",
        )])

    errors: List[ValidationError] = []
    prompt = _text_field(obj, ("prompt", "question"), errors)
    answer = _text_field(obj, ("correctAnswer", "correct_answer", "answer"), errors)
    explanation = _text_field(obj, ("rationale", "explanation"), errors)

    raw_options = obj.get("choices", obj.get("options"))
    options = None
    if raw_options is not None:
        if not isinstance(raw_options, list) or not all(isinstance(o, str) for o in raw_options):
            errors.append(ValidationError(kind="invalid_schema", field="choices", message="choices must be a list of strings"))
        else:
            options = tuple(o.strip() for o in raw_options)
    if errors:
        return ValidationResult(errors=errors)

    # Answer text is taken verbatim from the matching choice so the stored pair always agrees.
    if options is not None:
        for opt in options:
            if normalize_text(opt) == normalize_text(answer):
                answer = opt
                break

    question = PracticeQuestion(
        prompt=prompt,
        correct_answer=answer,
        explanation=explanation,
        format=slot.format,
        options=options,
        bloom_level=slot.bloom_level,
        source="backend",
    )
    errors = check_question(question, slot, correct_index=obj.get("correctIndex"))
    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(question=question)


def validate_question(question: PracticeQuestion, slot: Slot) -> List[ValidationError]:
    """Re-check an already-built question (fallback output). Empty list means valid."""
    return check_question(question, slot)
