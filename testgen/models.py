"""Data models for practice-test generation: request, slots, questions, results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from testgen.stats import GenerationStats
    from testgen.backend import BackendError


class Difficulty(str, Enum):
    """Difficulty tier requested for a whole test."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuestionFormat(str, Enum):
    """Question formats the generator can plan and validate."""
    MULTIPLE_CHOICE = "multiple_choice"
    SHORT_ANSWER = "short_answer"
    EXPLANATION = "explanation"


class BloomLevel(str, Enum):
    """Bloom's taxonomy level, declared in cognitive order."""
    REMEMBER = "remember"
    UNDERSTAND = "understand"
    APPLY = "apply"
    ANALYZE = "analyze"
    EVALUATE = "evaluate"
    CREATE = "create"

    @property
    def order(self) -> int:
        return list(BloomLevel).index(self) + 1


class TemplateType(str, Enum):
    """Question template; the planner cycles these in declaration order."""
    CONCEPT_ID = "concept_id"
    CAUSE_EFFECT = "cause_effect"
    SCENARIO_CHANGE = "scenario_change"
    DATA_INTERPRETATION = "data_interpretation"
    COMPARE_CONTRAST = "compare_contrast"


DEFAULT_BANNED_PHRASES: Tuple[str, ...] = (
    "all of the above",
    "none of the above",
    "both a and b",
    "neither a nor b",
    "always",
    "never",
    "all",
    "none",
)


@dataclass(frozen=True)
class TestRequest:
    """
    Immutable request for one practice test.

    topics keeps the caller's order; blank and repeated names are dropped.
    """
    __test__ = False  # not a pytest class

    course_id: str
    course_name: str
    topics: Tuple[str, ...]
    difficulty: Difficulty = Difficulty.MEDIUM
    question_count: int = 10
    formats: Tuple[QuestionFormat, ...] = (QuestionFormat.MULTIPLE_CHOICE,)

    def __post_init__(self):
        cleaned = []
        for t in self.topics or ():
            t = (t or "").strip()
            if t and t not in cleaned:
                cleaned.append(t)
        object.__setattr__(self, "topics", tuple(cleaned))
        object.__setattr__(self, "difficulty", Difficulty(self.difficulty))
        formats = tuple(QuestionFormat(f) for f in (self.formats or ()))
        object.__setattr__(self, "formats", formats or (QuestionFormat.MULTIPLE_CHOICE,))


@dataclass(frozen=True)
class Slot:
    """One planned position in a test. Never mutated after planning."""
    position: int
    format: QuestionFormat
    difficulty: Difficulty
    topic: str
    bloom_level: BloomLevel = BloomLevel.UNDERSTAND
    template_type: TemplateType = TemplateType.CONCEPT_ID
    max_prompt_words: int = 75
    banned_phrases: Tuple[str, ...] = DEFAULT_BANNED_PHRASES

    @property
    def slot_id(self) -> str:
        return f"S{self.position + 1}"

    @property
    def is_multiple_choice(self) -> bool:
        return self.format == QuestionFormat.MULTIPLE_CHOICE


@dataclass(frozen=True)
class Blueprint:
    """Deterministic slot plan for a request."""
    course_name: str
    difficulty: Difficulty
    slots: Tuple[Slot, ...]
    topic_quotas: Dict[str, int] = field(default_factory=dict)
    bloom_distribution: Dict[BloomLevel, int] = field(default_factory=dict)
    estimated_time_minutes: int = 0

    @property
    def question_count(self) -> int:
        return len(self.slots)

    def to_dict(self) -> Dict:
        return {
            "course_name": self.course_name,
            "difficulty": self.difficulty.value,
            "question_count": self.question_count,
            "topic_quotas": dict(self.topic_quotas),
            "bloom_distribution": {b.value: n for b, n in self.bloom_distribution.items()},
            "estimated_time_minutes": self.estimated_time_minutes,
            "slots": [
                {
                    "slot_id": s.slot_id,
                    "position": s.position,
                    "format": s.format.value,
                    "difficulty": s.difficulty.value,
                    "topic": s.topic,
                    "bloom_level": s.bloom_level.value,
                    "template_type": s.template_type.value,
                    "max_prompt_words": s.max_prompt_words,
                }
                for s in self.slots
            ],
        }


@dataclass
class RawAttempt:
    """One backend call for a slot. Exactly one of raw_text / backend_error is set."""
    position: int
    attempt_number: int
    is_repair: bool = False
    raw_text: Optional[str] = None
    backend_error: Optional["BackendError"] = None


@dataclass(frozen=True)
class PracticeQuestion:
    """A schema-valid practice question."""
    prompt: str
    correct_answer: str
    explanation: str
    format: QuestionFormat
    options: Optional[Tuple[str, ...]] = None
    bloom_level: Optional[BloomLevel] = None
    source: str = "backend"  # backend | fallback

    def to_dict(self) -> Dict:
        return {
            "prompt": self.prompt,
            "format": self.format.value,
            "options": list(self.options) if self.options is not None else None,
            "correct_answer": self.correct_answer,
            "explanation": self.explanation,
            "bloom_level": self.bloom_level.value if self.bloom_level else None,
            "source": self.source,
        }


@dataclass(frozen=True)
class ValidatedQuestion:
    """A PracticeQuestion bound to the slot it fills."""
    question: PracticeQuestion
    slot: Slot
    prompt_hash: str = ""

    @property
    def position(self) -> int:
        return self.slot.position

    def to_dict(self) -> Dict:
        d = self.question.to_dict()
        d["slot_id"] = self.slot.slot_id
        d["position"] = self.slot.position
        d["topic"] = self.slot.topic
        d["difficulty"] = self.slot.difficulty.value
        return d


class FailureReason(str, Enum):
    """Terminal, caller-visible failure tags."""
    BUDGET_EXHAUSTED = "budget_exhausted"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    PLANNER_FAILED = "planner_failed"
    CANCELLED = "cancelled"


@dataclass
class GenerationFailure:
    """Typed failure with partial stats for diagnostics."""
    reason: FailureReason
    message: str
    stats: "GenerationStats"
    slot_id: Optional[str] = None

    def __str__(self) -> str:
        desc = f"Generation failed ({self.reason.value}): {self.message}"
        if self.slot_id:
            desc += f" (slot: {self.slot_id})"
        return desc


@dataclass
class GenerationResult:
    """Either the full ordered question list or a single failure, plus stats."""
    stats: "GenerationStats"
    questions: List[ValidatedQuestion] = field(default_factory=list)
    failure: Optional[GenerationFailure] = None
    blueprint: Optional[Blueprint] = None

    @property
    def ok(self) -> bool:
        return self.failure is None
