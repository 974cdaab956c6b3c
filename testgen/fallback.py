"""
Deterministic fallback questions for slots whose backend attempts are exhausted.

Content is template-built from the slot alone, so the same slot always yields
the same question and it passes the validator by construction.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Tuple

from testgen.models import BloomLevel, PracticeQuestion, QuestionFormat, Slot, TemplateType

# Longer topics are shortened so the prompt stays inside the slot's word limit.
MAX_TOPIC_WORDS = 12

# Phrasings per template; a slot picks one by how often its template has come round.
PROMPT_VARIANTS = 3

# (prompt phrasings, correct choice, three distractors); {topic} is substituted.
_MCQ_TEMPLATES: Dict[TemplateType, Tuple[Tuple[str, ...], str, Tuple[str, str, str]]] = {
    TemplateType.CONCEPT_ID: (
        (
            "Which statement best identifies the core idea of {topic}?",
            "What best describes the central concept behind {topic}?",
            "Which description captures the essence of {topic} most accurately?",
        ),
        "A foundational principle that underpins {topic}",
        (
            "An advanced technique used only in specialised applications",
            "A deprecated approach that is no longer recommended",
            "An alternative method with limited practical use",
        ),
    ),
    TemplateType.CAUSE_EFFECT: (
        (
            "What is the primary effect of applying the principles of {topic} correctly?",
            "What typically results from a sound application of {topic}?",
            "Which outcome follows most directly from using {topic} well?",
        ),
        "Better understanding and more reliable problem solving",
        (
            "Less flexibility when approaching new problems",
            "More complexity without a tangible benefit",
            "Results that only hold in artificial settings",
        ),
    ),
    TemplateType.SCENARIO_CHANGE: (
        (
            "How would outcomes change if the principles of {topic} were applied more carefully?",
            "If a practitioner applied {topic} more rigorously, what would most likely change?",
            "Suppose {topic} were applied with greater care. Which change is most likely?",
        ),
        "Results would align more closely with theoretical expectations",
        (
            "The system would become harder to predict and control",
            "There would be no noticeable change in outcomes",
            "The approach would contradict established practice",
        ),
    ),
    TemplateType.DATA_INTERPRETATION: (
        (
            "When analysing data related to {topic}, which interpretation is most defensible?",
            "Which reading of evidence about {topic} is best supported?",
            "A study reports results about {topic}. Which conclusion is most reasonable?",
        ),
        "The data shows patterns consistent with established theory about {topic}",
        (
            "The data contradicts current understanding of the field",
            "The data is too sparse to support a conclusion",
            "The data favours unrelated explanations over {topic}",
        ),
    ),
    TemplateType.COMPARE_CONTRAST: (
        (
            "How does {topic} relate to neighbouring concepts in the field?",
            "Which comparison between {topic} and related ideas is most accurate?",
            "What distinguishes {topic} from closely related concepts?",
        ),
        "It offers distinct insight while building on foundational ideas",
        (
            "It completely replaces every earlier approach",
            "It is largely redundant with existing methods",
            "It contradicts most established principles",
        ),
    ),
}

_OPEN_PROMPTS: Dict[TemplateType, Tuple[str, ...]] = {
    TemplateType.CONCEPT_ID: (
        "State the core idea of {topic}.",
        "Summarise the central concept behind {topic}.",
        "Explain in your own words what {topic} is about.",
    ),
    TemplateType.CAUSE_EFFECT: (
        "Describe the main effect of applying the principles of {topic}.",
        "Describe what typically results from a sound application of {topic}.",
        "Explain which outcome follows from using {topic} well.",
    ),
    TemplateType.SCENARIO_CHANGE: (
        "Describe how outcomes change when the principles of {topic} are applied more carefully.",
        "Describe what would change if {topic} were applied more rigorously.",
        "Explain the likely effect of applying {topic} with greater care.",
    ),
    TemplateType.DATA_INTERPRETATION: (
        "Describe how data related to {topic} is usually interpreted.",
        "Explain which reading of evidence about {topic} is best supported.",
        "Describe a reasonable conclusion from results about {topic}.",
    ),
    TemplateType.COMPARE_CONTRAST: (
        "Compare {topic} with a neighbouring concept in the field.",
        "Explain how {topic} differs from a closely related idea.",
        "Contrast {topic} with a related concept.",
    ),
}

_BLOOM_SENTENCES: Dict[BloomLevel, str] = {
    BloomLevel.REMEMBER: "This requires recalling key facts about {topic}.",
    BloomLevel.UNDERSTAND: "This tests your understanding of how {topic} works.",
    BloomLevel.APPLY: "This assesses your ability to apply concepts from {topic}.",
    BloomLevel.ANALYZE: "This evaluates your analytical thinking about {topic}.",
    BloomLevel.EVALUATE: "This measures your ability to judge claims about {topic} critically.",
    BloomLevel.CREATE: "This tests your capacity to combine ideas from {topic}.",
}


def _short_topic(topic: str) -> str:
    words = topic.split()
    if len(words) <= MAX_TOPIC_WORDS:
        return topic
    return " ".join(words[:MAX_TOPIC_WORDS])


def _variant(slot: Slot) -> int:
    return (slot.position // len(TemplateType)) % PROMPT_VARIANTS


def _place_correct(correct: str, distractors: Tuple[str, ...], index: int) -> List[str]:
    """Insert the correct choice at index; distractors keep their order."""
    options = list(distractors)
    options.insert(index, correct)
    return options


class FallbackProvider(ABC):
    """Synchronous, failure-free source of a schema-valid question for a slot."""

    @abstractmethod
    def fallback_question(self, slot: Slot) -> PracticeQuestion:
        ...


class TemplateFallbackProvider(FallbackProvider):
    """
    Template questions keyed by the slot's template type and format.

    The correct choice of a multiple-choice fallback sits at position % 4 so a
    degraded test does not put every answer in the same place. Slots sharing a
    template rotate through PROMPT_VARIANTS phrasings, so one topic yields up to
    15 distinct prompts.
    """

    def fallback_question(self, slot: Slot) -> PracticeQuestion:
        topic = _short_topic(slot.topic)
        explanation = (
            _BLOOM_SENTENCES[slot.bloom_level].format(topic=topic)
            + f" The expected answer reflects the core principles of {topic}; "
            "other answers misrepresent the concept or how it is used."
        )
        if slot.format == QuestionFormat.MULTIPLE_CHOICE:
            prompts, correct, distractors = _MCQ_TEMPLATES[slot.template_type]
            correct = correct.format(topic=topic)
            options = _place_correct(
                correct,
                tuple(d.format(topic=topic) for d in distractors),
                slot.position % 4,
            )
            return PracticeQuestion(
                prompt=prompts[_variant(slot)].format(topic=topic),
                correct_answer=correct,
                explanation=explanation,
                format=slot.format,
                options=tuple(options),
                bloom_level=slot.bloom_level,
                source="fallback",
            )

        if slot.format == QuestionFormat.EXPLANATION:
            answer = (
                f"{topic} rests on a small set of foundational principles. "
                f"Applying them carefully explains typical outcomes and how {topic} "
                "relates to neighbouring ideas in the field."
            )
        else:
            answer = f"{topic} rests on a small set of foundational principles that explain how it works."
        return PracticeQuestion(
            prompt=_OPEN_PROMPTS[slot.template_type][_variant(slot)].format(topic=topic),
            correct_answer=answer,
            explanation=explanation,
            format=slot.format,
            options=None,
            bloom_level=slot.bloom_level,
            source="fallback",
        )
