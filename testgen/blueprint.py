"""
Deterministic blueprint planner. No I/O, no LLM, no randomness.

Topic and format assignment are round-robin in the order supplied by the
request. Bloom levels follow a fixed per-difficulty distribution apportioned
with largest-remainder rounding and laid out in ascending Bloom order.
"""

import re
from typing import Dict, List, Sequence, Tuple

from testgen.models import (
    DEFAULT_BANNED_PHRASES,
    BloomLevel,
    Blueprint,
    Difficulty,
    Slot,
    TemplateType,
    TestRequest,
)


class InvalidRequest(ValueError):
    """Planner input cannot produce any slots."""


BLOOM_DISTRIBUTION: Dict[Difficulty, Tuple[Tuple[BloomLevel, float], ...]] = {
    Difficulty.EASY: (
        (BloomLevel.REMEMBER, 0.4),
        (BloomLevel.UNDERSTAND, 0.4),
        (BloomLevel.APPLY, 0.2),
    ),
    Difficulty.MEDIUM: (
        (BloomLevel.REMEMBER, 0.2),
        (BloomLevel.UNDERSTAND, 0.3),
        (BloomLevel.APPLY, 0.3),
        (BloomLevel.ANALYZE, 0.2),
    ),
    Difficulty.HARD: (
        (BloomLevel.UNDERSTAND, 0.15),
        (BloomLevel.APPLY, 0.25),
        (BloomLevel.ANALYZE, 0.35),
        (BloomLevel.EVALUATE, 0.25),
    ),
}

MAX_PROMPT_WORDS = {
    Difficulty.EASY: 50,
    Difficulty.MEDIUM: 75,
    Difficulty.HARD: 100,
}

MINUTES_PER_QUESTION = {
    Difficulty.EASY: 2,
    Difficulty.MEDIUM: 3,
    Difficulty.HARD: 4,
}


def distribute_topics(count: int, topics: Sequence[str]) -> List[str]:
    """Round-robin topic per position: position i gets topics[i % len(topics)]."""
    return [topics[i % len(topics)] for i in range(count)]


def topic_quotas(assignment: Sequence[str]) -> Dict[str, int]:
    """Count of slots per topic, keyed in first-seen order."""
    quotas: Dict[str, int] = {}
    for topic in assignment:
        quotas[topic] = quotas.get(topic, 0) + 1
    return quotas


def bloom_distribution(count: int, difficulty: Difficulty) -> Dict[BloomLevel, int]:
    """
    Apportion count across the tier's Bloom shares.

    Floors first, then hands the remaining slots to the largest fractional
    remainders; ties go to the lower Bloom level.
    """
    shares = BLOOM_DISTRIBUTION[difficulty]
    raw = [(level, count * share) for level, share in shares]
    counts = {level: int(value) for level, value in raw}
    leftover = count - sum(counts.values())
    by_remainder = sorted(raw, key=lambda lv: (-(lv[1] - int(lv[1])), lv[0].order))
    for level, _ in by_remainder[:leftover]:
        counts[level] += 1
    return {level: n for level, n in counts.items() if n > 0}


def banned_phrases_for_topic(topic: str) -> Tuple[str, ...]:
    """Default banned phrases minus any that occur in the topic name itself."""
    lower = topic.lower()
    return tuple(
        p for p in DEFAULT_BANNED_PHRASES
        if not re.search(rf"\b{re.escape(p)}\b", lower)
    )


def _bloom_sequence(distribution: Dict[BloomLevel, int]) -> List[BloomLevel]:
    seq: List[BloomLevel] = []
    for level in sorted(distribution, key=lambda b: b.order):
        seq.extend([level] * distribution[level])
    return seq


def plan(request: TestRequest) -> Blueprint:
    """
    Build the slot plan for a request.

    Raises InvalidRequest when question_count <= 0 or no topics remain.
    """
    if request.question_count is None or request.question_count <= 0:
        raise InvalidRequest(f"question_count must be > 0, got {request.question_count}")
    if not request.topics:
        raise InvalidRequest("at least one topic is required")

    count = request.question_count
    difficulty = request.difficulty
    topics = distribute_topics(count, request.topics)
    blooms = _bloom_sequence(bloom_distribution(count, difficulty))
    templates = list(TemplateType)
    formats = request.formats

    slots = []
    for i in range(count):
        slots.append(Slot(
            position=i,
            format=formats[i % len(formats)],
            difficulty=difficulty,
            topic=topics[i],
            bloom_level=blooms[i],
            template_type=templates[i % len(templates)],
            max_prompt_words=MAX_PROMPT_WORDS[difficulty],
            banned_phrases=banned_phrases_for_topic(topics[i]),
        ))

    return Blueprint(
        course_name=request.course_name,
        difficulty=difficulty,
        slots=tuple(slots),
        topic_quotas=topic_quotas(topics),
        bloom_distribution=bloom_distribution(count, difficulty),
        estimated_time_minutes=count * MINUTES_PER_QUESTION[difficulty],
    )
