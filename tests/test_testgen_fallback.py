"""Tests for deterministic fallback questions."""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from testgen.blueprint import plan
from testgen.fallback import TemplateFallbackProvider
from testgen.models import BloomLevel, Difficulty, QuestionFormat, Slot, TemplateType, TestRequest
from testgen.validator import validate_question


@pytest.mark.parametrize("template", list(TemplateType))
@pytest.mark.parametrize("fmt", list(QuestionFormat))
@pytest.mark.parametrize("difficulty", list(Difficulty))
@pytest.mark.parametrize("position", [3, 8, 13])
def test_fallback_passes_validation(template, fmt, difficulty, position):
    slot = Slot(
        position=position,
        format=fmt,
        difficulty=difficulty,
        topic="Enzyme kinetics",
        template_type=template,
        max_prompt_words={Difficulty.EASY: 50, Difficulty.MEDIUM: 75, Difficulty.HARD: 100}[difficulty],
    )
    q = TemplateFallbackProvider().fallback_question(slot)
    assert validate_question(q, slot) == []
    assert q.source == "fallback"
    assert q.format == fmt


@pytest.mark.parametrize("bloom", list(BloomLevel))
def test_fallback_covers_every_bloom_level(bloom):
    slot = Slot(position=0, format=QuestionFormat.SHORT_ANSWER, difficulty=Difficulty.MEDIUM,
                topic="Supply and demand", bloom_level=bloom)
    q = TemplateFallbackProvider().fallback_question(slot)
    assert q.bloom_level == bloom
    assert validate_question(q, slot) == []


def test_mcq_correct_choice_rotates_with_position():
    provider = TemplateFallbackProvider()
    for position in range(8):
        slot = Slot(position=position, format=QuestionFormat.MULTIPLE_CHOICE,
                    difficulty=Difficulty.MEDIUM, topic="Recursion")
        q = provider.fallback_question(slot)
        assert q.options.index(q.correct_answer) == position % 4


def test_fallback_is_deterministic():
    slot = Slot(position=1, format=QuestionFormat.MULTIPLE_CHOICE, difficulty=Difficulty.HARD, topic="Entropy")
    provider = TemplateFallbackProvider()
    assert provider.fallback_question(slot) == provider.fallback_question(slot)


def test_fallback_valid_for_planned_slots_with_awkward_topics():
    req = TestRequest(
        course_id="cs",
        course_name="Algorithms",
        topics=("All-pairs shortest paths", "None-type handling", " ".join(["very"] * 40) + " long topic"),
        difficulty=Difficulty.EASY,
        question_count=6,
        formats=(QuestionFormat.MULTIPLE_CHOICE, QuestionFormat.EXPLANATION),
    )
    provider = TemplateFallbackProvider()
    for slot in plan(req).slots:
        assert validate_question(provider.fallback_question(slot), slot) == []


def test_single_topic_prompts_stay_distinct():
    req = TestRequest(course_id="phys", course_name="Physics", topics=("Optics",), question_count=15)
    provider = TemplateFallbackProvider()
    prompts = [provider.fallback_question(slot).prompt for slot in plan(req).slots]
    assert len(set(prompts)) == 15
