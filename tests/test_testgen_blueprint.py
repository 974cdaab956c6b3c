"""Tests for the deterministic blueprint planner."""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from testgen.blueprint import (
    InvalidRequest,
    banned_phrases_for_topic,
    bloom_distribution,
    distribute_topics,
    plan,
)
from testgen.models import BloomLevel, Difficulty, QuestionFormat, TemplateType, TestRequest


def _request(**kw):
    base = dict(course_id="bio-101", course_name="Biology 101", topics=("Cells", "Genetics", "Evolution"))
    base.update(kw)
    return TestRequest(**base)


def test_plan_is_deterministic():
    req = _request(question_count=7)
    a, b = plan(req), plan(req)
    assert a.slots == b.slots
    assert [s.format for s in a.slots] == [s.format for s in b.slots]
    assert [s.topic for s in a.slots] == [s.topic for s in b.slots]


def test_slot_count_and_positions():
    bp = plan(_request(question_count=6))
    assert bp.question_count == 6
    assert [s.position for s in bp.slots] == list(range(6))
    assert [s.slot_id for s in bp.slots] == ["S1", "S2", "S3", "S4", "S5", "S6"]


def test_topics_assigned_round_robin():
    bp = plan(_request(question_count=7))
    assert [s.topic for s in bp.slots] == [
        "Cells", "Genetics", "Evolution", "Cells", "Genetics", "Evolution", "Cells",
    ]
    assert bp.topic_quotas == {"Cells": 3, "Genetics": 2, "Evolution": 2}


def test_distribute_topics_fewer_slots_than_topics():
    assert distribute_topics(2, ["a", "b", "c"]) == ["a", "b"]


def test_formats_assigned_round_robin():
    bp = plan(_request(
        question_count=5,
        formats=(QuestionFormat.MULTIPLE_CHOICE, QuestionFormat.SHORT_ANSWER),
    ))
    assert [s.format for s in bp.slots] == [
        QuestionFormat.MULTIPLE_CHOICE,
        QuestionFormat.SHORT_ANSWER,
        QuestionFormat.MULTIPLE_CHOICE,
        QuestionFormat.SHORT_ANSWER,
        QuestionFormat.MULTIPLE_CHOICE,
    ]


def test_difficulty_is_request_tier():
    bp = plan(_request(question_count=4, difficulty=Difficulty.HARD))
    assert {s.difficulty for s in bp.slots} == {Difficulty.HARD}
    assert {s.max_prompt_words for s in bp.slots} == {100}
    assert bp.estimated_time_minutes == 16


def test_bloom_distribution_exact_shares():
    assert bloom_distribution(10, Difficulty.MEDIUM) == {
        BloomLevel.REMEMBER: 2,
        BloomLevel.UNDERSTAND: 3,
        BloomLevel.APPLY: 3,
        BloomLevel.ANALYZE: 2,
    }
    assert bloom_distribution(5, Difficulty.EASY) == {
        BloomLevel.REMEMBER: 2,
        BloomLevel.UNDERSTAND: 2,
        BloomLevel.APPLY: 1,
    }


def test_bloom_distribution_largest_remainder():
    # 4 hard: 0.6 / 1.0 / 1.4 / 1.0 -> understand takes the leftover slot
    assert bloom_distribution(4, Difficulty.HARD) == {
        BloomLevel.UNDERSTAND: 1,
        BloomLevel.APPLY: 1,
        BloomLevel.ANALYZE: 1,
        BloomLevel.EVALUATE: 1,
    }
    # 3 medium: ties broken toward the lower Bloom level; zero counts dropped
    assert bloom_distribution(3, Difficulty.MEDIUM) == {
        BloomLevel.REMEMBER: 1,
        BloomLevel.UNDERSTAND: 1,
        BloomLevel.APPLY: 1,
    }


@pytest.mark.parametrize("count", [1, 2, 3, 7, 10, 13, 50])
@pytest.mark.parametrize("difficulty", list(Difficulty))
def test_bloom_distribution_sums_to_count(count, difficulty):
    assert sum(bloom_distribution(count, difficulty).values()) == count


def test_bloom_levels_ascending_across_slots():
    bp = plan(_request(question_count=10))
    orders = [s.bloom_level.order for s in bp.slots]
    assert orders == sorted(orders)


def test_templates_cycle_in_declaration_order():
    bp = plan(_request(question_count=7))
    templates = list(TemplateType)
    assert [s.template_type for s in bp.slots] == [templates[i % 5] for i in range(7)]


def test_zero_questions_rejected():
    with pytest.raises(InvalidRequest):
        plan(_request(question_count=0))


def test_negative_questions_rejected():
    with pytest.raises(InvalidRequest):
        plan(_request(question_count=-3))


def test_empty_topics_rejected():
    with pytest.raises(InvalidRequest):
        plan(_request(topics=("", "   ")))


def test_request_dedupes_topics_keeping_order():
    req = _request(topics=(" Genetics", "Cells", "Genetics ", ""))
    assert req.topics == ("Genetics", "Cells")


def test_topic_words_not_banned_for_their_own_slot():
    phrases = banned_phrases_for_topic("All-pairs shortest paths")
    assert "all" not in phrases
    assert "none" in phrases
    bp = plan(_request(topics=("All-pairs shortest paths",), question_count=1))
    assert "all" not in bp.slots[0].banned_phrases


def test_blueprint_to_dict():
    d = plan(_request(question_count=3)).to_dict()
    assert d["question_count"] == 3
    assert d["difficulty"] == "medium"
    assert [s["slot_id"] for s in d["slots"]] == ["S1", "S2", "S3"]
    assert sum(d["bloom_distribution"].values()) == 3
