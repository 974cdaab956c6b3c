"""Tests for backend output validation."""

import json
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from testgen.models import Difficulty, PracticeQuestion, QuestionFormat, Slot
from testgen.validator import hash_prompt, validate, validate_question

MCQ_SLOT = Slot(position=0, format=QuestionFormat.MULTIPLE_CHOICE, difficulty=Difficulty.MEDIUM, topic="Photosynthesis")
SHORT_SLOT = Slot(position=1, format=QuestionFormat.SHORT_ANSWER, difficulty=Difficulty.MEDIUM, topic="Photosynthesis")


def _mcq(**overrides):
    obj = {
        "prompt": "Which molecule captures light energy during photosynthesis?",
        "choices": ["Chlorophyll", "Glucose", "Oxygen", "Carbon dioxide"],
        "correctAnswer": "Chlorophyll",
        "correctIndex": 0,
        "rationale": "Chlorophyll absorbs light energy in the thylakoid membranes.",
    }
    obj.update(overrides)
    return obj


def _kinds(result):
    return [e.kind for e in result.errors]


def test_valid_mcq_passes():
    result = validate(json.dumps(_mcq()), MCQ_SLOT)
    assert result.ok
    q = result.question
    assert q.options == ("Chlorophyll", "Glucose", "Oxygen", "Carbon dioxide")
    assert q.correct_answer == "Chlorophyll"
    assert q.format == QuestionFormat.MULTIPLE_CHOICE
    assert q.source == "backend"


def test_answer_matched_case_insensitively_takes_choice_text():
    result = validate(json.dumps(_mcq(correctAnswer="  chlorophyll ")), MCQ_SLOT)
    assert result.ok
    assert result.question.correct_answer == "Chlorophyll"


def test_aliases_accepted():
    obj = {
        "question": "Which molecule captures light energy during photosynthesis?",
        "options": ["Chlorophyll", "Glucose", "Oxygen", "Carbon dioxide"],
        "answer": "Chlorophyll",
        "explanation": "Chlorophyll absorbs light energy in the thylakoid membranes.",
    }
    assert validate(json.dumps(obj), MCQ_SLOT).ok


def test_code_fences_stripped():
    raw = "```json\n" + json.dumps(_mcq()) + "\n```"
    assert validate(raw, MCQ_SLOT).ok


@pytest.mark.parametrize("raw", [None, "", "   ", 42, "not json", "{\"prompt\": "])
def test_unparseable_output_is_invalid_json(raw):
    result = validate(raw, MCQ_SLOT)
    assert not result.ok
    assert _kinds(result) == ["invalid_json"]


@pytest.mark.parametrize("raw", ["[]", "null", "\"text\"", "3"])
def test_non_object_is_invalid_schema(raw):
    assert _kinds(validate(raw, MCQ_SLOT)) == ["invalid_schema"]


def test_contract_violation():
    raw = json.dumps({"error": "CONTRACT_VIOLATION", "reason": "topic too vague"})
    result = validate(raw, MCQ_SLOT)
    assert _kinds(result) == ["contract_violation"]
    assert "topic too vague" in result.errors[0].message


def test_missing_prompt():
    obj = _mcq()
    del obj["prompt"]
    assert "missing_field" in _kinds(validate(json.dumps(obj), MCQ_SLOT))


def test_empty_answer():
    assert "empty_field" in _kinds(validate(json.dumps(_mcq(correctAnswer="  ")), MCQ_SLOT))


def test_non_string_prompt():
    assert "invalid_schema" in _kinds(validate(json.dumps(_mcq(prompt=12)), MCQ_SLOT))


def test_wrong_option_count():
    obj = _mcq(choices=["Chlorophyll", "Glucose", "Oxygen"])
    del obj["correctIndex"]
    assert "wrong_option_count" in _kinds(validate(json.dumps(obj), MCQ_SLOT))


def test_mcq_without_choices():
    obj = _mcq()
    del obj["choices"]
    del obj["correctIndex"]
    assert "missing_field" in _kinds(validate(json.dumps(obj), MCQ_SLOT))


def test_answer_not_in_options():
    obj = _mcq(correctAnswer="Starch")
    del obj["correctIndex"]
    assert "answer_not_in_options" in _kinds(validate(json.dumps(obj), MCQ_SLOT))


def test_duplicate_options():
    obj = _mcq(choices=["Chlorophyll", "Glucose", "glucose ", "Carbon dioxide"])
    assert "duplicate_options" in _kinds(validate(json.dumps(obj), MCQ_SLOT))


def test_choices_must_be_strings():
    assert "invalid_schema" in _kinds(validate(json.dumps(_mcq(choices=[1, 2, 3, 4])), MCQ_SLOT))


def test_correct_index_mismatch():
    assert "correct_index_mismatch" in _kinds(validate(json.dumps(_mcq(correctIndex=2)), MCQ_SLOT))
    assert "correct_index_mismatch" in _kinds(validate(json.dumps(_mcq(correctIndex=7)), MCQ_SLOT))


def test_banned_phrase_in_choices():
    obj = _mcq(choices=["Chlorophyll", "Glucose", "Oxygen", "All of the above"])
    result = validate(json.dumps(obj), MCQ_SLOT)
    assert "banned_phrase" in _kinds(result)
    assert any(e.field == "choices[3]" for e in result.errors)


def test_banned_phrase_is_word_bounded():
    # "allele" and "nonetheless" contain banned words only as substrings
    obj = _mcq(prompt="Which allele is dominant, nonetheless, in this cross?")
    assert validate(json.dumps(obj), MCQ_SLOT).ok


def test_prompt_too_long():
    long_prompt = " ".join(["word"] * 80) + "?"
    assert "prompt_too_long" in _kinds(validate(json.dumps(_mcq(prompt=long_prompt)), MCQ_SLOT))


def test_explanation_too_short():
    assert "explanation_too_short" in _kinds(validate(json.dumps(_mcq(rationale="It absorbs light.")), MCQ_SLOT))


def test_short_answer_valid_and_rejects_choices():
    obj = {
        "prompt": "Name the pigment that absorbs light in plants.",
        "correctAnswer": "Chlorophyll",
        "rationale": "Chlorophyll is the primary light-absorbing pigment in chloroplasts.",
    }
    assert validate(json.dumps(obj), SHORT_SLOT).ok
    obj["choices"] = ["Chlorophyll", "Glucose", "Oxygen", "Carbon dioxide"]
    assert "unexpected_options" in _kinds(validate(json.dumps(obj), SHORT_SLOT))


def test_errors_carry_machine_readable_kind_and_text():
    result = validate(json.dumps(_mcq(correctAnswer="Starch", correctIndex=None)), MCQ_SLOT)
    err = result.errors[0]
    assert err.kind == "answer_not_in_options"
    assert err.category == "content"
    assert "correctAnswer" in str(err)
    assert err.to_dict()["kind"] == "answer_not_in_options"


def test_validate_question_on_built_question():
    q = PracticeQuestion(
        prompt="Which molecule captures light energy during photosynthesis?",
        correct_answer="Chlorophyll",
        explanation="Chlorophyll absorbs light energy in the thylakoid membranes.",
        format=QuestionFormat.MULTIPLE_CHOICE,
        options=("Chlorophyll", "Glucose", "Oxygen", "Carbon dioxide"),
    )
    assert validate_question(q, MCQ_SLOT) == []
    bad = PracticeQuestion(prompt="", correct_answer="x", explanation="", format=QuestionFormat.SHORT_ANSWER)
    kinds = [e.kind for e in validate_question(bad, MCQ_SLOT)]
    assert "empty_field" in kinds
    assert "invalid_schema" in kinds


def test_hash_prompt_normalizes_case_and_whitespace():
    assert hash_prompt("What is  ATP?") == hash_prompt("  what is atp? ")
    assert hash_prompt("What is ATP?") != hash_prompt("What is ADP?")


def test_huge_integer_literal_is_rejected_not_raised():
    result = validate('{"prompt": ' + "9" * 5000 + "}", MCQ_SLOT)
    assert not result.ok
    assert _kinds(result)[0] in ("invalid_json", "invalid_schema")


def test_deeply_nested_json_is_rejected_not_raised():
    result = validate("[" * 100000 + "]" * 100000, MCQ_SLOT)
    assert not result.ok
    assert _kinds(result) == ["invalid_json"]
