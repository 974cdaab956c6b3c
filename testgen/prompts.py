"""Prompts for slot generation. The repair prompt carries the previous attempt's errors."""

import re
from typing import Iterable, Optional, Union

from testgen.blueprint import banned_phrases_for_topic
from testgen.models import BloomLevel, Difficulty, QuestionFormat, Slot, TemplateType

CONTRACT_VERSION = "testgen.v1"

SYSTEM = """You are a question writer for student practice tests. Write ONE question for the slot below.
Stay on the given topic. Do not add external sources or URLs.
Output JSON only, no markdown, no code blocks.
If you cannot comply, output {"error": "CONTRACT_VIOLATION", "reason": "<why>"}."""

_FORMAT_RULES = {
    QuestionFormat.MULTIPLE_CHOICE: """- Exactly 4 answer choices, all unique and plausible
- Exactly 1 correct choice; correctAnswer must be the exact text of that choice
- correctIndex is the 0-based index of the correct choice""",
    QuestionFormat.SHORT_ANSWER: """- No answer choices: omit "choices" entirely
- correctAnswer is a short phrase or sentence""",
    QuestionFormat.EXPLANATION: """- No answer choices: omit "choices" entirely
- correctAnswer is a model explanation of 2-4 sentences""",
}


def _header(slot: Slot, course_name: str) -> str:
    # slot_from_prompt() parses these lines back; keep the labels stable.
    return f"""CONTRACT VERSION: {CONTRACT_VERSION}
Course: {course_name}
Slot ID: {slot.slot_id}
Position: {slot.position}
Topic: {slot.topic}
Format: {slot.format.value}
Difficulty: {slot.difficulty.value}
Bloom's Level: {slot.bloom_level.value}
Template Type: {slot.template_type.value}
Max Prompt Words: {slot.max_prompt_words}"""


def _schema(slot: Slot) -> str:
    choices = ""
    if slot.is_multiple_choice:
        choices = """
  "choices": ["Choice A", "Choice B", "Choice C", "Choice D"],
  "correctIndex": 0,"""
    return f"""Output schema (JSON only):
{{
  "contractVersion": "{CONTRACT_VERSION}",
  "prompt": "string (question text, at most {slot.max_prompt_words} words)",{choices}
  "correctAnswer": "string",
  "rationale": "string (why the answer is correct, at least 5 words)",
  "topic": "{slot.topic}",
  "bloomLevel": "{slot.bloom_level.value}",
  "difficulty": "{slot.difficulty.value}",
  "templateType": "{slot.template_type.value}"
}}"""


def build_slot_prompt(slot: Slot, course_name: str) -> str:
    """Base prompt for a slot's first attempt."""
    banned = "\n".join(f"  - {p}" for p in slot.banned_phrases)
    return f"""{SYSTEM}

{_header(slot, course_name)}

REQUIREMENTS:
- Prompt is clear, unambiguous, {slot.max_prompt_words} words maximum
{_FORMAT_RULES[slot.format]}
- Rationale justifies the correct answer
- Match the difficulty and Bloom level exactly
- No double negatives or trick wording

BANNED PHRASES (do not use as words anywhere in the prompt or choices):
{banned}

{_schema(slot)}"""


def build_repair_prompt(slot: Slot, course_name: str, errors: Iterable[Union[str, object]]) -> str:
    """
    Prompt for attempts after the first.

    errors are the previous attempt's ValidationErrors or BackendError; their
    text is listed so the model can correct what it got wrong.
    """
    lines = [f"- {e}" for e in errors] or ["- previous output was rejected"]
    repairs = "\n".join(lines)
    return f"""{build_slot_prompt(slot, course_name)}

PREVIOUS ERRORS TO FIX:
{repairs}

You MUST fix all errors above in this generation."""


_HEADER_RE = {
    "position": re.compile(r"^Position: (\d+)$", re.M),
    "topic": re.compile(r"^Topic: (.+)$", re.M),
    "format": re.compile(r"^Format: (\w+)$", re.M),
    "difficulty": re.compile(r"^Difficulty: (\w+)$", re.M),
    "bloom": re.compile(r"^Bloom's Level: (\w+)$", re.M),
    "template": re.compile(r"^Template Type: (\w+)$", re.M),
    "max_words": re.compile(r"^Max Prompt Words: (\d+)$", re.M),
}


def slot_from_prompt(prompt: str) -> Optional[Slot]:
    """Recover the slot from a prompt header. Returns None if any field is missing or unknown."""
    found = {}
    for key, rx in _HEADER_RE.items():
        m = rx.search(prompt or "")
        if not m:
            return None
        found[key] = m.group(1).strip()
    try:
        return Slot(
            position=int(found["position"]),
            format=QuestionFormat(found["format"]),
            difficulty=Difficulty(found["difficulty"]),
            topic=found["topic"],
            bloom_level=BloomLevel(found["bloom"]),
            template_type=TemplateType(found["template"]),
            max_prompt_words=int(found["max_words"]),
            banned_phrases=banned_phrases_for_topic(found["topic"]),
        )
    except ValueError:
        return None
