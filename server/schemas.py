"""Pydantic request/response schemas for the Roots API."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from testgen.models import Difficulty, QuestionFormat


# ---- Practice tests ----

class PracticeTestRequest(BaseModel):
    course_id: str = Field(..., min_length=1, max_length=255)
    course_name: str = Field(..., min_length=1, max_length=255)
    topics: List[str] = Field(..., min_length=1, max_length=50)
    difficulty: Difficulty = Difficulty.MEDIUM
    question_count: int = Field(default=10, ge=1, le=100)
    formats: List[QuestionFormat] = Field(default_factory=lambda: [QuestionFormat.MULTIPLE_CHOICE])


class PracticeQuestionOut(BaseModel):
    slot_id: str
    position: int
    topic: str
    difficulty: str
    format: str
    prompt: str
    options: Optional[List[str]] = None
    correct_answer: str
    explanation: str
    bloom_level: Optional[str] = None
    source: str


class PracticeTestResponse(BaseModel):
    ok: bool = True
    test_id: str
    course_id: str
    course_name: str
    difficulty: str
    blueprint: Optional[Dict[str, Any]] = None
    questions: List[PracticeQuestionOut]
    stats: Dict[str, Any]


class BackendStatusResponse(BaseModel):
    backend: str
    available: bool
    message: str
