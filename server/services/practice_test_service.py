"""Practice test generation for the API: request -> orchestrator -> serialized test."""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, Optional

from testgen.backend import LLMBackend
from testgen.fallback import FallbackProvider
from testgen.models import FailureReason, GenerationFailure, TestRequest
from testgen.orchestrator import GenerationConfig, TestOrchestrator

logger = logging.getLogger("roots.practice_tests")

# FailureReason -> HTTP status for the API layer
FAILURE_STATUS = {
    FailureReason.PLANNER_FAILED: 400,
    FailureReason.CANCELLED: 504,
    FailureReason.BACKEND_UNAVAILABLE: 503,
    FailureReason.BUDGET_EXHAUSTED: 503,
}


class PracticeTestFailed(Exception):
    """Generation returned a GenerationFailure. Carries status code and diagnostics."""

    def __init__(self, failure: GenerationFailure):
        super().__init__(str(failure))
        self.failure = failure
        self.status_code = FAILURE_STATUS.get(failure.reason, 500)
        self.detail: Dict[str, Any] = {
            "reason": failure.reason.value,
            "message": failure.message,
            "slot_id": failure.slot_id,
            "stats": failure.stats.to_dict(),
        }


def _test_id(request: TestRequest) -> str:
    key = "|".join([
        request.course_id,
        request.difficulty.value,
        str(request.question_count),
        ",".join(request.topics),
        ",".join(f.value for f in request.formats),
    ])
    return hashlib.sha256(key.encode()).hexdigest()[:16]


async def generate_practice_test(
    request: TestRequest,
    backend: LLMBackend,
    config: GenerationConfig,
    *,
    fallback: Optional[FallbackProvider] = None,
) -> Dict[str, Any]:
    """
    Generate one practice test.

    Returns { test_id, course_id, course_name, difficulty, blueprint, questions, stats }.
    Raises PracticeTestFailed when generation ends in a GenerationFailure.
    """
    orchestrator = TestOrchestrator(backend, fallback=fallback, config=config)
    result = await orchestrator.generate(request)
    if not result.ok:
        logger.warning("Practice test failed for %s: %s", request.course_id, result.failure)
        raise PracticeTestFailed(result.failure)

    return {
        "test_id": _test_id(request),
        "course_id": request.course_id,
        "course_name": request.course_name,
        "difficulty": request.difficulty.value,
        "blueprint": result.blueprint.to_dict() if result.blueprint else None,
        "questions": [q.to_dict() for q in result.questions],
        "stats": result.stats.to_dict(),
    }


async def backend_status(backend: LLMBackend) -> Dict[str, Any]:
    """Connectivity check for the configured backend."""
    ok, message = await backend.test_connection()
    return {"backend": getattr(backend, "name", "unknown"), "available": ok, "message": message}
