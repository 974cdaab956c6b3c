"""Practice test generation: plan slots, fill them through a generative backend, repair or fall back."""

from testgen.backend import BackendError, FakeBackend, LLMBackend, OfflineBackend, OllamaBackend, get_backend
from testgen.blueprint import InvalidRequest, plan
from testgen.fallback import FallbackProvider, TemplateFallbackProvider
from testgen.models import (
    Difficulty,
    FailureReason,
    GenerationFailure,
    GenerationResult,
    PracticeQuestion,
    QuestionFormat,
    TestRequest,
    ValidatedQuestion,
)
from testgen.orchestrator import GenerationConfig, TestOrchestrator
from testgen.stats import GenerationStats
from testgen.validator import ValidationError, validate

__all__ = [
    "BackendError",
    "FakeBackend",
    "LLMBackend",
    "OfflineBackend",
    "OllamaBackend",
    "get_backend",
    "InvalidRequest",
    "plan",
    "FallbackProvider",
    "TemplateFallbackProvider",
    "Difficulty",
    "FailureReason",
    "GenerationFailure",
    "GenerationResult",
    "PracticeQuestion",
    "QuestionFormat",
    "TestRequest",
    "ValidatedQuestion",
    "GenerationConfig",
    "TestOrchestrator",
    "GenerationStats",
    "ValidationError",
    "validate",
]
