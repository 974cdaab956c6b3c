"""Configuration for the Roots practice-test API server."""

import os
from dataclasses import dataclass
from typing import Optional

from testgen.orchestrator import (
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_ATTEMPTS_PER_SLOT,
    GenerationConfig,
)


@dataclass
class Settings:
    """
    Backend and generation knobs the server needs.

    Every field is overridable at construction for testing; environment
    variables are applied on top in __post_init__.
    """
    # Local LLM (Ollama). Disabled -> offline template backend.
    local_llm_enabled: bool = False
    local_llm_provider: str = "ollama"
    local_llm_model: str = "qwen2.5:7b-instruct"
    local_llm_base_url: str = "http://localhost:11434"
    local_llm_timeout_s: int = 20
    local_llm_temperature: float = 0.3
    local_llm_top_p: float = 0.95

    # Generation pipeline
    max_attempts_per_slot: int = DEFAULT_MAX_ATTEMPTS_PER_SLOT
    max_attempts_per_test: Optional[int] = None  # None -> 3 x question count
    concurrency: int = DEFAULT_CONCURRENCY
    enable_dev_logs: bool = False
    deadline_s: Optional[float] = None
    max_question_count: int = 50

    def __post_init__(self):
        # Local LLM env overrides
        if os.environ.get("LOCAL_LLM_ENABLED", "").lower() in ("1", "true", "yes"):
            self.local_llm_enabled = True
        if os.environ.get("LOCAL_LLM_PROVIDER"):
            self.local_llm_provider = os.environ["LOCAL_LLM_PROVIDER"]
        if os.environ.get("LOCAL_LLM_MODEL"):
            self.local_llm_model = os.environ["LOCAL_LLM_MODEL"]
        if os.environ.get("LOCAL_LLM_BASE_URL"):
            self.local_llm_base_url = os.environ["LOCAL_LLM_BASE_URL"]
        try:
            if v := os.environ.get("LOCAL_LLM_TIMEOUT_S"):
                self.local_llm_timeout_s = int(v)
        except ValueError:
            pass

        # Generation env overrides
        try:
            if v := os.environ.get("TESTGEN_MAX_ATTEMPTS_PER_SLOT"):
                self.max_attempts_per_slot = int(v)
        except ValueError:
            pass
        try:
            if v := os.environ.get("TESTGEN_MAX_ATTEMPTS_PER_TEST"):
                self.max_attempts_per_test = int(v)
        except ValueError:
            pass
        try:
            if v := os.environ.get("TESTGEN_CONCURRENCY"):
                self.concurrency = int(v)
        except ValueError:
            pass
        try:
            if v := os.environ.get("TESTGEN_DEADLINE_S"):
                self.deadline_s = float(v)
        except ValueError:
            pass
        if os.environ.get("TESTGEN_DEV_LOGS", "").lower() in ("1", "true", "yes"):
            self.enable_dev_logs = True


def generation_config(settings: Settings) -> GenerationConfig:
    """Explicit pipeline config from settings. The pipeline never reads Settings itself."""
    return GenerationConfig(
        max_attempts_per_slot=settings.max_attempts_per_slot,
        max_attempts_per_test=settings.max_attempts_per_test,
        enable_dev_logs=settings.enable_dev_logs,
        concurrency=settings.concurrency,
        deadline_s=settings.deadline_s,
    )
