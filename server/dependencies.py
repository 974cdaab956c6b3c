"""FastAPI dependency factories."""

import sys
from functools import lru_cache
from pathlib import Path

_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import Depends

from server.config import Settings, generation_config
from testgen.backend import LLMBackend
from testgen.backend import get_backend as _get_backend
from testgen.orchestrator import GenerationConfig


@lru_cache()
def get_settings() -> Settings:
    """Singleton Settings -- override via app.dependency_overrides in tests."""
    return Settings()


def get_backend(settings: Settings = Depends(get_settings)) -> LLMBackend:
    """Process-wide backend for the configured provider."""
    return _get_backend(settings)


def get_generation_config(settings: Settings = Depends(get_settings)) -> GenerationConfig:
    return generation_config(settings)
