"""FastAPI application -- routes for the Roots practice-test service."""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from server.config import Settings
from server.dependencies import get_backend, get_generation_config, get_settings
from server.schemas import BackendStatusResponse, PracticeTestRequest, PracticeTestResponse
from server.services import practice_test_service
from server.services.practice_test_service import PracticeTestFailed
from server.__version__ import __version__
from testgen.backend import LLMBackend
from testgen.models import TestRequest
from testgen.orchestrator import GenerationConfig

logger = logging.getLogger("roots")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan: no heavy work. The backend is created lazily on first request."""
    ts = datetime.now(timezone.utc).isoformat()
    logger.info("[%s] Startup: begin", ts)
    yield
    ts_end = datetime.now(timezone.utc).isoformat()
    logger.info("[%s] Shutdown: complete", ts_end)


app = FastAPI(title="Roots", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health():
    """Minimal health check. No deps, no backend call. Always returns immediately."""
    return {"ok": True}


# ---- Practice tests ----

@app.post("/practice-tests", response_model=PracticeTestResponse)
async def practice_tests_generate(
    body: PracticeTestRequest,
    settings: Settings = Depends(get_settings),
    backend: LLMBackend = Depends(get_backend),
    config: GenerationConfig = Depends(get_generation_config),
):
    """Generate a practice test. Ephemeral (not persisted)."""
    if body.question_count > settings.max_question_count:
        raise HTTPException(
            status_code=400,
            detail=f"Too many questions requested (max {settings.max_question_count}).",
        )
    request = TestRequest(
        course_id=body.course_id,
        course_name=body.course_name,
        topics=tuple(body.topics),
        difficulty=body.difficulty,
        question_count=body.question_count,
        formats=tuple(body.formats),
    )
    try:
        return await practice_test_service.generate_practice_test(request, backend, config)
    except PracticeTestFailed as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@app.get("/practice-tests/backend", response_model=BackendStatusResponse)
async def practice_tests_backend(backend: LLMBackend = Depends(get_backend)):
    """Report whether the generative backend is reachable."""
    return await practice_test_service.backend_status(backend)
