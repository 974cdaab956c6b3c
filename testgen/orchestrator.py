"""
Practice-test orchestration: plan -> bounded slot workers -> ordered result.

One SlotGenerator task per slot, at most `concurrency` in flight. The per-test
attempt budget, the prompt registry and the stats accumulator are shared by
every slot of one generate() call and by nothing else.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from testgen.backend import LLMBackend
from testgen.blueprint import InvalidRequest, plan
from testgen.fallback import FallbackProvider, TemplateFallbackProvider
from testgen.models import Blueprint, FailureReason, GenerationFailure, GenerationResult, TestRequest
from testgen.slot_generator import SlotGenerator, SlotOutcome
from testgen.stats import AttemptBudget, GenerationStats, PromptRegistry, StatsAccumulator

logger = logging.getLogger("testgen.orchestrator")

DEFAULT_MAX_ATTEMPTS_PER_SLOT = 5
DEFAULT_CONCURRENCY = 3
ATTEMPTS_PER_SLOT_IN_TEST = 3


@dataclass
class GenerationConfig:
    """Explicit knobs for one orchestrator. enable_dev_logs only changes log levels."""
    max_attempts_per_slot: int = DEFAULT_MAX_ATTEMPTS_PER_SLOT
    max_attempts_per_test: Optional[int] = None  # None -> 3 x slot count
    enable_dev_logs: bool = False
    concurrency: int = DEFAULT_CONCURRENCY
    deadline_s: Optional[float] = None

    def __post_init__(self):
        if self.max_attempts_per_slot < 1:
            raise ValueError("max_attempts_per_slot must be >= 1")
        if self.max_attempts_per_test is not None and self.max_attempts_per_test < 0:
            raise ValueError("max_attempts_per_test must be >= 0")
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.deadline_s is not None and self.deadline_s <= 0:
            raise ValueError("deadline_s must be > 0")

    def attempts_per_test(self, slot_count: int) -> int:
        if self.max_attempts_per_test is None:
            return ATTEMPTS_PER_SLOT_IN_TEST * slot_count
        return self.max_attempts_per_test


class TestOrchestrator:
    """
    Turns a TestRequest into an ordered list of validated questions.

    Never returns a partial list: either every slot succeeded (some possibly
    via fallback) or the result carries a single GenerationFailure.
    """

    __test__ = False  # not a pytest class

    def __init__(
        self,
        backend: LLMBackend,
        fallback: Optional[FallbackProvider] = None,
        config: Optional[GenerationConfig] = None,
    ):
        self.backend = backend
        self.fallback = fallback if fallback is not None else TemplateFallbackProvider()
        self.config = config or GenerationConfig()

    async def generate(
        self,
        request: TestRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> GenerationResult:
        try:
            blueprint = plan(request)
        except InvalidRequest as e:
            logger.warning("Planner rejected request for course %s: %s", request.course_id, e)
            stats = GenerationStats()
            return GenerationResult(
                stats=stats,
                failure=GenerationFailure(FailureReason.PLANNER_FAILED, str(e), stats),
            )

        accumulator = StatsAccumulator(total_slots=blueprint.question_count)
        if cancel_event is not None and cancel_event.is_set():
            return self._cancelled(blueprint, accumulator, "cancelled before generation started")

        cfg = self.config
        budget = AttemptBudget(cfg.attempts_per_test(blueprint.question_count))
        registry = PromptRegistry()
        semaphore = asyncio.Semaphore(cfg.concurrency)
        logger.info(
            "Generating %d question(s) for %s (difficulty=%s, concurrency=%d, test budget=%d)",
            blueprint.question_count, request.course_id, blueprint.difficulty.value,
            cfg.concurrency, budget.limit,
        )

        async def run_slot(slot) -> Optional[SlotOutcome]:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return None
                generator = SlotGenerator(
                    slot,
                    self.backend,
                    course_name=blueprint.course_name,
                    max_attempts=cfg.max_attempts_per_slot,
                    stats=accumulator,
                    budget=budget,
                    registry=registry,
                    fallback=self.fallback,
                    enable_dev_logs=cfg.enable_dev_logs,
                )
                return await generator.run()

        tasks = [asyncio.create_task(run_slot(s)) for s in blueprint.slots]
        join = asyncio.ensure_future(asyncio.gather(*tasks))
        watcher = asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None
        waiting = {join} if watcher is None else {join, watcher}
        try:
            done, _ = await asyncio.wait(waiting, timeout=cfg.deadline_s, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await self._abandon(tasks, join)
            raise
        finally:
            if watcher is not None:
                watcher.cancel()

        if cancel_event is not None and cancel_event.is_set():
            await self._abandon(tasks, join)
            return self._cancelled(blueprint, accumulator, "generation cancelled")
        if join not in done:
            await self._abandon(tasks, join)
            return self._cancelled(blueprint, accumulator, f"deadline of {cfg.deadline_s}s exceeded")

        outcomes: List[SlotOutcome] = sorted(join.result(), key=lambda o: o.slot.position)
        stats = accumulator.snapshot()
        logger.info("Practice test generation finished: %s", stats.to_log_dict())
        if budget.exhausted:
            starved = sum(1 for o in outcomes if o.exhausted_by == "test")
            logger.warning(
                "Test attempt budget spent (%d/%d); %d slot(s) stopped early",
                budget.used, budget.limit, starved,
            )

        failed = [o for o in outcomes if not o.ok]
        if failed:
            first = failed[0]
            return GenerationResult(
                stats=stats,
                blueprint=blueprint,
                failure=GenerationFailure(
                    first.failure_reason or FailureReason.BUDGET_EXHAUSTED,
                    f"{len(failed)} of {len(outcomes)} slot(s) could not be resolved: {first.message}",
                    stats,
                    slot_id=first.slot.slot_id,
                ),
            )
        return GenerationResult(
            stats=stats,
            blueprint=blueprint,
            questions=[o.question for o in outcomes],
        )

    def generate_sync(
        self,
        request: TestRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> GenerationResult:
        """Run generate() from sync context. Uses asyncio.run()."""
        return asyncio.run(self.generate(request, cancel_event))

    @staticmethod
    async def _abandon(tasks: List[asyncio.Task], join: asyncio.Future) -> None:
        """Cancel in-flight slot tasks and wait for them to unwind."""
        for t in tasks:
            t.cancel()
        await asyncio.gather(join, *tasks, return_exceptions=True)

    @staticmethod
    def _cancelled(blueprint: Blueprint, accumulator: StatsAccumulator, message: str) -> GenerationResult:
        stats = accumulator.snapshot()
        logger.warning("Practice test generation cancelled: %s %s", message, stats.to_log_dict())
        return GenerationResult(
            stats=stats,
            blueprint=blueprint,
            failure=GenerationFailure(FailureReason.CANCELLED, message, stats),
        )
