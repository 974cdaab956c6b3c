"""
Drives one slot to a terminal state: attempt -> validate -> repair-prompt retry -> fallback.

States:
    pending -> attempting -> validating -> success
                         +-> retrying -> attempting ...
                         +-> exhausted -> fallback_used -> success
                                      +-> failed   (no usable fallback)

Per-attempt errors never leave this module; they become retry/repair
decisions. Only cancellation propagates.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from testgen.backend import BackendError, LLMBackend
from testgen.fallback import FallbackProvider
from testgen.models import FailureReason, RawAttempt, Slot, ValidatedQuestion
from testgen.prompts import build_repair_prompt, build_slot_prompt
from testgen.stats import AttemptBudget, PromptRegistry, StatsAccumulator
from testgen.validator import ValidationError, hash_prompt, validate, validate_question

logger = logging.getLogger("testgen.slot")


class SlotState(str, Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    VALIDATING = "validating"
    RETRYING = "retrying"
    EXHAUSTED = "exhausted"
    FALLBACK_USED = "fallback_used"
    SUCCESS = "success"
    FAILED = "failed"


class SlotExhausted(Exception):
    """Internal signal: no further backend attempts for this slot. Always resolved here."""

    def __init__(self, message: str, *, test_budget: bool = False):
        super().__init__(message)
        self.test_budget = test_budget


@dataclass
class SlotOutcome:
    """Terminal result of one slot."""
    slot: Slot
    state: SlotState
    attempts: int
    question: Optional[ValidatedQuestion] = None
    used_fallback: bool = False
    failure_reason: Optional[FailureReason] = None
    message: str = ""
    history: List[SlotState] = field(default_factory=list)
    exhausted_by: Optional[str] = None  # "slot" | "test" once attempts ran out

    @property
    def ok(self) -> bool:
        return self.state == SlotState.SUCCESS and self.question is not None


class SlotGenerator:
    """
    One instance per slot. Owns its attempt history; touches no other slot's state.

    stats, budget and registry are shared with sibling slots and are
    lock-protected.
    """

    def __init__(
        self,
        slot: Slot,
        backend: LLMBackend,
        *,
        course_name: str,
        max_attempts: int,
        stats: StatsAccumulator,
        budget: Optional[AttemptBudget] = None,
        registry: Optional[PromptRegistry] = None,
        fallback: Optional[FallbackProvider] = None,
        enable_dev_logs: bool = False,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.slot = slot
        self.backend = backend
        self.course_name = course_name
        self.max_attempts = max_attempts
        self.stats = stats
        self.budget = budget if budget is not None else AttemptBudget(None)
        self.registry = registry if registry is not None else PromptRegistry()
        self.fallback = fallback
        self.enable_dev_logs = enable_dev_logs
        self.attempts: List[RawAttempt] = []
        self.state = SlotState.PENDING
        self.history: List[SlotState] = [SlotState.PENDING]
        self._last_errors: List[Union[ValidationError, BackendError]] = []
        self._exhausted_by: Optional[str] = None

    def _trace(self, msg: str, *args) -> None:
        level = logging.INFO if self.enable_dev_logs else logging.DEBUG
        logger.log(level, "Slot %s " + msg, self.slot.slot_id, *args)

    def _transition(self, state: SlotState) -> None:
        self.state = state
        self.history.append(state)

    async def run(self) -> SlotOutcome:
        """Run to success (possibly via fallback) or failure. CancelledError propagates."""
        self._trace("start: topic=%r format=%s bloom=%s", self.slot.topic, self.slot.format.value, self.slot.bloom_level.value)
        try:
            return await self._attempt_loop()
        except SlotExhausted as exc:
            self._trace("exhausted after %d attempt(s): %s", len(self.attempts), exc)
            return self._resolve_exhausted(exc)

    async def _attempt_loop(self) -> SlotOutcome:
        while True:
            if len(self.attempts) >= self.max_attempts:
                raise SlotExhausted(f"slot budget of {self.max_attempts} attempt(s) used")
            if not self.budget.try_acquire():
                raise SlotExhausted("test attempt budget used", test_budget=True)

            attempt = RawAttempt(
                position=self.slot.position,
                attempt_number=len(self.attempts) + 1,
                is_repair=bool(self.attempts),
            )
            self.attempts.append(attempt)
            self._transition(SlotState.ATTEMPTING)
            self.stats.record_attempt(self.slot.position)
            if attempt.is_repair:
                self.stats.record_repair()
                prompt = build_repair_prompt(self.slot, self.course_name, self._last_errors)
            else:
                prompt = build_slot_prompt(self.slot, self.course_name)
            self._trace("attempt %d/%d%s", attempt.attempt_number, self.max_attempts, " (repair)" if attempt.is_repair else "")

            try:
                attempt.raw_text = await self.backend.submit(prompt)
            except BackendError as e:
                self._record_backend_error(attempt, e)
                self._after_failure()
                continue
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception("Backend %s raised unexpectedly for slot %s", getattr(self.backend, "name", "?"), self.slot.slot_id)
                self._record_backend_error(
                    attempt,
                    BackendError(kind="provider_error", message="Backend call failed", details={"error": str(e)}),
                )
                self._after_failure()
                continue

            self._transition(SlotState.VALIDATING)
            result = validate(attempt.raw_text, self.slot)
            errors = result.errors
            if result.ok:
                prompt_hash = hash_prompt(result.question.prompt)
                if self.registry.claim(prompt_hash):
                    self._transition(SlotState.SUCCESS)
                    self.stats.record_success()
                    self._trace("validated on attempt %d", attempt.attempt_number)
                    return self._outcome(question=ValidatedQuestion(result.question, self.slot, prompt_hash))
                errors = [ValidationError(
                    kind="duplicate_prompt", field="prompt", category="duplicate",
                    message="Question prompt duplicates another question in this test",
                )]

            self.stats.record_validation_errors(errors)
            self._last_errors = list(errors)
            self._trace("validation failed: %s", "; ".join(e.kind for e in errors))
            self._after_failure()

    def _record_backend_error(self, attempt: RawAttempt, error: BackendError) -> None:
        attempt.backend_error = error
        self.stats.record_backend_error()
        self._last_errors = [error]
        self._trace("backend error: %s", error.kind)

    def _after_failure(self) -> None:
        if len(self.attempts) < self.max_attempts:
            self._transition(SlotState.RETRYING)

    def _resolve_exhausted(self, exc: SlotExhausted) -> SlotOutcome:
        self._transition(SlotState.EXHAUSTED)
        self._exhausted_by = "test" if exc.test_budget else "slot"
        if self.fallback is None:
            return self._fail(exc, "no fallback provider configured")
        try:
            question = self.fallback.fallback_question(self.slot)
        except Exception as e:
            logger.exception("Fallback provider failed for slot %s", self.slot.slot_id)
            return self._fail(exc, f"fallback provider failed: {e}")
        problems = validate_question(question, self.slot)
        if problems:
            logger.error("Fallback question for slot %s is invalid: %s", self.slot.slot_id, "; ".join(str(p) for p in problems))
            return self._fail(exc, "fallback question failed validation")

        self._transition(SlotState.FALLBACK_USED)
        self.stats.record_fallback()
        self._transition(SlotState.SUCCESS)
        self.stats.record_success()
        self._trace("using fallback question")
        return self._outcome(
            question=ValidatedQuestion(question, self.slot, hash_prompt(question.prompt)),
            used_fallback=True,
        )

    def _fail(self, exc: SlotExhausted, why: str) -> SlotOutcome:
        last = self._last_errors[-1] if self._last_errors else None
        if isinstance(last, BackendError) and last.kind == "unavailable":
            reason = FailureReason.BACKEND_UNAVAILABLE
        else:
            reason = FailureReason.BUDGET_EXHAUSTED
        self._transition(SlotState.FAILED)
        self.stats.record_failure()
        message = f"{exc}; {why}"
        logger.warning("Slot %s failed (%s): %s", self.slot.slot_id, reason.value, message)
        return self._outcome(failure_reason=reason, message=message)

    def _outcome(self, **kwargs) -> SlotOutcome:
        return SlotOutcome(
            slot=self.slot,
            state=self.state,
            attempts=len(self.attempts),
            history=list(self.history),
            exhausted_by=self._exhausted_by,
            **kwargs,
        )
