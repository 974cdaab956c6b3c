"""
Generation counters and the shared per-test state slot generators touch.

StatsAccumulator, AttemptBudget and PromptRegistry are the only objects shared
between concurrently running slots; each mutates under its own lock.
"""

from dataclasses import dataclass, field, fields, replace
from threading import Lock
from typing import Dict, List, Optional, Set

from testgen.validator import ValidationError


@dataclass(frozen=True)
class GenerationStats:
    """Snapshot of one generation run. to_log_dict returns plain ints only."""

    total_slots: int = 0
    successful_slots: int = 0
    failed_slots: int = 0
    total_attempts: int = 0
    repair_attempts: int = 0
    fallbacks_used: int = 0
    backend_errors: int = 0
    validation_errors: tuple = ()
    attempts_by_slot: Dict[int, int] = field(default_factory=dict)

    @property
    def average_attempts_per_slot(self) -> float:
        if not self.total_slots:
            return 0.0
        return self.total_attempts / self.total_slots

    def to_log_dict(self) -> Dict[str, int]:
        """Return flat dict of ints for logging. No question text."""
        out: Dict[str, int] = {}
        for f in fields(self):
            val = getattr(self, f.name)
            if isinstance(val, int):
                out[f.name] = val
        out["validation_errors"] = len(self.validation_errors)
        return out

    def to_dict(self) -> Dict:
        return {
            "total_slots": self.total_slots,
            "successful_slots": self.successful_slots,
            "failed_slots": self.failed_slots,
            "total_attempts": self.total_attempts,
            "average_attempts_per_slot": round(self.average_attempts_per_slot, 3),
            "repair_attempts": self.repair_attempts,
            "fallbacks_used": self.fallbacks_used,
            "backend_errors": self.backend_errors,
            "validation_errors": [e.to_dict() for e in self.validation_errors],
            "attempts_by_slot": {str(k): v for k, v in sorted(self.attempts_by_slot.items())},
        }


class StatsAccumulator:
    """Append-only counters for a run; snapshot() freezes them into GenerationStats."""

    def __init__(self, total_slots: int = 0):
        self._lock = Lock()
        self._stats = GenerationStats(total_slots=total_slots)
        self._errors: List[ValidationError] = []
        self._attempts: Dict[int, int] = {}

    def _bump(self, **deltas: int) -> None:
        with self._lock:
            self._stats = replace(
                self._stats,
                **{k: getattr(self._stats, k) + v for k, v in deltas.items()},
            )

    def record_attempt(self, position: int) -> None:
        with self._lock:
            self._attempts[position] = self._attempts.get(position, 0) + 1
        self._bump(total_attempts=1)

    def record_repair(self) -> None:
        self._bump(repair_attempts=1)

    def record_backend_error(self) -> None:
        self._bump(backend_errors=1)

    def record_validation_errors(self, errors: List[ValidationError]) -> None:
        with self._lock:
            self._errors.extend(errors)

    def record_fallback(self) -> None:
        self._bump(fallbacks_used=1)

    def record_success(self) -> None:
        self._bump(successful_slots=1)

    def record_failure(self) -> None:
        self._bump(failed_slots=1)

    def snapshot(self) -> GenerationStats:
        with self._lock:
            return replace(
                self._stats,
                validation_errors=tuple(self._errors),
                attempts_by_slot=dict(self._attempts),
            )


class AttemptBudget:
    """Per-test ceiling on backend calls across all slots."""

    def __init__(self, limit: Optional[int]):
        self.limit = limit
        self._used = 0
        self._lock = Lock()

    @property
    def used(self) -> int:
        with self._lock:
            return self._used

    @property
    def exhausted(self) -> bool:
        with self._lock:
            return self.limit is not None and self._used >= self.limit

    def try_acquire(self) -> bool:
        """Take one attempt from the budget. False once the ceiling is reached."""
        with self._lock:
            if self.limit is not None and self._used >= self.limit:
                return False
            self._used += 1
            return True


class PromptRegistry:
    """Prompt hashes accepted so far in one test; rejects repeats across slots."""

    def __init__(self):
        self._hashes: Set[str] = set()
        self._lock = Lock()

    def claim(self, prompt_hash: str) -> bool:
        with self._lock:
            if prompt_hash in self._hashes:
                return False
            self._hashes.add(prompt_hash)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._hashes)
