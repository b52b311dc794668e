"""Progress, ETA and cost reporting for a theory generation run.

Prints ``[PROGRESS] completed/total`` and ``[COST] $X.XXXX`` markers
to stdout for external runners, and keeps an in-process tracker that
extrapolates the remaining time from the units processed so far.
"""

from __future__ import annotations

import sys
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from app.theory_generation.models import UnitOutcome

if TYPE_CHECKING:
    from app.llm_clients import LLMUsage

# Stdout prefixes parsed by external runners
PROGRESS_PREFIX = "[PROGRESS]"
COST_PREFIX = "[COST]"

# Lock for atomic stdout writes
_progress_lock = threading.Lock()

# ---------------------------------------------------------------------------
# Per-1M-token pricing (input / output), update when models change
# ---------------------------------------------------------------------------
_MODEL_PRICING: dict[str, tuple[float, float]] = {
    "deepseek-chat": (0.27, 1.10),
    "deepseek-reasoner": (0.55, 2.19),
}

# Default price per 1M tokens when model is unknown
_DEFAULT_PRICING = (0.27, 1.10)


def report_progress(completed: int, total: int) -> None:
    """Print a progress marker for the pipeline runner.

    Args:
        completed: Number of units finished so far.
        total: Total number of units to process.
    """
    with _progress_lock:
        print(
            f"{PROGRESS_PREFIX} {completed}/{total}",
            flush=True,
            file=sys.stdout,
        )


def report_cost(cost_usd: float) -> None:
    """Print a cost marker for the pipeline runner."""
    with _progress_lock:
        print(
            f"{COST_PREFIX} ${cost_usd:.4f}",
            flush=True,
            file=sys.stdout,
        )


class CostAccumulator:
    """Thread-safe accumulator for LLM token usage across a run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._input_tokens = 0
        self._output_tokens = 0
        self._calls = 0
        self._model: str = ""

    def add(self, usage: LLMUsage) -> None:
        """Accumulate tokens from a single LLM call."""
        with self._lock:
            self._input_tokens += usage.input_tokens
            self._output_tokens += usage.output_tokens
            self._calls += 1
            if usage.model and not self._model:
                self._model = usage.model

    @property
    def calls(self) -> int:
        return self._calls

    @property
    def total_tokens(self) -> int:
        return self._input_tokens + self._output_tokens

    @property
    def total_cost_usd(self) -> float:
        """Compute estimated cost from accumulated tokens."""
        pricing = _MODEL_PRICING.get(self._model, _DEFAULT_PRICING)
        input_cost = (self._input_tokens / 1_000_000) * pricing[0]
        output_cost = (self._output_tokens / 1_000_000) * pricing[1]
        return input_cost + output_cost

    def report(self) -> None:
        """Print ``[COST] $X.XXXX`` to stdout for the runner."""
        report_cost(self.total_cost_usd)


# ---------------------------------------------------------------------------
# Unit progress tracking
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time view of run progress. Informational only."""

    completed: int
    total: int
    percentage: float
    elapsed_ms: int
    eta_ms: int | None

    def as_dict(self) -> dict[str, object]:
        return {
            "completed": self.completed,
            "total": self.total,
            "percentage": self.percentage,
            "elapsed_ms": self.elapsed_ms,
            "eta_ms": self.eta_ms,
        }


class ProgressTracker:
    """Counts processed units and extrapolates the remaining time.

    Every outcome (completed, skipped, errored) counts as processed.
    ETA is linear: ``elapsed * (total / processed - 1)``.
    """

    def __init__(
        self,
        total: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.total = total
        self._clock = clock
        self._started = clock()
        self._processed = 0
        self.counts: dict[UnitOutcome, int] = {o: 0 for o in UnitOutcome}

    @property
    def processed(self) -> int:
        return self._processed

    def on_unit_result(self, outcome: UnitOutcome) -> ProgressSnapshot:
        """Record one unit outcome and return the refreshed snapshot."""
        self._processed += 1
        self.counts[outcome] += 1
        return self.snapshot()

    def elapsed_ms(self) -> int:
        return int(round((self._clock() - self._started) * 1000))

    def snapshot(self) -> ProgressSnapshot:
        elapsed = self.elapsed_ms()
        if self.total > 0:
            percentage = round(self._processed / self.total * 100, 1)
        else:
            percentage = 100.0
        eta: int | None = None
        if self._processed > 0:
            remaining = max(self.total / self._processed - 1, 0.0)
            eta = int(round(elapsed * remaining))
        return ProgressSnapshot(
            completed=self._processed,
            total=self.total,
            percentage=percentage,
            elapsed_ms=elapsed,
            eta_ms=eta,
        )

    def complete(self) -> dict[str, int]:
        """Total run time and average time per processed unit."""
        elapsed = self.elapsed_ms()
        average = elapsed // self._processed if self._processed else 0
        return {"total_ms": elapsed, "average_ms": average}
