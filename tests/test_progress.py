"""Tests for progress tracking and cost reporting."""

from __future__ import annotations

import pytest

from app.llm_clients import LLMUsage
from app.theory_generation.models import UnitOutcome
from app.theory_generation.progress import (
    CostAccumulator,
    ProgressTracker,
    report_progress,
)
from tests.fakes import FakeClock


def test_snapshot_before_any_unit():
    tracker = ProgressTracker(5, clock=FakeClock())
    snap = tracker.snapshot()
    assert snap.completed == 0
    assert snap.percentage == 0.0
    assert snap.eta_ms is None


def test_eta_is_linear_extrapolation():
    clock = FakeClock()
    tracker = ProgressTracker(4, clock=clock)

    clock.advance(10)
    first = tracker.on_unit_result(UnitOutcome.COMPLETED)
    clock.advance(10)
    second = tracker.on_unit_result(UnitOutcome.SKIPPED)

    assert (first.completed, first.percentage) == (1, 25.0)
    assert first.elapsed_ms == 10_000
    assert first.eta_ms == 30_000
    assert (second.completed, second.percentage) == (2, 50.0)
    assert second.eta_ms == 20_000


def test_every_outcome_counts_as_processed():
    clock = FakeClock()
    tracker = ProgressTracker(3, clock=clock)
    for outcome in UnitOutcome:
        clock.advance(2)
        snap = tracker.on_unit_result(outcome)

    assert snap.completed == 3
    assert snap.percentage == 100.0
    assert snap.eta_ms == 0
    assert tracker.counts == {o: 1 for o in UnitOutcome}
    assert tracker.complete() == {"total_ms": 6000, "average_ms": 2000}


def test_empty_run():
    tracker = ProgressTracker(0, clock=FakeClock())
    assert tracker.snapshot().percentage == 100.0
    assert tracker.complete() == {"total_ms": 0, "average_ms": 0}


def test_report_progress_marker(capsys):
    report_progress(3, 25)
    assert capsys.readouterr().out == "[PROGRESS] 3/25\n"


def test_cost_accumulator_report(capsys):
    acc = CostAccumulator()
    acc.add(LLMUsage(input_tokens=1_000_000, output_tokens=1_000_000, model="deepseek-chat"))
    assert acc.total_cost_usd == pytest.approx(1.37)
    acc.report()
    assert capsys.readouterr().out == "[COST] $1.3700\n"
