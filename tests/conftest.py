"""Shared test fixtures."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from taskorch.orchestrator.service import TaskOrchestrator


class SteppingClock:
    """Deterministic clock advancing by a fixed step on every read."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value

    def advance(self, delta: timedelta) -> None:
        self.current = self.current + delta


@pytest.fixture()
def clock() -> SteppingClock:
    return SteppingClock(datetime(2026, 3, 1, 9, 0, tzinfo=UTC))


@pytest.fixture()
def orchestrator(clock: SteppingClock) -> TaskOrchestrator:
    return TaskOrchestrator(clock=clock)
