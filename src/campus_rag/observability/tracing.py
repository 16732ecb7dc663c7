"""Per-turn stage timing."""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from uuid import uuid4


@dataclass
class Span:
    stage: str
    start_ms: float
    end_ms: float = 0.0

    @property
    def duration_ms(self) -> float:
        return self.end_ms - self.start_ms


class TraceContext:
    """Collects one span per pipeline stage of a conversation turn."""

    def __init__(self, trace_id: str | None = None) -> None:
        self.trace_id = trace_id or uuid4().hex
        self.spans: list[Span] = []
        self._started = time.monotonic()

    def _now_ms(self) -> float:
        return (time.monotonic() - self._started) * 1000

    @contextmanager
    def span(self, stage: str):
        current = Span(stage=stage, start_ms=self._now_ms())
        try:
            yield current
        finally:
            current.end_ms = self._now_ms()
            self.spans.append(current)

    @property
    def elapsed_ms(self) -> float:
        return self._now_ms()

    def stage_durations(self) -> dict[str, float]:
        """Milliseconds spent per stage; repeated stages are summed."""
        durations: dict[str, float] = {}
        for s in self.spans:
            durations[s.stage] = round(durations.get(s.stage, 0.0) + s.duration_ms, 2)
        return durations
