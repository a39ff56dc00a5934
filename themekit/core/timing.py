"""Wall-clock timing of build stages."""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator


@dataclass(frozen=True)
class StageTiming:
    name: str
    seconds: float
    ok: bool = True


class StageTimer:
    """Collects per-stage durations for one task run.

    Usage:
        timer = StageTimer()
        with timer.stage("styles"):
            await orchestrator.styles()
        timer.summary()  # "styles 2.1s | total 2.1s"
    """

    def __init__(self) -> None:
        self.stages: list[StageTiming] = []

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        start = time.monotonic()
        ok = False
        try:
            yield
            ok = True
        finally:
            self.stages.append(StageTiming(name, round(time.monotonic() - start, 3), ok))

    @property
    def total(self) -> float:
        return sum(s.seconds for s in self.stages)

    def as_dict(self) -> dict[str, float]:
        """Stage name -> seconds (the last run of a stage wins)."""
        return {s.name: s.seconds for s in self.stages}

    def summary(self) -> str:
        if not self.stages:
            return "(no stages run)"
        parts = [
            f"{s.name} {format_duration(s.seconds)}" + ("" if s.ok else " (failed)")
            for s in self.stages
        ]
        parts.append(f"total {format_duration(self.total)}")
        return " | ".join(parts)


def format_duration(seconds: float) -> str:
    """0.042 -> "42ms", 2.14 -> "2.1s", 65.3 -> "1m 5.3s"."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, remaining = divmod(seconds, 60)
    return f"{int(minutes)}m {remaining:.1f}s"
