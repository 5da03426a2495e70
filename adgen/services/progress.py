from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Stage:
    """A pipeline stage owning the `[start, end]` slice of the progress bar."""

    name: str
    start: int
    end: int

    def percentage(self, done: int = 0, total: int = 1) -> int:
        """Linear interpolation across the stage; clamps `done` into `[0, total]`."""
        if total <= 0:
            return self.end
        done = min(max(done, 0), total)
        return int(self.start + (self.end - self.start) * done / total)


COPY = Stage("copy", 0, 30)
BACKGROUNDS = Stage("backgrounds", 30, 40)
FAN_OUT = Stage("fan_out", 40, 70)
FINISH = Stage("finish", 70, 100)

STAGES = (COPY, BACKGROUNDS, FAN_OUT, FINISH)

# Background-only regeneration runs use their own scale.
REGENERATE = Stage("regenerate_backgrounds", 0, 80)
REATTACH = Stage("reattach_backgrounds", 80, 100)


class ProgressTracker:
    """Hands out percentages for one run, never going backwards."""

    def __init__(self) -> None:
        self.last = 0

    def at(self, stage: Stage, done: int = 0, total: int = 1) -> int:
        self.last = max(self.last, stage.percentage(done, total))
        return self.last
