from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class Timer:
    # Monotonic: run durations must not jump with wall-clock adjustments.
    start: float = field(default_factory=time.monotonic)

    def ms(self) -> int:
        return int((time.monotonic() - self.start) * 1000)
