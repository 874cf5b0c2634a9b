from __future__ import annotations

import time
from typing import Callable, Iterable, Iterator, TypeVar

T = TypeVar("T")


class FixedDelayPacer:
    """Yields items with a fixed pause between consecutive items (none before the first)."""

    def __init__(self, delay_s: float, sleep: Callable[[float], None] = time.sleep):
        self.delay_s = max(0.0, float(delay_s))
        self.sleep = sleep

    def iterate(self, items: Iterable[T]) -> Iterator[T]:
        first = True
        for item in items:
            if not first and self.delay_s > 0:
                self.sleep(self.delay_s)
            first = False
            yield item
