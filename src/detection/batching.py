"""
Adaptive batch sizing for network scans
"""

import logging
from typing import Iterator, List, Sequence

logger = logging.getLogger(__name__)


class AdaptiveBatchSizer:
    """Grows or shrinks the batch size from the cumulative probe success ratio"""

    def __init__(self, initial: int = 10, minimum: int = 5, maximum: int = 20,
                 grow_step: int = 5, shrink_step: int = 2,
                 grow_above: float = 0.5, shrink_below: float = 0.1):
        if not minimum <= initial <= maximum:
            raise ValueError(f"Initial batch size {initial} outside [{minimum}, {maximum}]")
        self.size = initial
        self.minimum = minimum
        self.maximum = maximum
        self.grow_step = grow_step
        self.shrink_step = shrink_step
        self.grow_above = grow_above
        self.shrink_below = shrink_below
        self.successes = 0
        self.failures = 0

    @property
    def success_ratio(self) -> float:
        probed = self.successes + self.failures
        return self.successes / probed if probed else 0.0

    def record(self, successes: int, failures: int) -> int:
        """Account for one finished batch and return the next batch size"""
        self.successes += successes
        self.failures += failures

        ratio = self.success_ratio
        previous = self.size
        if ratio > self.grow_above:
            self.size = min(self.maximum, self.size + self.grow_step)
        elif ratio < self.shrink_below:
            self.size = max(self.minimum, self.size - self.shrink_step)

        if self.size != previous:
            logger.debug(f"Batch size {previous} -> {self.size} (success ratio {ratio:.2f})")
        return self.size


def fixed_batches(items: Sequence[str], batch_size: int) -> Iterator[List[str]]:
    for i in range(0, len(items), batch_size):
        yield list(items[i:i + batch_size])
