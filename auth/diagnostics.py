"""
Auth phase timing.

Wrap each step of a login/bootstrap in a phase to see where the time goes:
- sign_in slow  -> auth service slow or rate limited
- load_profile slow -> profile queries slow (missing index, trigger work)
"""

import logging
import time
from contextlib import contextmanager
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class PhaseTimer:
    def __init__(self, label: str):
        self.label = label
        self.timings: Dict[str, float] = {}
        self._started = time.perf_counter()

    @contextmanager
    def phase(self, name: str, expect_ms: Optional[float] = None):
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = (time.perf_counter() - start) * 1000
            self.timings[name] = elapsed
            if expect_ms is not None and elapsed > expect_ms:
                logger.warning(
                    "[%s] %s took %.0fms (expected <%.0fms)", self.label, name, elapsed, expect_ms
                )
            else:
                logger.debug("[%s] %s took %.0fms", self.label, name, elapsed)

    def total_ms(self) -> float:
        return (time.perf_counter() - self._started) * 1000

    def summary(self) -> Dict[str, float]:
        """Recorded timings per phase, plus the running total."""
        return {**self.timings, "total": self.total_ms()}
