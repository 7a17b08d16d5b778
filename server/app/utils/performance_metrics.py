"""
Performance metrics tracking for the per-turn pipeline.

Tracks stage latencies so slow turns can be traced to a provider:
- Transcription
- Context lookup
- Answer generation
- Speech synthesis
- Persistence
"""

import logging
import time
from contextlib import contextmanager
from typing import Dict, Iterator

logger = logging.getLogger(__name__)


class PerformanceMetrics:
    """
    Track stage timings for one question/answer turn.

    Usage:
        metrics = PerformanceMetrics()
        with metrics.track("transcription"):
            ...
        metrics.log_summary(call_sid)
    """

    def __init__(self):
        """Start the turn clock."""
        self.turn_start: float = time.time()
        self.metrics: Dict[str, float] = {}

    @contextmanager
    def track(self, stage: str) -> Iterator[None]:
        """Time a pipeline stage; recorded even if the stage raises."""
        stage_start = time.time()
        try:
            yield
        finally:
            duration_ms = (time.time() - stage_start) * 1000
            self.metrics[f"{stage}_ms"] = duration_ms
            logger.debug(f"{stage} took {duration_ms:.2f}ms")

    def elapsed_ms(self) -> int:
        """Milliseconds since the turn started."""
        return int((time.time() - self.turn_start) * 1000)

    def get_metrics(self) -> Dict[str, float]:
        """
        Get all collected metrics.

        Returns:
            Stage timings plus total_ms
        """
        return {**self.metrics, "total_ms": float(self.elapsed_ms())}

    def log_summary(self, call_sid: str) -> None:
        """Log one line with every stage timing."""
        stages = ", ".join(f"{name}={value:.0f}ms" for name, value in self.metrics.items())
        logger.info(f"📊 Turn timings for {call_sid}: total={self.elapsed_ms()}ms ({stages})")
