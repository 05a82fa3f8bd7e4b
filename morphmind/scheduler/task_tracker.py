"""
Task execution tracking helper.

PeriodicTask wraps a job callable with an Idle/Running state machine:
a fire that arrives while the previous run is still going is skipped
(coalesced), never queued.
"""
import threading
import time
from dataclasses import dataclass
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Callable, Dict, Optional

from morphmind.utils import get_logger

logger = get_logger(__name__)


class TaskState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"


@dataclass
class TaskStats:
    """Execution counters for one periodic task"""
    runs: int = 0
    skipped: int = 0
    failures: int = 0
    last_started_at: Optional[datetime] = None
    last_duration_seconds: Optional[float] = None
    last_error: Optional[str] = None


class PeriodicTask:
    """
    Coalescing wrapper around a periodic job.

    Usage:
        task = PeriodicTask('compound_cycle', cycle.run)
        task.run()    # returns the job result, or None if skipped
    """

    def __init__(self, name: str, job: Callable[[], Any]):
        self.name = name
        self.job = job
        self.stats = TaskStats()
        self._running = threading.Lock()

    @property
    def state(self) -> TaskState:
        return TaskState.RUNNING if self._running.locked() else TaskState.IDLE

    def run(self) -> Optional[Any]:
        """
        Run the job unless it is already running.

        Exceptions from the job are logged and counted, not raised: the
        next timer fire must still happen.
        """
        if not self._running.acquire(blocking=False):
            self.stats.skipped += 1
            logger.warning(f"Task {self.name} still running, skipping this fire")
            return None

        started = time.monotonic()
        self.stats.last_started_at = datetime.now(UTC)
        logger.info(f"Task started: {self.name}")

        try:
            result = self.job()
            self.stats.runs += 1
            self.stats.last_error = None
            return result
        except Exception as e:
            self.stats.failures += 1
            self.stats.last_error = str(e)
            logger.error(f"Task {self.name} failed: {e}", exc_info=True)
            return None
        finally:
            duration = time.monotonic() - started
            self.stats.last_duration_seconds = duration
            self._running.release()
            logger.info(f"Task completed: {self.name} (duration={duration:.2f}s)")

    def describe(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'state': self.state.value,
            'runs': self.stats.runs,
            'skipped': self.stats.skipped,
            'failures': self.stats.failures,
            'last_started_at': self.stats.last_started_at,
            'last_duration_seconds': self.stats.last_duration_seconds,
            'last_error': self.stats.last_error,
        }
