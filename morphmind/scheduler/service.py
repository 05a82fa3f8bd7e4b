"""
Engine Scheduler

Runs the two periodic tasks on one APScheduler clock:
- compound_cycle: accrue + reallocate + drift + persist (default hourly)
- earnings_sweep: read-only earnings notifications (default daily)

Overlapping fires are coalesced: APScheduler keeps at most one instance
per job, and PeriodicTask skips a fire that arrives while the previous
run (scheduled or manual) is still going.
"""

import threading
from typing import Any, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from morphmind.scheduler.cycle import CompoundCycle, CycleResult
from morphmind.scheduler.notifications import EarningsNotificationSweep
from morphmind.scheduler.task_tracker import PeriodicTask
from morphmind.utils import get_logger

logger = get_logger(__name__)


class EngineScheduler:
    """
    Periodic driver for the compound cycle and the earnings sweep.
    """

    def __init__(
        self,
        config: dict,
        cycle: CompoundCycle,
        sweep: EarningsNotificationSweep,
        scheduler: Optional[BackgroundScheduler] = None
    ):
        """
        Args:
            config: Configuration dict with 'scheduler' section
            cycle: Compound cycle to run
            sweep: Earnings sweep to run
            scheduler: APScheduler instance (tests inject a mock)

        Raises:
            KeyError: If required config sections are missing (Fast Fail)
        """
        sched_config = config['scheduler']

        self.compound_interval = float(sched_config['compound_interval_seconds'])
        self.notification_interval = float(sched_config['notification_interval_seconds'])

        self.compound_task = PeriodicTask('compound_cycle', cycle.run)
        self.sweep_task = PeriodicTask('earnings_sweep', sweep.run)

        self.scheduler = scheduler or BackgroundScheduler(timezone='UTC')
        self.shutdown_event = threading.Event()
        self.running = False

        logger.info(
            f"EngineScheduler initialized: compound every {self.compound_interval:.0f}s, "
            f"earnings sweep every {self.notification_interval:.0f}s"
        )

    def _schedule_jobs(self) -> None:
        """Setup scheduled jobs"""
        self.scheduler.add_job(
            self.compound_task.run,
            IntervalTrigger(seconds=self.compound_interval),
            id='compound_cycle',
            name='Compound / Reallocate Cycle',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        self.scheduler.add_job(
            self.sweep_task.run,
            IntervalTrigger(seconds=self.notification_interval),
            id='earnings_sweep',
            name='Earnings Notification Sweep',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

    def start(self) -> None:
        if self.running:
            logger.warning("EngineScheduler already running")
            return

        self._schedule_jobs()
        self.scheduler.start()
        self.running = True
        self.shutdown_event.clear()
        logger.info("EngineScheduler started")

    def request_shutdown(self) -> None:
        """Wake whoever waits in wait_for_shutdown()."""
        self.shutdown_event.set()

    def wait_for_shutdown(self, poll_seconds: float = 1.0) -> None:
        """Block until request_shutdown() or stop() is called."""
        while not self.shutdown_event.wait(poll_seconds):
            pass

    def stop(self, wait: bool = True) -> None:
        """Stop timers; with wait=True an in-flight cycle runs to completion."""
        if not self.running:
            return

        self.scheduler.shutdown(wait=wait)
        self.running = False
        self.shutdown_event.set()
        logger.info("EngineScheduler stopped")

    def run_cycle_now(self) -> Optional[CycleResult]:
        """Manual trigger. Returns None if a cycle is already running."""
        return self.compound_task.run()

    def run_sweep_now(self) -> Optional[int]:
        return self.sweep_task.run()

    def status(self) -> Dict[str, Any]:
        return {
            'running': self.running,
            'tasks': [self.compound_task.describe(), self.sweep_task.describe()],
        }
