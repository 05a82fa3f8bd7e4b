"""
SCHEDULER Module - Periodic Engine Tasks

Components:
- CompoundCycle: accrual + reallocation + rate drift + persistence
- EarningsNotificationSweep: read-only earnings notifications
- PeriodicTask: coalescing Idle/Running task wrapper
- EngineScheduler: APScheduler wiring for both tasks
"""

from morphmind.scheduler.cycle import CompoundCycle, CycleResult
from morphmind.scheduler.notifications import EarningsNotificationSweep
from morphmind.scheduler.task_tracker import PeriodicTask, TaskState, TaskStats
from morphmind.scheduler.service import EngineScheduler

__all__ = [
    'CompoundCycle',
    'CycleResult',
    'EarningsNotificationSweep',
    'PeriodicTask',
    'TaskState',
    'TaskStats',
    'EngineScheduler',
]
