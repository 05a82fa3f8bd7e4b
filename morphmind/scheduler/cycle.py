"""
Compound Cycle - Accrue, Reallocate, Drift, Persist

One run of the periodic engine cycle:
1. Snapshot source rates and pick the optimal source ONCE for the batch
2. For every user (under that user's lock): accrue all positions, then
   reallocate them toward the optimal source (hysteresis-guarded)
3. Drift every source's rate, then re-sync positions' current rate
4. Flush the ledger in one batch

Reallocation decisions use pre-drift rates. A persistence failure is
logged and the in-memory state kept; the next cycle's flush retries
(at-least-once, eventually consistent).
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from morphmind.accrual.engine import AccrualEngine
from morphmind.ledger.errors import NoActiveSourceError
from morphmind.ledger.models import Source, ZERO
from morphmind.ledger.store import LedgerStore
from morphmind.market.rate_drift import RateDriftSimulator
from morphmind.notify.notifier import Notifier, LogNotifier, safe_notify
from morphmind.rotator.reallocator import ReallocationEngine
from morphmind.scorer.source_scorer import SourceScorer
from morphmind.utils import get_logger, Clock, SystemClock

logger = get_logger(__name__)


@dataclass
class CycleResult:
    """Outcome of one compound cycle"""
    started_at: datetime
    users_processed: int = 0
    accrued: Decimal = ZERO
    moved: int = 0
    optimal_source_id: Optional[str] = None
    reallocation_skipped: bool = False
    rates: Dict[str, Decimal] = field(default_factory=dict)
    persisted: bool = False
    user_errors: List[str] = field(default_factory=list)


class CompoundCycle:
    """
    Batch accrual + reallocation over every user.
    """

    def __init__(
        self,
        store: LedgerStore,
        scorer: SourceScorer,
        accrual: AccrualEngine,
        reallocator: ReallocationEngine,
        drift: RateDriftSimulator,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None
    ):
        self.store = store
        self.scorer = scorer
        self.accrual = accrual
        self.reallocator = reallocator
        self.drift = drift
        self.notifier = notifier or LogNotifier()
        self.clock = clock or SystemClock()

    def _pick_optimal(self, result: CycleResult) -> Optional[Source]:
        snapshot = self.store.source_snapshot()
        try:
            optimal_id = self.scorer.select_optimal(snapshot)
        except NoActiveSourceError:
            logger.warning("No active source this cycle, skipping reallocation")
            result.reallocation_skipped = True
            return None

        result.optimal_source_id = optimal_id
        return next(s for s in snapshot if s.id == optimal_id)

    def _process_user(self, user_id: str, optimal: Optional[Source], now: datetime) -> Tuple[Decimal, int]:
        with self.store.user_lock(user_id):
            user = self.store.users.get(user_id)
            if user is None:
                return ZERO, 0

            positions = self.store.positions_of(user)
            accrued = self.accrual.accrue_user(user, positions, now)
            moved = self.reallocator.reallocate_all(positions, optimal) if optimal else 0

        return accrued, moved

    def _sync_position_rates(self) -> None:
        for user_id in self.store.user_ids():
            with self.store.user_lock(user_id):
                user = self.store.users.get(user_id)
                if user is None:
                    continue
                with self.store.sources_lock:
                    for position in self.store.positions_of(user):
                        source = self.store.sources.get(position.source_id)
                        if source is not None:
                            position.current_rate = source.rate

    def run(self, now: Optional[datetime] = None) -> CycleResult:
        """Run one full cycle. Never raises for per-user or persistence failures."""
        now = now if now is not None else self.clock.now()
        result = CycleResult(started_at=now)

        optimal = self._pick_optimal(result)
        rebalanced: List[Tuple[str, int]] = []

        for user_id in self.store.user_ids():
            try:
                accrued, moved = self._process_user(user_id, optimal, now)
            except Exception as e:
                logger.error(f"Cycle failed for user {user_id}: {e}", exc_info=True)
                result.user_errors.append(user_id)
                continue

            result.users_processed += 1
            result.accrued += accrued
            result.moved += moved
            if moved:
                rebalanced.append((user_id, moved))
                logger.info(f"User {user_id}: reallocated {moved} positions")

        result.rates = self.drift.drift(self.store)
        self._sync_position_rates()

        try:
            self.store.flush()
            result.persisted = True
        except Exception as e:
            logger.error(f"Cycle persist failed, will retry next cycle: {e}", exc_info=True)

        for user_id, moved in rebalanced:
            safe_notify(self.notifier, user_id, {'type': 'rebalance', 'moved': moved})

        logger.info(
            f"Cycle complete: users={result.users_processed}, accrued={result.accrued:.8f}, "
            f"moved={result.moved}, optimal={result.optimal_source_id}, persisted={result.persisted}"
        )
        return result
