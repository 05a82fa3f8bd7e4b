"""
Engine assembly.

Wires the store, engines, Ledger API and scheduler from one config.
The store is opened here (from its persisted snapshot) and flushed by
`MorphMindApp.close()`.
"""

import random
from dataclasses import dataclass
from typing import Optional

from morphmind.accrual import AccrualEngine
from morphmind.config import Config, parse_sources
from morphmind.database import LedgerRepository, SqlLedgerRepository, build_engine, init_db
from morphmind.ledger import LedgerStore, KeypairFactory
from morphmind.ledger.api import LedgerAPI
from morphmind.market import RateDriftSimulator
from morphmind.notify import Notifier, LogNotifier
from morphmind.rotator import ReallocationEngine
from morphmind.scheduler import CompoundCycle, EarningsNotificationSweep, EngineScheduler
from morphmind.scorer import SourceScorer
from morphmind.utils import get_logger, Clock, SystemClock

logger = get_logger(__name__)


@dataclass
class MorphMindApp:
    store: LedgerStore
    api: LedgerAPI
    scorer: SourceScorer
    cycle: CompoundCycle
    sweep: EarningsNotificationSweep
    scheduler: EngineScheduler

    def close(self, flush: bool = True) -> None:
        """Stop timers, then flush the ledger (skip the flush for read-only sessions)."""
        self.scheduler.stop(wait=True)
        self.store.close(flush=flush)


def create_repository(config: Config) -> LedgerRepository:
    """SQL repository from the `database` section; tables are created if missing."""
    engine = build_engine(config.get_required('database'))
    init_db(engine)
    return SqlLedgerRepository(engine)


def create_app(
    config: Config,
    repository: Optional[LedgerRepository] = None,
    notifier: Optional[Notifier] = None,
    clock: Optional[Clock] = None,
    keypairs: Optional[KeypairFactory] = None,
    rng: Optional[random.Random] = None
) -> MorphMindApp:
    raw = config._raw_config
    repository = repository or create_repository(config)
    notifier = notifier or LogNotifier()
    clock = clock or SystemClock()

    store = LedgerStore.open(repository, seed_sources=parse_sources(config))

    scorer = SourceScorer(raw)
    accrual = AccrualEngine()
    api = LedgerAPI(raw, store, scorer, accrual, keypairs=keypairs, clock=clock)
    cycle = CompoundCycle(
        store,
        scorer,
        accrual,
        ReallocationEngine(raw),
        RateDriftSimulator(raw, rng=rng),
        notifier=notifier,
        clock=clock,
    )
    sweep = EarningsNotificationSweep(raw, store, notifier=notifier)
    scheduler = EngineScheduler(raw, cycle, sweep)

    logger.info("MorphMind engine assembled")
    return MorphMindApp(store, api, scorer, cycle, sweep, scheduler)
