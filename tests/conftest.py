"""
Global test fixtures for MorphMind

Provides reusable fixtures for all test modules.
"""

import itertools
import random
from datetime import datetime, UTC

import pytest

from morphmind.accrual import AccrualEngine
from morphmind.config import SourceSpec
from morphmind.database import InMemoryRepository
from morphmind.ledger import LedgerStore, Keypair
from morphmind.ledger.api import LedgerAPI
from morphmind.market import RateDriftSimulator
from morphmind.notify import RecordingNotifier
from morphmind.rotator import ReallocationEngine
from morphmind.scheduler import CompoundCycle, EarningsNotificationSweep
from morphmind.scorer import SourceScorer


@pytest.fixture
def engine_config():
    """Raw config dict with every section the engines read"""
    return {
        'staking': {
            'min_amount': 0.1,
            'max_amount': 1000,
        },
        'rates': {
            'floor': 5,
            'ceiling': 20,
            'drift': 0.25,
        },
        'scorer': {
            'weights': {'rate': 0.6, 'size': 0.3, 'stability': 0.1},
            'size_unit': 1000000,
            'size_cap': 10,
            'stability_anchor': 10,
            'stability_span': 15,
        },
        'reallocation': {
            'threshold': 2,
        },
        'scheduler': {
            'compound_interval_seconds': 3600,
            'notification_interval_seconds': 86400,
        },
        'notifications': {
            'earnings_threshold': 0.001,
        },
    }


@pytest.fixture
def source_specs():
    """Default yield sources"""
    return [
        SourceSpec(id='marinade', name='Marinade Finance', rate=6.8),
        SourceSpec(id='raydium', name='Raydium', rate=12.5),
        SourceSpec(id='orca', name='Orca', rate=10.2),
        SourceSpec(id='kamino', name='Kamino', rate=15.3),
        SourceSpec(id='drift', name='Drift Protocol', rate=8.9),
    ]


class FakeKeypairFactory:
    """Deterministic, unique keypairs"""

    def __init__(self):
        self._counter = itertools.count(1)

    def generate(self) -> Keypair:
        n = next(self._counter)
        return Keypair(public_key=f"0xPUB{n:04d}", secret_key=f"0xSECRET{n:04d}")


class FailingRepository(InMemoryRepository):
    """In-memory repository whose saves fail while `fail` is set"""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.fail = False

    def save(self, collection, mapping):
        if self.fail:
            raise IOError("disk full")
        super().save(collection, mapping)

    def save_batch(self, records, deleted=None):
        if self.fail:
            raise IOError("disk full")
        super().save_batch(records, deleted)


@pytest.fixture
def now():
    """Fixed wall-clock time"""
    return datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def repository():
    return FailingRepository()


@pytest.fixture
def store(repository, source_specs):
    return LedgerStore.open(repository, seed_sources=source_specs)


@pytest.fixture
def keypairs():
    return FakeKeypairFactory()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def scorer(engine_config):
    return SourceScorer(engine_config)


@pytest.fixture
def accrual():
    return AccrualEngine()


@pytest.fixture
def api(engine_config, store, scorer, accrual, keypairs):
    return LedgerAPI(engine_config, store, scorer, accrual, keypairs=keypairs)


@pytest.fixture
def cycle(engine_config, store, scorer, accrual, notifier):
    """Compound cycle with rate drift disabled"""
    config = dict(engine_config, rates=dict(engine_config['rates'], drift=0))
    return CompoundCycle(
        store,
        scorer,
        accrual,
        ReallocationEngine(config),
        RateDriftSimulator(config, rng=random.Random(7)),
        notifier=notifier,
    )


@pytest.fixture
def sweep(engine_config, store, notifier):
    return EarningsNotificationSweep(engine_config, store, notifier=notifier)


@pytest.fixture
def funded_user(api, now):
    """User 'alice' with a balance of 10"""
    api.create_user('alice', 'Alice', now=now)
    api.deposit('alice', 10)
    return 'alice'
