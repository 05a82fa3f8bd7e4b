"""
Unit Tests for Ledger Repositories

Tests both storage collaborators against the same contract:
- load/save of whole collections
- save_batch upserts and deletes
- Decimal strings and timestamps survive storage unchanged
"""

from datetime import datetime, UTC
from decimal import Decimal

import pytest

from morphmind.database import (
    InMemoryRepository,
    SqlLedgerRepository,
    build_engine,
    init_db,
    USERS,
    POSITIONS,
    SOURCES,
)
from morphmind.ledger.models import User, Position, Source


@pytest.fixture
def sql_repository(tmp_path):
    """SQL repository on a temporary SQLite file"""
    engine = build_engine({'url': f"sqlite:///{tmp_path / 'ledger.db'}"})
    init_db(engine)
    return SqlLedgerRepository(engine)


@pytest.fixture(params=['memory', 'sql'])
def any_repository(request, sql_repository):
    if request.param == 'memory':
        return InMemoryRepository()
    return sql_repository


@pytest.fixture
def user_record():
    return User(
        id='42',
        display_name='Alice',
        public_key='0xPUB',
        secret_key='0xSECRET',
        balance=Decimal('4.5'),
        total_staked=Decimal('5.000000000000000000000001'),
        total_earned=Decimal('0.000000000000000000000001'),
        position_ids=['1700000000000'],
        created_at=datetime(2026, 1, 1, tzinfo=UTC),
    ).to_dict()


@pytest.fixture
def position_record():
    ts = datetime(2026, 1, 1, 12, 30, tzinfo=UTC)
    return Position(
        id='1700000000000',
        user_id='42',
        amount=Decimal('5.000000000000000000000001'),
        source_id='kamino',
        start_rate=Decimal('15.3'),
        current_rate=Decimal('15.1234'),
        created_at=ts,
        last_accrual=ts,
        earned=Decimal('0.000000000000000000000001'),
        contributed=Decimal('4.9'),
    ).to_dict()


@pytest.fixture
def source_record():
    return Source(id='kamino', name='Kamino', rate=Decimal('15.3'), volume=Decimal('5')).to_dict()


class TestRepositoryContract:
    """Behaviour shared by the in-memory and SQL repositories"""

    def test_empty_collections(self, any_repository):
        for collection in (USERS, POSITIONS, SOURCES):
            assert any_repository.load(collection) == {}

    def test_unknown_collection_raises(self, any_repository):
        with pytest.raises(KeyError):
            any_repository.load('strategies')

    def test_save_batch_round_trip(self, any_repository, user_record, position_record, source_record):
        any_repository.save_batch({
            USERS: {'42': user_record},
            POSITIONS: {position_record['id']: position_record},
            SOURCES: {'kamino': source_record},
        })

        user = User.from_dict(any_repository.load(USERS)['42'])
        position = Position.from_dict(any_repository.load(POSITIONS)[position_record['id']])
        source = Source.from_dict(any_repository.load(SOURCES)['kamino'])

        assert user.total_staked == Decimal('5.000000000000000000000001')
        assert user.secret_key == '0xSECRET'
        assert user.position_ids == ['1700000000000']
        assert position.earned == Decimal('0.000000000000000000000001')
        assert position.contributed == Decimal('4.9')
        assert position.current_rate == Decimal('15.1234')
        assert position.last_accrual == datetime(2026, 1, 1, 12, 30, tzinfo=UTC)
        assert source.volume == Decimal('5')
        assert source.active is True

    def test_position_without_contributed_falls_back_to_amount(self, any_repository, position_record):
        legacy = {k: v for k, v in position_record.items() if k != 'contributed'}
        any_repository.save_batch({POSITIONS: {legacy['id']: legacy}})

        position = Position.from_dict(any_repository.load(POSITIONS)[legacy['id']])

        assert position.contributed == position.amount

    def test_save_batch_upserts(self, any_repository, source_record):
        any_repository.save_batch({SOURCES: {'kamino': source_record}})
        updated = dict(source_record, rate='14.9')

        any_repository.save_batch({SOURCES: {'kamino': updated}})

        assert any_repository.load(SOURCES)['kamino']['rate'] == '14.9'

    def test_save_batch_deletes(self, any_repository, position_record):
        pid = position_record['id']
        any_repository.save_batch({POSITIONS: {pid: position_record}})

        any_repository.save_batch({}, deleted={POSITIONS: [pid]})

        assert any_repository.load(POSITIONS) == {}

    def test_save_replaces_collection(self, any_repository, source_record):
        other = dict(source_record, id='orca', name='Orca')
        any_repository.save(SOURCES, {'kamino': source_record, 'orca': other})

        any_repository.save(SOURCES, {'orca': other})

        assert set(any_repository.load(SOURCES)) == {'orca'}


class TestInMemoryRepository:

    def test_load_returns_copies(self, source_record):
        repository = InMemoryRepository({SOURCES: {'kamino': source_record}})

        repository.load(SOURCES)['kamino']['rate'] = '99'

        assert repository.load(SOURCES)['kamino']['rate'] == '15.3'

    def test_save_count(self, source_record):
        repository = InMemoryRepository()

        repository.save(SOURCES, {'kamino': source_record})
        repository.save_batch({SOURCES: {'kamino': source_record}})

        assert repository.save_count == 2

    def test_bad_batch_applies_nothing(self, source_record):
        repository = InMemoryRepository()

        with pytest.raises(KeyError):
            repository.save_batch({SOURCES: {'kamino': source_record}, 'bogus': {}})

        assert repository.load(SOURCES) == {}


class TestSqlLedgerRepository:

    def test_failed_batch_rolls_back(self, sql_repository, source_record):
        """A record that cannot be built aborts the whole batch"""
        broken = {'id': 'orca'}  # missing required fields

        with pytest.raises(KeyError):
            sql_repository.save_batch({SOURCES: {'kamino': source_record, 'orca': broken}})

        assert sql_repository.load(SOURCES) == {}

    def test_survives_new_engine(self, tmp_path, source_record):
        url = f"sqlite:///{tmp_path / 'data' / 'ledger.db'}"
        first = build_engine({'url': url})
        init_db(first)
        SqlLedgerRepository(first).save_batch({SOURCES: {'kamino': source_record}})
        first.dispose()

        second = build_engine({'url': url})

        assert set(SqlLedgerRepository(second).load(SOURCES)) == {'kamino'}
