"""
Tests for CompoundCycle.

Covers:
1. Batch accrual across users
2. Reallocation toward the optimal source (hysteresis-guarded)
3. Rate drift and position rate re-sync
4. Persistence failure handling
5. Rebalance notifications
"""
import random
from datetime import timedelta
from decimal import Decimal

import pytest

from morphmind.database import USERS
from morphmind.market import RateDriftSimulator
from morphmind.rotator import ReallocationEngine
from morphmind.scheduler import CompoundCycle, EarningsNotificationSweep

ONE_YEAR = timedelta(hours=8760)


def bind(store, position_id, source_id):
    """Move a position to a source at that source's current rate"""
    position = store.positions[position_id]
    position.source_id = source_id
    position.current_rate = store.sources[source_id].rate


class TestAccrual:

    def test_accrues_every_user(self, api, cycle, store, now):
        for user_id in ('alice', 'bob'):
            api.create_user(user_id, user_id.title(), now=now)
            api.deposit(user_id, 10)
            api.stake(user_id, 5, now=now)

        result = cycle.run(now=now + ONE_YEAR)

        assert result.users_processed == 2
        assert result.accrued > 0
        for user_id in ('alice', 'bob'):
            assert store.get_user(user_id).total_earned > 0

    def test_second_run_same_instant_accrues_nothing(self, api, cycle, funded_user, now):
        api.stake(funded_user, 5, now=now)
        cycle.run(now=now + ONE_YEAR)

        result = cycle.run(now=now + ONE_YEAR)

        assert result.accrued == 0

    def test_cycle_and_lazy_read_do_not_double_count(self, api, cycle, funded_user, now):
        api.stake(funded_user, 5, now=now)
        later = now + timedelta(hours=48)

        cycle.run(now=later)
        portfolio = api.get_portfolio(funded_user, now=later)

        assert portfolio.accrued == 0

    def test_user_without_positions_is_processed(self, api, cycle, funded_user, now):
        result = cycle.run(now=now)

        assert result.users_processed == 1
        assert result.accrued == 0


class TestReallocation:

    def test_moves_when_gap_exceeds_threshold(self, api, cycle, store, funded_user, notifier, now):
        position = api.stake(funded_user, 5, now=now)
        bind(store, position.id, 'marinade')  # 6.8 vs kamino 15.3

        result = cycle.run(now=now)

        assert result.optimal_source_id == 'kamino'
        assert result.moved == 1
        assert store.positions[position.id].source_id == 'kamino'
        assert store.positions[position.id].start_rate == Decimal('15.3')
        assert notifier.sent == [(funded_user, {'type': 'rebalance', 'moved': 1})]

    def test_small_gap_does_not_move(self, api, cycle, store, funded_user, notifier, now):
        position = api.stake(funded_user, 5, now=now)
        bind(store, position.id, 'raydium')
        store.positions[position.id].current_rate = Decimal('13.3')  # gap exactly 2.0

        result = cycle.run(now=now)

        assert result.moved == 0
        assert store.positions[position.id].source_id == 'raydium'
        assert notifier.sent == []

    def test_accrues_at_old_rate_before_move(self, api, cycle, store, funded_user, now):
        position = api.stake(funded_user, 5, now=now)
        bind(store, position.id, 'marinade')
        store.positions[position.id].current_rate = Decimal('10')

        cycle.run(now=now + ONE_YEAR)

        assert store.positions[position.id].earned == Decimal('0.5')
        assert store.positions[position.id].source_id == 'kamino'

    def test_no_active_source_skips_reallocation(self, api, cycle, store, funded_user, now):
        position = api.stake(funded_user, 5, now=now)
        for source_id in list(store.sources):
            store.set_source_active(source_id, False)

        result = cycle.run(now=now + ONE_YEAR)

        assert result.reallocation_skipped
        assert result.optimal_source_id is None
        assert result.moved == 0
        assert result.accrued > 0
        assert store.positions[position.id].source_id == 'kamino'

    def test_uses_pre_drift_rates(self, engine_config, api, store, scorer, accrual, funded_user, now):
        """Decisions read the snapshot taken before this cycle's drift"""
        position = api.stake(funded_user, 5, now=now)
        bind(store, position.id, 'marinade')
        drift = RateDriftSimulator(engine_config, rng=random.Random(11))
        cycle = CompoundCycle(store, scorer, accrual, ReallocationEngine(engine_config), drift)

        result = cycle.run(now=now)

        assert result.optimal_source_id == 'kamino'
        assert store.positions[position.id].source_id == 'kamino'
        # after drift the position tracks the source's new rate
        assert store.positions[position.id].current_rate == store.sources['kamino'].rate
        assert store.positions[position.id].start_rate == Decimal('15.3')


class TestPersistence:

    def test_flushes_at_end(self, api, cycle, repository, funded_user, now):
        api.stake(funded_user, 5, now=now)

        result = cycle.run(now=now + ONE_YEAR)

        assert result.persisted
        assert Decimal(repository.load(USERS)[funded_user]['total_earned']) > 0

    def test_flush_failure_keeps_memory(self, api, cycle, store, repository, funded_user, now):
        api.stake(funded_user, 5, now=now)
        repository.fail = True

        result = cycle.run(now=now + ONE_YEAR)

        assert result.persisted is False
        assert store.get_user(funded_user).total_earned > 0
        assert Decimal(repository.load(USERS)[funded_user]['total_earned']) == 0

    def test_next_cycle_retries(self, api, cycle, repository, funded_user, now):
        api.stake(funded_user, 5, now=now)
        repository.fail = True
        cycle.run(now=now + ONE_YEAR)

        repository.fail = False
        result = cycle.run(now=now + ONE_YEAR)

        assert result.persisted
        assert Decimal(repository.load(USERS)[funded_user]['total_earned']) > 0

    def test_user_failure_does_not_stop_cycle(self, api, cycle, store, now, monkeypatch):
        for user_id in ('alice', 'bob'):
            api.create_user(user_id, user_id.title(), now=now)
            api.deposit(user_id, 10)
            api.stake(user_id, 5, now=now)

        real_accrue_user = cycle.accrual.accrue_user

        def flaky(user, positions, at):
            if user.id == 'alice':
                raise RuntimeError("corrupt record")
            return real_accrue_user(user, positions, at)

        monkeypatch.setattr(cycle.accrual, 'accrue_user', flaky)

        result = cycle.run(now=now + ONE_YEAR)

        assert result.user_errors == ['alice']
        assert result.users_processed == 1
        assert store.get_user('bob').total_earned > 0
        assert result.persisted


class TestNotifications:

    def test_notifier_failure_does_not_fail_cycle(self, api, store, scorer, accrual, engine_config,
                                                  funded_user, now):
        class BrokenNotifier:
            def notify(self, user_id, payload):
                raise ConnectionError("chat down")

        position = api.stake(funded_user, 5, now=now)
        bind(store, position.id, 'marinade')
        config = dict(engine_config, rates=dict(engine_config['rates'], drift=0))
        cycle = CompoundCycle(
            store, scorer, accrual,
            ReallocationEngine(config), RateDriftSimulator(config),
            notifier=BrokenNotifier(),
        )

        result = cycle.run(now=now)

        assert result.moved == 1
        assert result.persisted


class TestEarningsSweep:

    def test_notifies_users_above_threshold(self, api, sweep, cycle, notifier, now):
        for user_id in ('alice', 'bob'):
            api.create_user(user_id, user_id.title(), now=now)
            api.deposit(user_id, 10)
        api.stake('alice', 5, now=now)
        cycle.run(now=now + ONE_YEAR)
        notifier.sent.clear()

        delivered = sweep.run()

        assert delivered == 1
        user_id, payload = notifier.sent[0]
        assert user_id == 'alice'
        assert payload['type'] == 'earnings_update'
        assert Decimal(payload['total_earned']) > Decimal('0.001')

    def test_threshold_is_strict(self, store, sweep, api, funded_user, notifier):
        store.get_user(funded_user).total_earned = Decimal('0.001')

        assert sweep.run() == 0
        assert notifier.sent == []

    def test_sweep_does_not_mutate(self, api, store, sweep, funded_user, repository, now):
        store.get_user(funded_user).total_earned = Decimal('1')
        saves = repository.save_count

        sweep.run()

        assert store.get_user(funded_user).total_earned == Decimal('1')
        assert repository.save_count == saves

    @pytest.mark.parametrize("failing_user", ['alice', 'bob'])
    def test_failed_delivery_not_counted(self, engine_config, store, api, now, failing_user):
        class PartialNotifier:
            def __init__(self):
                self.sent = []

            def notify(self, user_id, payload):
                if user_id == failing_user:
                    raise ConnectionError("blocked bot")
                self.sent.append(user_id)

        for user_id in ('alice', 'bob'):
            api.create_user(user_id, user_id.title(), now=now)
            store.get_user(user_id).total_earned = Decimal('1')
        notifier = PartialNotifier()

        delivered = EarningsNotificationSweep(engine_config, store, notifier=notifier).run()

        assert delivered == 1
        assert failing_user not in notifier.sent
