"""
Ledger API - User-Triggered Ledger Operations

Entry points called by the chat-interface collaborator:
- create_user, deposit, stake, withdraw, get_portfolio, get_user
- get_available_sources, get_statistics
- export_secret_key (the only path that reveals secret material)
- set_source_active (operator toggle)

Every mutating call runs inside LedgerStore.transaction(): it holds the
user's lock, saves synchronously before returning, and rolls back the
in-memory change if the save fails. Nothing is acknowledged that was not
persisted.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from morphmind.accrual.engine import AccrualEngine
from morphmind.ledger.errors import (
    AlreadyExistsError,
    InvalidAmountError,
    InsufficientBalanceError,
    NoActiveStakesError,
)
from morphmind.ledger.identity import EthKeypairFactory, KeypairFactory
from morphmind.ledger.models import (
    User,
    Position,
    WithdrawMode,
    UserView,
    SourceView,
    PositionView,
    PortfolioSnapshot,
    PlatformStatistics,
    WithdrawalResult,
    to_decimal,
    ZERO,
)
from morphmind.ledger.store import LedgerStore
from morphmind.scorer.source_scorer import SourceScorer
from morphmind.utils import get_logger, get_audit_logger, Clock, SystemClock

logger = get_logger(__name__)
audit_logger = get_audit_logger()


class LedgerAPI:
    """
    Stake, withdraw and query operations on the shared ledger.
    """

    def __init__(
        self,
        config: dict,
        store: LedgerStore,
        scorer: SourceScorer,
        accrual: AccrualEngine,
        keypairs: Optional[KeypairFactory] = None,
        clock: Optional[Clock] = None
    ):
        """
        Args:
            config: Configuration dict with 'staking' section
            store: Opened LedgerStore
            scorer: Scorer used to pick the source for new stakes
            accrual: Accrual engine for lazy accrual before reads/withdrawals
            keypairs: Identity generator for new users
            clock: Time source used when callers pass no `now`

        Raises:
            KeyError: If required config sections are missing (Fast Fail)
        """
        staking_config = config['staking']

        self.min_amount = to_decimal(staking_config['min_amount'])
        self.max_amount = to_decimal(staking_config['max_amount'])

        self.store = store
        self.scorer = scorer
        self.accrual = accrual
        self.keypairs = keypairs or EthKeypairFactory()
        self.clock = clock or SystemClock()

        logger.info(f"LedgerAPI initialized: stake bounds=[{self.min_amount}, {self.max_amount}]")

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _now(self, now: Optional[datetime]) -> datetime:
        return now if now is not None else self.clock.now()

    @staticmethod
    def _parse_amount(amount: Any) -> Decimal:
        """
        Parse a user-supplied amount.

        Raises:
            InvalidAmountError: If not a finite number > 0
        """
        try:
            value = to_decimal(amount)
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidAmountError(f"Amount {amount!r} is not a number")

        if not value.is_finite():
            raise InvalidAmountError(f"Amount {amount!r} is not finite")
        if value <= 0:
            raise InvalidAmountError(f"Amount {value} must be greater than zero")
        return value

    def _position_view(self, position: Position) -> PositionView:
        source = self.store.sources.get(position.source_id)
        return PositionView(
            id=position.id,
            source_id=position.source_id,
            source_name=source.name if source else position.source_id,
            amount=position.amount,
            shares=position.shares,
            start_rate=position.start_rate,
            current_rate=position.current_rate,
            earned=position.earned,
            created_at=position.created_at,
            last_accrual=position.last_accrual,
        )

    # =========================================================================
    # USERS
    # =========================================================================

    def create_user(self, user_id: Any, display_name: str, now: Optional[datetime] = None) -> UserView:
        """
        Register a user with a fresh keypair and zero balances.

        Raises:
            AlreadyExistsError: If the id is taken
            PersistenceError: If the user could not be saved
        """
        user_id = str(user_id)
        now = self._now(now)
        if self.store.has_user(user_id):
            raise AlreadyExistsError(f"User {user_id} already exists")

        with self.store.transaction(user_id):
            keypair = self.keypairs.generate()
            user = User(
                id=user_id,
                display_name=display_name or '',
                public_key=keypair.public_key,
                secret_key=keypair.secret_key,
                created_at=now,
            )
            self.store.add_user(user)
            view = UserView.of(user)

        logger.info(f"User {user_id} created (public_key={keypair.public_key})")
        return view

    def get_user(self, user_id: Any) -> UserView:
        """
        Raises:
            NotFoundError: If the user is unknown
        """
        user_id = str(user_id)
        with self.store.user_lock(user_id):
            return UserView.of(self.store.get_user(user_id))

    def export_secret_key(self, user_id: Any, requested_by: str) -> str:
        """
        Reveal a user's secret key. Every call is audit-logged.

        Raises:
            NotFoundError: If the user is unknown
        """
        user_id = str(user_id)
        with self.store.user_lock(user_id):
            user = self.store.get_user(user_id)
            secret = user.secret_key

        audit_logger.warning(f"Secret key export for user {user_id} requested by {requested_by}")
        return secret

    def deposit(self, user_id: Any, amount: Any) -> UserView:
        """
        Credit the user's liquid balance (abstract accounting, no on-chain check).

        Raises:
            NotFoundError: If the user is unknown
            InvalidAmountError: If amount is not a finite number > 0
            PersistenceError: If the change could not be saved
        """
        user_id = str(user_id)
        self.store.get_user(user_id)
        value = self._parse_amount(amount)

        with self.store.transaction(user_id):
            user = self.store.get_user(user_id)
            user.balance += value
            view = UserView.of(user)

        logger.info(f"User {user_id}: deposited {value}, balance={view.balance}")
        return view

    # =========================================================================
    # STAKE / WITHDRAW
    # =========================================================================

    def stake(self, user_id: Any, amount: Any, now: Optional[datetime] = None) -> PositionView:
        """
        Open a position in the optimal source at its current rate.

        Raises:
            NotFoundError: If the user is unknown
            InvalidAmountError: If amount is not finite, <= 0, or outside [min, max]
            InsufficientBalanceError: If amount exceeds the liquid balance
            NoActiveSourceError: If no source is active
            PersistenceError: If the change could not be saved
        """
        user_id = str(user_id)
        now = self._now(now)
        self.store.get_user(user_id)

        value = self._parse_amount(amount)
        if value < self.min_amount or value > self.max_amount:
            raise InvalidAmountError(
                f"Amount {value} outside allowed range [{self.min_amount}, {self.max_amount}]"
            )

        with self.store.transaction(user_id) as tx:
            user = self.store.get_user(user_id)
            if value > user.balance:
                raise InsufficientBalanceError(
                    f"Amount {value} exceeds balance {user.balance} of user {user_id}"
                )

            with self.store.sources_lock:
                source_id = self.scorer.select_optimal(self.store.sources.values())
                source = self.store.sources[source_id]
                rate = source.rate
                source.volume += value
            tx.touch_source(source_id)

            position = Position(
                id=self.store.next_position_id(now),
                user_id=user_id,
                amount=value,
                source_id=source_id,
                start_rate=rate,
                current_rate=rate,
                created_at=now,
                last_accrual=now,
            )
            self.store.add_position(position)

            user.balance -= value
            user.total_staked += value
            user.position_ids.append(position.id)

            view = self._position_view(position)

        logger.info(f"User {user_id}: staked {value} in {source_id} at {rate}% (position {view.id})")
        return view

    def withdraw(self, user_id: Any, mode: Any, now: Optional[datetime] = None) -> WithdrawalResult:
        """
        Move earnings (EARNINGS_ONLY) or everything (FULL) to the liquid balance.

        All positions are accrued up to `now` first. FULL pays the contributed
        principal plus unwithdrawn earnings and closes every position.

        Raises:
            NotFoundError: If the user is unknown
            NoActiveStakesError: If the user owns no positions
            ValueError: If mode is not a WithdrawMode
            PersistenceError: If the change could not be saved
        """
        user_id = str(user_id)
        mode = WithdrawMode(mode)
        now = self._now(now)
        self.store.get_user(user_id)

        with self.store.transaction(user_id):
            user = self.store.get_user(user_id)
            if not user.position_ids:
                raise NoActiveStakesError(f"User {user_id} has no active stakes")

            positions = self.store.positions_of(user)
            self.accrual.accrue_user(user, positions, now)

            if mode == WithdrawMode.EARNINGS_ONLY:
                amount = user.total_earned
                user.balance += amount
                user.total_earned = ZERO
                for position in positions:
                    position.earned = ZERO
                closed = 0
            else:
                # Earned reward already sits inside `amount`; pay it once, as earnings
                contributed = sum((p.contributed for p in positions), ZERO)
                amount = contributed + user.total_earned
                user.balance += amount
                for position in positions:
                    self.store.remove_position(position.id)
                closed = len(positions)
                user.position_ids = []
                user.total_staked = ZERO
                user.total_earned = ZERO

            result = WithdrawalResult(
                user_id=user_id,
                mode=mode,
                amount=amount,
                balance=user.balance,
                positions_closed=closed,
            )

        logger.info(f"User {user_id}: withdrew {amount} ({mode.value}), balance={result.balance}")
        return result

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_portfolio(self, user_id: Any, now: Optional[datetime] = None) -> PortfolioSnapshot:
        """
        Accrue lazily, then return a read-only snapshot.

        Raises:
            NotFoundError: If the user is unknown
            PersistenceError: If the accrued state could not be saved
        """
        user_id = str(user_id)
        now = self._now(now)
        self.store.get_user(user_id)

        with self.store.transaction(user_id):
            user = self.store.get_user(user_id)
            positions = self.store.positions_of(user)
            accrued = self.accrual.accrue_user(user, positions, now)

            roi = user.total_earned / user.total_staked if user.total_staked > 0 else ZERO

            snapshot = PortfolioSnapshot(
                user_id=user_id,
                balance=user.balance,
                total_staked=user.total_staked,
                total_earned=user.total_earned,
                roi=roi,
                positions=tuple(self._position_view(p) for p in positions),
                accrued=accrued,
            )

        return snapshot

    def get_available_sources(self) -> List[SourceView]:
        """Active sources, configuration order."""
        return [SourceView.of(s) for s in self.store.source_snapshot() if s.active]

    def get_statistics(self) -> PlatformStatistics:
        """Aggregate totals across all users plus the average active-source rate."""
        total_staked = ZERO
        total_earned = ZERO
        user_ids = self.store.user_ids()

        for user_id in user_ids:
            with self.store.user_lock(user_id):
                user = self.store.users.get(user_id)
                if user is None:
                    continue
                total_staked += user.total_staked
                total_earned += user.total_earned

        active = [s for s in self.store.source_snapshot() if s.active]
        average_rate = sum((s.rate for s in active), ZERO) / len(active) if active else None

        return PlatformStatistics(
            total_users=len(user_ids),
            total_staked=total_staked,
            total_earned=total_earned,
            active_sources=len(active),
            average_rate=average_rate,
        )

    def set_source_active(self, source_id: str, active: bool) -> SourceView:
        """
        Raises:
            NotFoundError: If the source is unknown
        """
        return SourceView.of(self.store.set_source_active(source_id, active))
