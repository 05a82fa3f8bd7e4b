"""
Accrual Engine - Time-Proportional Reward Accrual

Reward for one position over the interval since its last accrual:

    reward = principal * (current_rate / 100) * (elapsed_hours / 8760)

Simple (non-compounded within the step) and annualized on a 365-day
hour basis. The reward is added to principal and earned; shares follow
principal; last_accrual moves forward to `now`.

Both call sites (lazy accrual before a read, batch accrual in the
scheduler cycle) are idempotent for a given `now`.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from morphmind.ledger.models import Position, User, ZERO
from morphmind.utils import get_logger

logger = get_logger(__name__)

HOURS_PER_YEAR = Decimal(8760)
SECONDS_PER_HOUR = Decimal(3600)


class AccrualEngine:
    """
    Advances positions' earned reward.

    Callers must hold the owning user's lock.
    """

    def accrue(self, position: Position, now: datetime) -> Decimal:
        """
        Accrue reward on one position up to `now`.

        Args:
            position: Position to advance (mutated in place)
            now: Current wall-clock time (UTC-aware)

        Returns:
            Reward delta (never negative). Zero when no time has elapsed
            or when `now` is before the last accrual (clock skew, no mutation).
        """
        if now < position.last_accrual:
            logger.warning(
                f"Clock skew on position {position.id}: now={now.isoformat()} "
                f"< last_accrual={position.last_accrual.isoformat()}, skipping"
            )
            return ZERO

        elapsed_seconds = Decimal(str((now - position.last_accrual).total_seconds()))
        if elapsed_seconds == 0:
            return ZERO

        elapsed_hours = elapsed_seconds / SECONDS_PER_HOUR
        reward = position.amount * (position.current_rate / 100) * (elapsed_hours / HOURS_PER_YEAR)

        if reward < 0:
            # Negative principal or rate would indicate corrupted records
            logger.error(f"Negative reward {reward} on position {position.id}, skipping")
            return ZERO

        position.amount += reward
        position.earned += reward
        position.shares = position.amount
        position.last_accrual = now

        return reward

    def accrue_user(self, user: User, positions: Iterable[Position], now: datetime) -> Decimal:
        """
        Accrue every live position of a user and roll rewards into the user aggregates.

        `positions` must be every live position of the user: total_staked is
        recomputed from their principal so it equals the sum exactly.

        Returns:
            Total reward accrued across the user's positions
        """
        positions = list(positions)
        total = ZERO
        for position in positions:
            total += self.accrue(position, now)

        if total > 0:
            user.total_earned += total
            user.total_staked = sum((p.amount for p in positions), ZERO)
            logger.debug(f"User {user.id}: accrued {total:.8f}")

        return total
