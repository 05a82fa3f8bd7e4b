"""
Reallocation Engine - Move Positions To The Optimal Source

Single Responsibility: decide and apply rebinds under a hysteresis rule.

A position moves to the optimal source only when:
- it is bound to a different source, AND
- optimal.rate - position.current_rate > threshold (default 2 points)

The threshold keeps small rate noise from bouncing positions between
sources. Reward is not accrued here; the cycle accrues first so reward
up to the move is locked in at the old rate.
"""

from typing import Iterable

from morphmind.ledger.models import Position, Source, to_decimal
from morphmind.utils import get_logger

logger = get_logger(__name__)


class ReallocationEngine:
    """
    Rebinds positions to a better source.

    Callers must hold the owning user's lock.
    """

    def __init__(self, config: dict):
        """
        Initialize reallocator with threshold from config.

        Args:
            config: Configuration dict with 'reallocation' section

        Raises:
            KeyError: If required config sections are missing (Fast Fail)
        """
        self.threshold = to_decimal(config['reallocation']['threshold'])

        logger.info(f"ReallocationEngine initialized: threshold={self.threshold} points")

    def should_move(self, position: Position, optimal: Source) -> bool:
        """Hysteresis check without side effects."""
        if position.source_id == optimal.id:
            return False
        return optimal.rate - position.current_rate > self.threshold

    def reallocate(self, position: Position, optimal: Source) -> bool:
        """
        Rebind a position to the optimal source if the move clears the threshold.

        Args:
            position: Position to consider (mutated on move)
            optimal: Optimal source, as read from the cycle's rate snapshot

        Returns:
            True if the position moved
        """
        if not self.should_move(position, optimal):
            return False

        previous_source = position.source_id
        previous_rate = position.current_rate

        position.source_id = optimal.id
        position.current_rate = optimal.rate

        logger.info(
            f"Position {position.id}: {previous_source} ({previous_rate}%) -> "
            f"{optimal.id} ({optimal.rate}%)"
        )
        return True

    def reallocate_all(self, positions: Iterable[Position], optimal: Source) -> int:
        """Apply reallocate() to each position. Returns number moved."""
        moved = 0
        for position in positions:
            if self.reallocate(position, optimal):
                moved += 1
        return moved
