"""
Rate Drift - Simulated Market Movement Of Source Rates

Each cycle every source's rate moves by a uniform random step in
[-drift, +drift] percentage points, then is clamped to [floor, ceiling].
"""

import random
from decimal import Decimal
from typing import Dict, Optional

from morphmind.ledger.models import to_decimal
from morphmind.ledger.store import LedgerStore
from morphmind.utils import get_logger

logger = get_logger(__name__)

RATE_QUANTUM = Decimal("0.0001")


class RateDriftSimulator:
    """
    Bounded random walk over source rates.

    Rates are never set by user action; this is their only writer.
    """

    def __init__(self, config: dict, rng: Optional[random.Random] = None):
        """
        Args:
            config: Configuration dict with 'rates' section
            rng: Random source (seed it for reproducible runs)

        Raises:
            KeyError: If required config sections are missing (Fast Fail)
        """
        rates_config = config['rates']

        self.floor = to_decimal(rates_config['floor'])
        self.ceiling = to_decimal(rates_config['ceiling'])
        self.max_step = to_decimal(rates_config['drift'])
        self.rng = rng or random.Random()

        logger.info(
            f"RateDriftSimulator initialized: step=+/-{self.max_step}, "
            f"bounds=[{self.floor}, {self.ceiling}]"
        )

    def clamp(self, rate: Decimal) -> Decimal:
        return max(self.floor, min(self.ceiling, rate))

    def step(self) -> Decimal:
        """One random step in [-max_step, +max_step]."""
        unit = Decimal(repr(self.rng.random())) - Decimal("0.5")  # [-0.5, 0.5)
        return (unit * 2 * self.max_step).quantize(RATE_QUANTUM)

    def drift(self, store: LedgerStore) -> Dict[str, Decimal]:
        """
        Move every source's rate one step.

        Returns:
            New rate per source id
        """
        new_rates = {}
        with store.sources_lock:
            for source in store.sources.values():
                source.rate = self.clamp(source.rate + self.step())
                new_rates[source.id] = source.rate

        logger.debug(f"Drifted rates: {new_rates}")
        return new_rates
