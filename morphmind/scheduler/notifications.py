"""
Earnings notification sweep.

Read-only scan: every user whose total earned is above the configured
threshold gets one `earnings_update` notification.
"""

from typing import List, Optional, Tuple

from morphmind.ledger.models import to_decimal
from morphmind.ledger.store import LedgerStore
from morphmind.notify.notifier import Notifier, LogNotifier, safe_notify
from morphmind.utils import get_logger

logger = get_logger(__name__)


class EarningsNotificationSweep:

    def __init__(self, config: dict, store: LedgerStore, notifier: Optional[Notifier] = None):
        """
        Raises:
            KeyError: If the 'notifications' section is missing (Fast Fail)
        """
        self.threshold = to_decimal(config['notifications']['earnings_threshold'])
        self.store = store
        self.notifier = notifier or LogNotifier()

        logger.info(f"EarningsNotificationSweep initialized: threshold={self.threshold}")

    def run(self) -> int:
        """Returns the number of notifications delivered."""
        qualifying: List[Tuple[str, str]] = []

        for user_id in self.store.user_ids():
            with self.store.user_lock(user_id):
                user = self.store.users.get(user_id)
                if user is not None and user.total_earned > self.threshold:
                    qualifying.append((user_id, str(user.total_earned)))

        delivered = 0
        for user_id, total_earned in qualifying:
            if safe_notify(self.notifier, user_id, {'type': 'earnings_update', 'total_earned': total_earned}):
                delivered += 1

        logger.info(f"Earnings sweep: {delivered}/{len(qualifying)} notifications delivered")
        return delivered
