"""
Notification collaborator interface.

Delivery (chat messages, e-mail, ...) happens outside the engine. The
engine only calls `notify(user_id, payload)` fire-and-forget: failures
are logged and never retried.
"""

from typing import Any, Dict, List, Protocol, Tuple

from morphmind.utils import get_logger

logger = get_logger(__name__)


class Notifier(Protocol):
    def notify(self, user_id: str, payload: Dict[str, Any]) -> None:
        ...


class LogNotifier:
    """Writes notifications to the log. Default when no delivery channel is wired."""

    def notify(self, user_id: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Notify {user_id}: {payload}")


class RecordingNotifier:
    """Keeps every notification in memory (dry runs, tests)."""

    def __init__(self):
        self.sent: List[Tuple[str, Dict[str, Any]]] = []

    def notify(self, user_id: str, payload: Dict[str, Any]) -> None:
        self.sent.append((user_id, dict(payload)))


def safe_notify(notifier: Notifier, user_id: str, payload: Dict[str, Any]) -> bool:
    """
    Deliver one notification, logging (not raising) on failure.

    Returns:
        True if the notifier accepted the payload
    """
    try:
        notifier.notify(user_id, payload)
        return True
    except Exception as e:
        logger.error(f"Notification to {user_id} failed ({payload.get('type')}): {e}")
        return False
