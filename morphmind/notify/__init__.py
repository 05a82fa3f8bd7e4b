"""
NOTIFY Module - Notification Collaborator

Components:
- Notifier: protocol consumed by the scheduler
- LogNotifier: log-only delivery
- RecordingNotifier: in-memory delivery
- safe_notify: fire-and-forget helper
"""

from morphmind.notify.notifier import Notifier, LogNotifier, RecordingNotifier, safe_notify

__all__ = ['Notifier', 'LogNotifier', 'RecordingNotifier', 'safe_notify']
