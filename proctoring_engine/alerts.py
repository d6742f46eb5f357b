"""
Alert Aggregator - Alert history, transient display slot, and notifications.

This module contains the AlertAggregator class that records classified
alerts into an append-only history, keeps the most recent one in a
transient display slot that expires after a fixed dwell, and fans alerts
out to notification handlers without ever blocking the capture loop.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from .interfaces import AlertHandler
from .models import AlertSeverity, AlertType, SuspiciousAlert


DEFAULT_DWELL_SECONDS = 5.0


@dataclass(frozen=True)
class PreviewIndicator:
    """Border colour and pulse state of the live camera preview."""
    color: str
    pulsing: bool = False


INDICATOR_BY_SEVERITY = {
    AlertSeverity.HIGH: PreviewIndicator('red', True),
    AlertSeverity.MEDIUM: PreviewIndicator('yellow', False),
    AlertSeverity.LOW: PreviewIndicator('blue', False),
}
INDICATOR_CONNECTED = PreviewIndicator('green', False)
INDICATOR_DISCONNECTED = PreviewIndicator('gray', False)


def indicator_for(current_alert: Optional[SuspiciousAlert], is_connected: bool) -> PreviewIndicator:
    """
    Pick the preview indicator for the current state.

    An unexpired alert decides by severity; otherwise the connection state does.
    """
    if current_alert is not None:
        return INDICATOR_BY_SEVERITY[current_alert.severity]
    return INDICATOR_CONNECTED if is_connected else INDICATOR_DISCONNECTED


class AlertHistoryTracker:
    """Append-only, chronological alert history."""

    def __init__(self):
        self.alert_history: List[SuspiciousAlert] = []
        self.logger = logging.getLogger(__name__)

    def add_alert(self, alert: SuspiciousAlert) -> None:
        """Add alert to history."""
        self.alert_history.append(alert)

    def get_alert_history(
        self,
        limit: Optional[int] = None,
        severity: Optional[str] = None
    ) -> List[SuspiciousAlert]:
        """
        Get alert history in insertion order.

        Args:
            limit: Only return the most recent N alerts
            severity: 'high', 'medium', 'low' or 'all' / None for every alert
        """
        alerts = self.alert_history
        if severity and severity != 'all':
            alerts = [alert for alert in alerts if alert.severity.value == severity]
        if limit:
            return alerts[-limit:]
        return list(alerts)

    def count_by_severity(self) -> Dict[str, int]:
        counts = {severity.value: 0 for severity in AlertSeverity}
        for alert in self.alert_history:
            counts[alert.severity.value] += 1
        return counts

    def count_by_type(self) -> Dict[str, int]:
        return dict(Counter(alert.type.value for alert in self.alert_history))

    def clear_history(self) -> int:
        """Clear history and return the number of alerts removed."""
        count = len(self.alert_history)
        self.alert_history.clear()
        return count

    def __len__(self) -> int:
        return len(self.alert_history)


class NotificationCooldown:
    """
    Suppresses repeated notifications of the same alert type.

    Only notifications are suppressed; every alert still reaches history.
    A window of zero disables suppression.
    """

    def __init__(self, window_seconds: float = 0.0):
        self.window_seconds = window_seconds
        self._last_notified: Dict[AlertType, float] = {}
        self.suppressed_count = 0

    def should_suppress(self, alert: SuspiciousAlert, now: float) -> bool:
        if self.window_seconds <= 0:
            return False

        last = self._last_notified.get(alert.type)
        if last is not None and now - last < self.window_seconds:
            self.suppressed_count += 1
            return True

        self._last_notified[alert.type] = now
        return False

    def reset(self) -> None:
        self._last_notified.clear()


class AlertAggregator:
    """
    Records alerts and drives transient and audible feedback.

    The transient slot is last-write-wins: a new alert replaces the current
    one and restarts the dwell clock, while history keeps both.
    """

    def __init__(
        self,
        scheduler=None,
        dwell_seconds: float = DEFAULT_DWELL_SECONDS,
        handlers: Optional[List[AlertHandler]] = None,
        notification_cooldown_seconds: float = 0.0
    ):
        """
        Initialize the aggregator.

        Args:
            scheduler: Object providing call_later() and time(); defaults to
                the running asyncio loop
            dwell_seconds: How long an alert stays in the transient slot
            handlers: Alert side effects (audio cue, reporting sink)
            notification_cooldown_seconds: Per-type notification suppression window
        """
        self._scheduler = scheduler
        self.dwell_seconds = dwell_seconds
        self.handlers: List[AlertHandler] = list(handlers or [])
        self.notification_callbacks: List[Callable[[SuspiciousAlert], None]] = []
        self.expiry_callbacks: List[Callable[[SuspiciousAlert], None]] = []
        self.cooldown = NotificationCooldown(notification_cooldown_seconds)
        self.history_tracker = AlertHistoryTracker()

        self._current_alert: Optional[SuspiciousAlert] = None
        self._expiry_handle = None
        self._recorded_ids: Set[str] = set()
        self.logger = logging.getLogger(__name__)

    @property
    def scheduler(self):
        if self._scheduler is None:
            self._scheduler = asyncio.get_running_loop()
        return self._scheduler

    @property
    def current_alert(self) -> Optional[SuspiciousAlert]:
        """The alert in the transient display slot, if it has not expired."""
        return self._current_alert

    def record(self, alert: SuspiciousAlert) -> bool:
        """
        Record an alert in history, show it, and notify handlers.

        Returns:
            False if this alert id was already recorded, True otherwise
        """
        if alert.alert_id in self._recorded_ids:
            self.logger.debug(f"Ignoring duplicate alert {alert.alert_id}")
            return False

        self._recorded_ids.add(alert.alert_id)
        self.history_tracker.add_alert(alert)

        self._cancel_expiry()
        self._current_alert = alert
        self._expiry_handle = self.scheduler.call_later(self.dwell_seconds, self._expire, alert)

        self.notify(alert)
        return True

    def notify(self, alert: SuspiciousAlert) -> None:
        """Fan an alert out to handlers and callbacks; failures are logged only."""
        if self.cooldown.should_suppress(alert, self.scheduler.time()):
            self.logger.info(f"Notification suppressed for {alert.type.value} alert {alert.alert_id}")
            return

        for handler in self.handlers:
            try:
                handler.handle_alert(alert)
            except Exception as e:
                self.logger.error(f"Error in alert handler {type(handler).__name__}: {e}")

        for callback in self.notification_callbacks:
            try:
                callback(alert)
            except Exception as e:
                self.logger.error(f"Error in notification callback: {e}")

    def dismiss_current(self) -> bool:
        """Remove the transient alert; history is untouched."""
        if self._current_alert is None:
            return False
        self._cancel_expiry()
        self._current_alert = None
        return True

    def _expire(self, alert: SuspiciousAlert) -> None:
        self._expiry_handle = None
        if self._current_alert is not alert:
            return
        self._current_alert = None
        for callback in self.expiry_callbacks:
            try:
                callback(alert)
            except Exception as e:
                self.logger.error(f"Error in expiry callback: {e}")

    def _cancel_expiry(self) -> None:
        if self._expiry_handle is not None:
            self._expiry_handle.cancel()
            self._expiry_handle = None

    def add_notification_callback(self, callback: Callable[[SuspiciousAlert], None]) -> None:
        self.notification_callbacks.append(callback)

    def remove_notification_callback(self, callback: Callable[[SuspiciousAlert], None]) -> None:
        if callback in self.notification_callbacks:
            self.notification_callbacks.remove(callback)

    def get_alert_history(self, limit: Optional[int] = None, severity: Optional[str] = None) -> List[SuspiciousAlert]:
        return self.history_tracker.get_alert_history(limit, severity)

    def indicator(self, is_connected: bool) -> PreviewIndicator:
        return indicator_for(self._current_alert, is_connected)

    def clear_history(self) -> int:
        """Clear history and the transient slot; used when the exam session ends."""
        self._cancel_expiry()
        self._current_alert = None
        self._recorded_ids.clear()
        self.cooldown.reset()
        count = self.history_tracker.clear_history()
        self.logger.info(f"Cleared {count} alerts from history")
        return count

    def get_alert_statistics(self) -> Dict[str, Any]:
        """Get summary statistics for dashboards."""
        by_severity = self.history_tracker.count_by_severity()
        return {
            'total_alerts': len(self.history_tracker),
            'high_priority': by_severity[AlertSeverity.HIGH.value],
            'alerts_by_severity': by_severity,
            'alerts_by_type': self.history_tracker.count_by_type(),
            'suppressed_notifications': self.cooldown.suppressed_count,
            'current_alert': self._current_alert.to_dict() if self._current_alert else None,
        }
