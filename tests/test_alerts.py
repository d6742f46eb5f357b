"""
Tests for the alert aggregator, history and preview indicator.
"""

from proctoring_engine.alerts import (
    AlertAggregator,
    AlertHistoryTracker,
    NotificationCooldown,
    PreviewIndicator,
    indicator_for,
)
from proctoring_engine.interfaces import AlertHandler
from proctoring_engine.models import AlertType, SuspiciousAlert


def make_alert(alert_type=AlertType.NO_FACE, alert_id=None):
    alert = SuspiciousAlert(type=alert_type, message=f"{alert_type.value} alert")
    if alert_id:
        alert.alert_id = alert_id
    return alert


class RecordingHandler(AlertHandler):
    def __init__(self):
        self.alerts = []

    def handle_alert(self, alert):
        self.alerts.append(alert)
        return True


class ExplodingHandler(AlertHandler):
    def handle_alert(self, alert):
        raise RuntimeError("audio context denied")


class TestTransientSlot:

    def test_history_is_append_only_and_slot_is_last_write_wins(self, scheduler):
        aggregator = AlertAggregator(scheduler=scheduler, dwell_seconds=5.0)
        first, second, third = make_alert(), make_alert(AlertType.FACE_MISMATCH), make_alert(AlertType.ERROR)

        aggregator.record(first)
        scheduler.advance(2)
        aggregator.record(second)
        assert aggregator.current_alert is second

        scheduler.advance(4)
        aggregator.record(third)

        assert aggregator.get_alert_history() == [first, second, third]
        assert aggregator.current_alert is third

    def test_alert_expires_after_dwell(self, scheduler):
        aggregator = AlertAggregator(scheduler=scheduler, dwell_seconds=5.0)
        expired = []
        aggregator.expiry_callbacks.append(expired.append)
        alert = make_alert()

        aggregator.record(alert)
        scheduler.advance(4.9)
        assert aggregator.current_alert is alert

        scheduler.advance(0.1)
        assert aggregator.current_alert is None
        assert expired == [alert]
        assert aggregator.get_alert_history() == [alert]

    def test_new_alert_restarts_dwell_clock(self, scheduler):
        aggregator = AlertAggregator(scheduler=scheduler, dwell_seconds=5.0)
        aggregator.record(make_alert())
        scheduler.advance(4)
        latest = make_alert(AlertType.MULTIPLE_FACES)
        aggregator.record(latest)

        scheduler.advance(4)
        assert aggregator.current_alert is latest
        scheduler.advance(1)
        assert aggregator.current_alert is None

    def test_dismiss_keeps_history(self, scheduler):
        aggregator = AlertAggregator(scheduler=scheduler)
        alert = make_alert()
        aggregator.record(alert)

        assert aggregator.dismiss_current() is True
        assert aggregator.current_alert is None
        assert aggregator.get_alert_history() == [alert]
        assert aggregator.dismiss_current() is False
        assert scheduler.pending == []


class TestNotifications:

    def test_handlers_and_callbacks_receive_alert(self, scheduler):
        handler = RecordingHandler()
        aggregator = AlertAggregator(scheduler=scheduler, handlers=[handler])
        seen = []
        aggregator.add_notification_callback(seen.append)

        alert = make_alert()
        aggregator.record(alert)

        assert handler.alerts == [alert]
        assert seen == [alert]

    def test_failing_handler_is_isolated(self, scheduler):
        handler = RecordingHandler()
        aggregator = AlertAggregator(scheduler=scheduler, handlers=[ExplodingHandler(), handler])

        assert aggregator.record(make_alert()) is True
        assert len(handler.alerts) == 1

    def test_duplicate_alert_id_is_ignored(self, scheduler):
        handler = RecordingHandler()
        aggregator = AlertAggregator(scheduler=scheduler, handlers=[handler])
        alert = make_alert(alert_id="same")

        assert aggregator.record(alert) is True
        assert aggregator.record(alert) is False
        assert len(aggregator.get_alert_history()) == 1
        assert len(handler.alerts) == 1

    def test_cooldown_suppresses_notifications_only(self, scheduler):
        handler = RecordingHandler()
        aggregator = AlertAggregator(scheduler=scheduler, handlers=[handler], notification_cooldown_seconds=10)

        aggregator.record(make_alert())
        scheduler.advance(3)
        aggregator.record(make_alert())
        aggregator.record(make_alert(AlertType.FACE_MISMATCH))
        scheduler.advance(10)
        aggregator.record(make_alert())

        assert len(aggregator.get_alert_history()) == 4
        assert [a.type for a in handler.alerts] == [
            AlertType.NO_FACE, AlertType.FACE_MISMATCH, AlertType.NO_FACE
        ]
        assert aggregator.get_alert_statistics()['suppressed_notifications'] == 1

    def test_zero_window_never_suppresses(self):
        cooldown = NotificationCooldown(0)
        alert = make_alert()
        assert not cooldown.should_suppress(alert, 0.0)
        assert not cooldown.should_suppress(alert, 0.0)


class TestIndicator:

    def test_indicator_by_severity_and_connection(self):
        assert indicator_for(make_alert(AlertType.NO_FACE), True) == PreviewIndicator('red', True)
        assert indicator_for(make_alert(AlertType.MULTIPLE_FACES), False) == PreviewIndicator('red', True)
        assert indicator_for(make_alert(AlertType.FACE_MISMATCH), True) == PreviewIndicator('yellow', False)
        assert indicator_for(None, True) == PreviewIndicator('green', False)
        assert indicator_for(None, False) == PreviewIndicator('gray', False)

    def test_indicator_returns_to_connection_state_after_expiry(self, scheduler):
        aggregator = AlertAggregator(scheduler=scheduler, dwell_seconds=5.0)
        aggregator.record(make_alert(AlertType.ERROR))
        assert aggregator.indicator(True).color == 'yellow'
        scheduler.advance(5)
        assert aggregator.indicator(True).color == 'green'


class TestHistory:

    def test_filters_and_counts(self):
        tracker = AlertHistoryTracker()
        for alert_type in (AlertType.NO_FACE, AlertType.FACE_MISMATCH, AlertType.MULTIPLE_FACES, AlertType.ERROR):
            tracker.add_alert(make_alert(alert_type))

        assert len(tracker.get_alert_history(severity='high')) == 2
        assert len(tracker.get_alert_history(severity='medium')) == 2
        assert tracker.get_alert_history(severity='low') == []
        assert len(tracker.get_alert_history(severity='all')) == 4
        assert [a.type for a in tracker.get_alert_history(limit=1)] == [AlertType.ERROR]
        assert tracker.count_by_severity() == {'low': 0, 'medium': 2, 'high': 2}
        assert tracker.count_by_type()['no_face'] == 1

    def test_clear_history_resets_everything(self, scheduler):
        aggregator = AlertAggregator(scheduler=scheduler)
        alert = make_alert(alert_id="x")
        aggregator.record(alert)

        assert aggregator.clear_history() == 1
        assert aggregator.current_alert is None
        assert aggregator.get_alert_history() == []
        assert scheduler.pending == []
        # the id may be recorded again in a new exam session
        assert aggregator.record(alert) is True

    def test_statistics(self, scheduler):
        aggregator = AlertAggregator(scheduler=scheduler)
        aggregator.record(make_alert(AlertType.NO_FACE))
        aggregator.record(make_alert(AlertType.FACE_MISMATCH))

        stats = aggregator.get_alert_statistics()
        assert stats['total_alerts'] == 2
        assert stats['high_priority'] == 1
        assert stats['alerts_by_type'] == {'no_face': 1, 'face_mismatch': 1}
        assert stats['current_alert']['type'] == 'face_mismatch'
