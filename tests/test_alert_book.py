"""
tests/test_alert_book.py
────────────────────────
Tests for the shared alert list.
"""
import pytest

from socket_sentinel.policy.alert_book import AlertBook
from socket_sentinel.telemetry.models import Alert, AlertCategory, AlertSeverity


@pytest.fixture
def alerts(now):
    return [
        Alert.create(AlertCategory.HIGH_POWER, AlertSeverity.WARNING, "high", now),
        Alert.create(AlertCategory.AUTO_BALANCE, AlertSeverity.INFO, "balance", now, socket_id=2),
    ]


class TestAlertBook:
    def test_starts_empty(self):
        book = AlertBook()
        assert book.alerts == []
        assert book.active_count == 0

    def test_replace(self, alerts):
        book = AlertBook()
        book.replace(alerts)
        assert book.alerts == alerts
        assert book.active_count == 2

    def test_alerts_returns_a_copy(self, alerts):
        book = AlertBook(alerts)
        book.alerts.clear()
        assert len(book.alerts) == 2

    def test_clear(self, alerts):
        book = AlertBook(alerts)
        assert book.clear(alerts[0].id) is True
        assert book.alerts == alerts[1:]

    def test_clear_unknown(self, alerts):
        book = AlertBook(alerts)
        assert book.clear("missing") is False
        assert len(book.alerts) == 2

    def test_clear_all(self, alerts):
        book = AlertBook(alerts)
        book.clear_all()
        assert book.alerts == []

    def test_acknowledge(self, alerts):
        book = AlertBook(alerts)
        assert book.acknowledge(alerts[1].id) is True
        assert book.active_count == 1
        assert book.alerts[1].acknowledged is True
        assert book.alerts[1].id == alerts[1].id

    def test_acknowledge_unknown(self, alerts):
        assert AlertBook(alerts).acknowledge("missing") is False

    def test_update(self, alerts):
        book = AlertBook(alerts[:1])
        stored = book.update(lambda current: alerts[1:] + current)
        assert stored == [alerts[1], alerts[0]]
        assert book.alerts == stored

    def test_update_keeps_alert_cleared_meanwhile(self, alerts):
        book = AlertBook(alerts)

        def evaluate(current):
            book.clear(alerts[0].id)
            return current

        assert book.update(evaluate) == alerts[1:]
        assert book.alerts == alerts[1:]

    def test_update_keeps_new_alerts_after_clear_all(self, alerts):
        book = AlertBook(alerts[:1])

        def evaluate(current):
            book.clear_all()
            return alerts[1:] + current

        assert book.update(evaluate) == alerts[1:]

    def test_update_keeps_acknowledgement_made_meanwhile(self, alerts):
        book = AlertBook(alerts)

        def evaluate(current):
            book.acknowledge(alerts[0].id)
            return current

        book.update(evaluate)
        assert book.alerts[0].acknowledged is True
        assert book.active_count == 1
