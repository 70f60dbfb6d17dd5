"""
tests/test_synthetic.py
───────────────────────
Tests for the synthetic telemetry generator.
"""
from datetime import timedelta

from socket_sentinel.telemetry.models import Config
from socket_sentinel.telemetry.synthetic import (
    CURRENT_RANGE,
    SOCKET_POWER_RANGES,
    SYNTHETIC_SOURCE_ADDRESS,
    VOLTAGE_RANGE,
    SyntheticDataGenerator,
)


class TestGenerateSnapshot:
    def test_three_sockets(self, generator):
        snapshot = generator.generate_snapshot()
        assert [s.id for s in snapshot.sockets] == [1, 2, 3]
        assert [s.name for s in snapshot.sockets] == ["Socket 1", "Socket 2", "Socket 3"]

    def test_readings_in_range(self, generator):
        for _ in range(20):
            for socket in generator.generate_snapshot(history_count=0).sockets:
                assert VOLTAGE_RANGE[0] <= socket.voltage <= VOLTAGE_RANGE[1]
                assert CURRENT_RANGE[0] <= socket.current <= CURRENT_RANGE[1]
                assert socket.power > 0

    def test_total_is_powered_draw(self, generator):
        for _ in range(20):
            snapshot = generator.generate_snapshot(history_count=0)
            expected = sum(s.power for s in snapshot.sockets if s.relay_on)
            assert abs(snapshot.status.total_power - expected) < 0.01

    def test_status(self, generator, now):
        status = generator.generate_snapshot().status
        assert status.is_connected is True
        assert status.is_isolated is False
        assert status.last_updated == now
        assert status.source_address == SYNTHETIC_SOURCE_ADDRESS

    def test_config_passed_through(self, generator):
        config = Config(high_power_threshold=42)
        assert generator.generate_snapshot(config).config == config

    def test_reproducible(self, clock):
        first = SyntheticDataGenerator(seed=7, clock=clock).generate_snapshot()
        second = SyntheticDataGenerator(seed=7, clock=clock).generate_snapshot()
        assert first == second

    def test_different_seeds_differ(self, clock):
        first = SyntheticDataGenerator(seed=1, clock=clock).generate_snapshot()
        second = SyntheticDataGenerator(seed=2, clock=clock).generate_snapshot()
        assert first.sockets != second.sockets


class TestGenerateHistory:
    def test_one_sample_per_minute(self, generator, now):
        history = generator.generate_history(60)
        assert len(history) == 60
        assert history[-1].timestamp == now - timedelta(minutes=1)
        assert history[0].timestamp == now - timedelta(minutes=60)

    def test_samples_within_bands(self, generator):
        for sample in generator.generate_history(30):
            for power, (low, high) in zip(sample.per_socket, SOCKET_POWER_RANGES):
                assert low <= power <= high
            assert abs(sample.total_power - sum(sample.per_socket)) < 0.01

    def test_empty(self, generator):
        assert generator.generate_history(0) == ()
