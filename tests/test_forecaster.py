"""
tests/test_forecaster.py
────────────────────────
Tests for the power forecast and its correction.
"""
from datetime import timedelta

import numpy as np
import pytest

from conftest import make_history
from socket_sentinel.forecasting.forecaster import JITTER_W, adjust, forecast
from socket_sentinel.telemetry.models import Prediction


class TestForecast:
    def test_not_enough_history(self, now, rng):
        assert forecast((), rng=rng) == []
        assert forecast(make_history(now, [500.0]), rng=rng) == []

    def test_one_point_per_minute(self, now, rng):
        predictions = forecast(make_history(now, [500.0] * 20), horizon_hours=1, rng=rng)
        assert len(predictions) == 60
        assert predictions[0].timestamp == now + timedelta(minutes=1)
        assert predictions[-1].timestamp == now + timedelta(minutes=60)

    def test_horizon_in_hours(self, now, rng):
        assert len(forecast(make_history(now, [500.0] * 20), horizon_hours=0.5, rng=rng)) == 30
        assert len(forecast(make_history(now, [500.0] * 20), horizon_hours=2, rng=rng)) == 120

    def test_flat_history_stays_within_jitter(self, now, rng):
        predictions = forecast(make_history(now, [500.0] * 30), rng=rng)
        for prediction in predictions:
            assert 500.0 - JITTER_W <= prediction.predicted_power <= 500.0 + JITTER_W
            assert prediction.actual_power is None

    def test_linear_trend_extrapolated(self, now, rng):
        totals = [100.0 + 10.0 * i for i in range(20)]
        predictions = forecast(make_history(now, totals), rng=rng)
        # Eleven smoothed points from 145 W, +10 W per minute; point i lies at x = 11 + i
        assert predictions[0].predicted_power == pytest.approx(265.0, abs=JITTER_W)
        assert predictions[-1].predicted_power == pytest.approx(855.0, abs=JITTER_W)

    def test_never_negative(self, now, rng):
        totals = [max(0.0, 400.0 - 40.0 * i) for i in range(12)]
        predictions = forecast(make_history(now, totals), rng=rng)
        assert predictions
        assert all(p.predicted_power >= 0.0 for p in predictions)

    def test_only_last_hour_used(self, now, rng):
        old = [5000.0] * 100
        recent = [500.0] * 60
        predictions = forecast(make_history(now, old + recent), rng=rng)
        assert all(p.predicted_power <= 500.0 + JITTER_W for p in predictions)

    def test_two_samples(self, now, rng):
        assert len(forecast(make_history(now, [100.0, 200.0]), rng=rng)) == 60

    def test_reproducible(self, now):
        history = make_history(now, [300.0 + i for i in range(30)])
        first = forecast(history, rng=np.random.default_rng(7))
        second = forecast(history, rng=np.random.default_rng(7))
        assert first == second


class TestAdjust:
    @pytest.fixture
    def flat(self, now):
        return [
            Prediction(timestamp=now + timedelta(minutes=i + 1), predicted_power=600.0)
            for i in range(60)
        ]

    def test_empty(self):
        assert adjust([], 500.0) == []

    def test_first_point_matches_measurement(self, flat):
        adjusted = adjust(flat, 660.0)
        assert adjusted[0].predicted_power == pytest.approx(660.0)
        assert adjusted[0].actual_power == 660.0
        assert all(p.actual_power is None for p in adjusted[1:])

    def test_correction_fades_linearly(self, flat):
        adjusted = adjust(flat, 660.0)
        assert adjusted[30].predicted_power == pytest.approx(630.0)
        assert adjusted[-1].predicted_power == pytest.approx(600.0 * (1 + 0.1 / 60))

    def test_input_untouched(self, flat):
        adjust(flat, 660.0)
        assert all(p.predicted_power == 600.0 for p in flat)
        assert all(p.actual_power is None for p in flat)

    def test_matching_measurement_is_identity(self, flat):
        adjusted = adjust(flat, 600.0)
        assert [p.predicted_power for p in adjusted] == pytest.approx([600.0] * 60)

    def test_zero_first_prediction(self, now):
        predictions = [
            Prediction(timestamp=now, predicted_power=0.0),
            Prediction(timestamp=now + timedelta(minutes=1), predicted_power=100.0),
        ]
        adjusted = adjust(predictions, 250.0)
        assert [p.predicted_power for p in adjusted] == [0.0, 100.0]
        assert adjusted[0].actual_power == 250.0

    def test_timestamps_preserved(self, flat):
        assert [p.timestamp for p in adjust(flat, 700.0)] == [p.timestamp for p in flat]
