"""Short-horizon forecast of the total power draw.

The forecast is intentionally simple: the recent power history is smoothed
with a simple moving average, a straight line is fitted through the smoothed
series with ordinary least squares, and the line is extrapolated one point
per minute over the requested horizon. A small uniform jitter keeps the
forecast from looking artificially flat on the dashboard.

`adjust` then corrects a forecast with the latest measured total, giving the
correction full weight on the first point and fading it out linearly.
"""

from datetime import timedelta
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from socket_sentinel.telemetry.models import Prediction, TelemetrySample

HISTORY_WINDOW = 60  # Number of most recent samples considered
MAX_SMOOTHING_WINDOW = 10
JITTER_W = 25.0
FORECAST_STEP = timedelta(minutes=1)


def forecast(
    history: Sequence[TelemetrySample],
    horizon_hours: float = 1.0,
    rng: Optional[np.random.Generator] = None,
) -> List[Prediction]:
    """Forecasts the total power over the next `horizon_hours`.

    Args:
        history: Power samples, oldest first.
        horizon_hours: Length of the forecast. One point is produced per minute.
        rng: Random generator used for the jitter (a seeded one makes the
             output reproducible).

    Returns:
        `int(horizon_hours * 60)` predictions, one minute apart starting one
        minute after the last sample, all non-negative. Empty when the history
        holds fewer than 2 samples.
    """
    if len(history) < 2:
        return []

    recent = list(history)[-HISTORY_WINDOW:]
    totals = pd.Series([sample.total_power for sample in recent], dtype=float)
    window = max(1, min(MAX_SMOOTHING_WINDOW, len(totals) // 2))
    smoothed = totals.rolling(window=window).mean().dropna().to_numpy()
    if len(smoothed) < 2:
        return []

    positions = np.arange(len(smoothed), dtype=float)
    slope, intercept = np.polyfit(positions, smoothed, deg=1)

    count = int(horizon_hours * 60)
    if count <= 0:
        return []

    rng = rng if rng is not None else np.random.default_rng()
    steps = np.arange(1, count + 1)
    # Point i is placed at x = n + i for n smoothed values
    trend = intercept + slope * (len(smoothed) + steps)
    values = np.maximum(0.0, trend + rng.uniform(-JITTER_W, JITTER_W, size=count))

    last_timestamp = recent[-1].timestamp
    return [
        Prediction(
            timestamp=last_timestamp + FORECAST_STEP * int(step),
            predicted_power=round(float(value), 2),
        )
        for step, value in zip(steps, values)
    ]


def adjust(predictions: Sequence[Prediction], actual_power: float) -> List[Prediction]:
    """Scales a forecast by the error observed on its first point.

    With `error_factor = actual_power / predictions[0].predicted_power`, point
    `i` of `n` is multiplied by `1 + (error_factor - 1) * (1 - i / n)`, so the
    first point matches the measurement and later points drift back to the
    raw forecast. Only the first point records `actual_power`.

    Returns:
        New `Prediction` objects; the input is left untouched.
    """
    if not predictions:
        return []

    first = predictions[0].predicted_power
    error_factor = actual_power / first if first else 1.0

    count = len(predictions)
    weights = np.maximum(0.0, 1.0 - np.arange(count) / count)
    factors = 1.0 + (error_factor - 1.0) * weights

    return [
        prediction.model_copy(
            update={
                "predicted_power": prediction.predicted_power * float(factor),
                "actual_power": actual_power if index == 0 else None,
            }
        )
        for index, (prediction, factor) in enumerate(zip(predictions, factors))
    ]
