"""
This package contains the power forecast.

## Modules

- [forecaster.py](forecaster.py): Moving-average + linear-trend forecast of the total power, and its correction with the latest measurement.
"""
