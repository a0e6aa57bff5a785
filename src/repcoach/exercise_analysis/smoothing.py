"""
smoothing.py - Per-metric temporal smoothers.

Both smoothers return the first sample unsmoothed and never report a value
outside the [min, max] of the samples they have consumed.
"""
from collections import deque
from typing import Optional

import numpy as np

MOVING_AVERAGE = "moving_average"
EMA = "ema"
SMOOTHING_METHODS = (MOVING_AVERAGE, EMA)


class MovingAverage:
    """Arithmetic mean of the last ``window`` raw values."""

    def __init__(self, window: int = 5):
        if window < 1:
            raise ValueError(f"Smoothing window must be >= 1, got {window}")
        self.window = window
        self._buffer = deque(maxlen=window)

    @property
    def warmed_up(self) -> bool:
        return bool(self._buffer)

    @property
    def value(self) -> Optional[float]:
        if not self._buffer:
            return None
        mean = float(np.mean(self._buffer))
        return float(np.clip(mean, min(self._buffer), max(self._buffer)))

    def update(self, raw: float) -> float:
        self._buffer.append(float(raw))
        return self.value

    def reset(self) -> None:
        self._buffer.clear()


class ExponentialMovingAverage:
    """Recency-weighted average: value = alpha * raw + (1 - alpha) * value."""

    def __init__(self, alpha: float = 0.5):
        if not 0.0 < alpha <= 1.0:
            raise ValueError(f"EMA alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha
        self._value = None
        self._low = None
        self._high = None

    @property
    def warmed_up(self) -> bool:
        return self._value is not None

    @property
    def value(self) -> Optional[float]:
        return self._value

    def update(self, raw: float) -> float:
        raw = float(raw)
        if self._value is None:
            self._value = raw
            self._low = self._high = raw
            return raw
        self._low = min(self._low, raw)
        self._high = max(self._high, raw)
        blended = self.alpha * raw + (1.0 - self.alpha) * self._value
        self._value = float(np.clip(blended, self._low, self._high))
        return self._value

    def reset(self) -> None:
        self._value = None
        self._low = None
        self._high = None


def make_smoother(method: str = MOVING_AVERAGE, window: int = 5, alpha: float = 0.5):
    """Create a smoother from profile settings."""
    if method == MOVING_AVERAGE:
        return MovingAverage(window)
    if method == EMA:
        return ExponentialMovingAverage(alpha)
    raise ValueError(f"Unknown smoothing method {method!r}, expected one of {SMOOTHING_METHODS}")
