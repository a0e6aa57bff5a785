"""
metrics.py - Per-session metric runtime: extraction, side selection,
substitution of missing values, smoothing and classification.
"""
from typing import Dict, Optional, Tuple

import numpy as np

from .models import Frame, MetricReading
from .profile import MetricSpec
from .smoothing import make_smoother
from .zones import classify


class Metric:
    """Runtime state of one profile metric inside one Session."""

    def __init__(self, spec: MetricSpec):
        self.spec = spec
        self._smoother = self._make_smoother()
        # bilateral metrics also smooth each side on its own for the symmetry rule
        self._side_smoothers = {side: self._make_smoother() for side in ("left", "right")} if spec.bilateral else {}
        self._last_valid: Optional[float] = None
        self._last_side: Optional[str] = None if not spec.bilateral else self._default_side()
        self.last_reading: Optional[MetricReading] = None

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def warmed_up(self) -> bool:
        return self._last_valid is not None

    def reset(self) -> None:
        self._smoother.reset()
        for smoother in self._side_smoothers.values():
            smoother.reset()
        self._last_valid = None
        self._last_side = None if not self.spec.bilateral else self._default_side()
        self.last_reading = None

    def _make_smoother(self):
        smoothing = self.spec.smoothing
        return make_smoother(smoothing.method, smoothing.window, smoothing.alpha)

    def _default_side(self) -> str:
        return self.spec.side_selector if self.spec.side_selector in ("left", "right") else "right"

    def _select_side(self, frame: Frame, values: Dict[str, Optional[float]]) -> Optional[str]:
        """Pick the active side among sides with a valid raw value."""
        selector = self.spec.side_selector
        if selector in ("left", "right"):
            return selector if values[selector] is not None else None
        candidates = {side: v for side, v in values.items() if v is not None}
        if not candidates:
            return None
        if selector == "max":
            return max(candidates, key=candidates.get)
        if selector == "max_deviation":
            return max(candidates, key=lambda side: abs(candidates[side] - self.spec.neutral))
        if selector == "most_visible":
            return max(candidates, key=lambda side: self._side_visibility(frame, side))
        return min(candidates, key=candidates.get)

    def _side_visibility(self, frame: Frame, side: str) -> float:
        ids = self.spec.rules[side].joint_ids
        return float(np.mean([frame[i].visibility for i in ids if i < len(frame)] or [0.0]))

    def update(self, frame: Frame) -> MetricReading:
        """
        Consume one frame and return this metric's reading.

        Invalid geometry is absorbed: the last valid raw value is substituted
        (and fed to the smoother), or the neutral default is reported while no
        valid sample exists yet.
        """
        rules = self.spec.rules
        values = {
            side: rule.evaluate(frame, self.spec.min_visibility)
            for side, rule in rules.items()
        }
        side_smoothed = {}
        for side_name, smoother in self._side_smoothers.items():
            if values[side_name] is not None:
                smoother.update(values[side_name])
            side_smoothed[side_name] = smoother.value
        if self.spec.bilateral:
            side = self._select_side(frame, values)
        else:
            side = "center" if values["center"] is not None else None

        reliable = side is not None
        if reliable:
            raw = values[side]
            self._last_valid = raw
            self._last_side = side if self.spec.bilateral else None
            value = self._smoother.update(raw)
        elif self._last_valid is not None:
            raw = self._last_valid
            value = self._smoother.update(raw)
        else:
            raw = value = self.spec.neutral

        active = side if reliable else self._last_side
        if not self.spec.bilateral:
            active = None
        zone = classify(value, self.spec.bands)
        reading = MetricReading(
            name=self.spec.name,
            raw=raw,
            value=value,
            zone=zone,
            valid=zone in self.spec.valid_zones,
            joints=self._joints(active),
            side=active,
            side_values=dict(values) if self.spec.bilateral else {},
            side_smoothed=side_smoothed,
            reliable=reliable,
            warmed_up=self.warmed_up,
        )
        self.last_reading = reading
        return reading

    def _joints(self, side: Optional[str]) -> Tuple[int, ...]:
        rule = self.spec.rules[side] if side is not None else next(iter(self.spec.rules.values()))
        return rule.joint_ids
