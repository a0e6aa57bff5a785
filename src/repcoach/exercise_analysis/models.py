"""
models.py - Immutable value types shared by every stage of the engine.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

NUM_LANDMARKS = 33  # MediaPipe BlazePose full-body scheme


@dataclass(frozen=True)
class Landmark:
    """A single tracked body keypoint in normalized image space."""
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0

    @classmethod
    def from_any(cls, value: Any) -> "Landmark":
        """
        Build a Landmark from a sequence, a mapping or an attribute object.

        Accepts ``[x, y]``, ``[x, y, z]``, ``[x, y, z, visibility]``,
        ``{"x": .., "y": .., ...}`` or anything exposing ``.x``/``.y``
        (e.g. a MediaPipe NormalizedLandmark).
        """
        if isinstance(value, Landmark):
            return value
        if isinstance(value, dict):
            return cls(
                float(value["x"]),
                float(value["y"]),
                float(value.get("z", 0.0)),
                float(value.get("visibility", 1.0)),
            )
        if hasattr(value, "x") and hasattr(value, "y"):
            return cls(
                float(value.x),
                float(value.y),
                float(getattr(value, "z", 0.0)),
                float(getattr(value, "visibility", 1.0)),
            )
        coords = list(value)
        if len(coords) < 2:
            raise ValueError(f"Landmark needs at least x and y, got {coords!r}")
        z = float(coords[2]) if len(coords) > 2 else 0.0
        visibility = float(coords[3]) if len(coords) > 3 else 1.0
        return cls(float(coords[0]), float(coords[1]), z, visibility)


@dataclass(frozen=True)
class Frame:
    """One complete snapshot of all landmarks at a capture time (seconds)."""
    landmarks: Tuple[Landmark, ...]
    timestamp: float

    @classmethod
    def from_landmarks(cls, landmarks: Iterable[Any], timestamp: Optional[float] = None) -> "Frame":
        """
        Build a Frame from any iterable of landmark-like values.

        Missing trailing joints are padded with invisible landmarks so the
        frame always has NUM_LANDMARKS entries.

        Args:
            landmarks: Iterable of landmark-like values indexed by joint id
            timestamp: Capture time in seconds, defaults to the wall clock

        Returns:
            Frame instance
        """
        points = [Landmark.from_any(lm) for lm in landmarks]
        if len(points) < NUM_LANDMARKS:
            points.extend(Landmark(0.0, 0.0, 0.0, 0.0) for _ in range(NUM_LANDMARKS - len(points)))
        return cls(tuple(points), time.time() if timestamp is None else float(timestamp))

    def __len__(self) -> int:
        return len(self.landmarks)

    def __getitem__(self, index: int) -> Landmark:
        return self.landmarks[index]


class FeedbackKind(Enum):
    """Severity of a feedback event, used by the UI to pick colours."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    DANGER = "danger"


@dataclass(frozen=True)
class FeedbackEvent:
    """User-facing result of one frame-processing call."""
    kind: FeedbackKind
    message: str
    should_speak: bool
    rep_count_delta: int  # 0 or 1
    rep_count: int = 0
    phase: str = ""
    safety_edge: Optional[str] = None  # "enter", "clear" or None
    low_confidence: bool = False


@dataclass(frozen=True)
class MetricReading:
    """Raw, smoothed and classified value of one metric for one frame."""
    name: str
    raw: float
    value: float
    zone: str
    valid: bool  # zone is one of the metric's valid zones
    joints: Tuple[int, ...]
    side: Optional[str] = None
    side_values: Dict[str, Optional[float]] = field(default_factory=dict)
    side_smoothed: Dict[str, Optional[float]] = field(default_factory=dict)  # per-side smoothed values
    reliable: bool = True  # False when the raw value was substituted
    warmed_up: bool = True  # False until the first valid raw sample


@dataclass(frozen=True)
class OverlayMetric:
    """What the renderer needs to draw one metric on the skeleton."""
    name: str
    joints: Tuple[int, ...]
    value: float
    valid: bool


@dataclass(frozen=True)
class SessionSummary:
    """Counters reported when a Session is stopped."""
    exercise: str
    rep_count: int
    phase: str
    duration: float
    safety_violations: int
    early_breaks: int
    debounced_reps: int
    withheld_reps: int
