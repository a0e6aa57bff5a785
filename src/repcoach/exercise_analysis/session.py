"""
session.py - Profile-driven phase state machine.

A Session owns every piece of mutable state for one exercise attempt (metric
buffers, phase, hold timer, rep counter, safety flag) and is advanced only by
``process_frame``. All timing comes from frame timestamps; there are no
background timers.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from ..feedback.dispatcher import FeedbackDispatcher
from .metrics import Metric
from .models import FeedbackEvent, Frame, MetricReading, OverlayMetric, SessionSummary
from .profile import FREEZE, ExerciseProfile, Transition

# --- Logger Setup ---
logger = logging.getLogger("PhaseSession")
if not logger.hasHandlers():
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s %(levelname)s %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


class SessionStoppedError(RuntimeError):
    """Raised when frames are fed to a Session after ``stop()``."""


@dataclass(frozen=True)
class Violation:
    rule: str
    message: str


@dataclass
class StepResult:
    """Everything one frame's state-machine step hands to the dispatcher."""
    exercise: str
    timestamp: float
    phase: str
    previous_phase: str
    rep_count: int
    readings: Dict[str, MetricReading] = field(default_factory=dict)
    transition: Optional[Transition] = None
    rep_delta: int = 0
    rep_note: Optional[str] = None  # "too_fast" or "withheld"
    broken_hold: Optional[Transition] = None
    violation: Optional[Violation] = None
    safety_edge: Optional[str] = None  # "enter" or "clear"
    insufficient_data: bool = False
    low_confidence: bool = False

    @property
    def zones(self) -> Dict[str, str]:
        return {name: r.zone for name, r in self.readings.items()}


class Session:
    """Runs one exercise attempt against an ExerciseProfile."""

    def __init__(self, profile: ExerciseProfile, dispatcher: Optional[FeedbackDispatcher] = None):
        """
        Initialize the session.

        Args:
            profile: Validated exercise profile
            dispatcher: Feedback dispatcher, one is built from the profile if omitted
        """
        if not isinstance(profile, ExerciseProfile):
            raise TypeError(f"Session needs an ExerciseProfile, got {type(profile).__name__}")
        self.profile = profile
        self.dispatcher = dispatcher or FeedbackDispatcher(profile)
        self._metrics = [Metric(spec) for spec in profile.metrics]
        self._stopped = False
        self._reset_state()

    def _reset_state(self) -> None:
        self.phase = self.profile.initial_phase
        self.phase_entered_at: Optional[float] = None
        self.hold_started_at: Optional[float] = None
        self._hold_edge: Optional[Transition] = None
        self.rep_count = 0
        self.last_rep_at: Optional[float] = None
        self._violation: Optional[Violation] = None
        self._started_at: Optional[float] = None
        self._last_timestamp: Optional[float] = None
        self.last_event: Optional[FeedbackEvent] = None
        self.readings: Dict[str, MetricReading] = {}
        self.safety_violations = 0
        self.early_breaks = 0
        self.debounced_reps = 0
        self.withheld_reps = 0

    # --- public API ---

    @property
    def in_violation(self) -> bool:
        return self._violation is not None

    @property
    def holding(self) -> Optional[Transition]:
        """Edge whose hold timer is running, if any."""
        return self._hold_edge

    def process_frame(self, frame: Union[Frame, Sequence[Any]], timestamp: Optional[float] = None) -> FeedbackEvent:
        """
        Advance the state machine by one frame.

        Args:
            frame: A Frame, or raw landmarks to wrap into one
            timestamp: Capture time in seconds when ``frame`` is raw landmarks

        Returns:
            The FeedbackEvent for this frame (never None)
        """
        if self._stopped:
            raise SessionStoppedError(f"Session for '{self.profile.name}' has been stopped")
        if not isinstance(frame, Frame):
            frame = Frame.from_landmarks(frame, timestamp)
        now = self._clock(frame.timestamp)

        self.readings = {metric.name: metric.update(frame) for metric in self._metrics}
        step = StepResult(
            exercise=self.profile.display_name,
            timestamp=now,
            phase=self.phase,
            previous_phase=self.phase,
            rep_count=self.rep_count,
            readings=self.readings,
        )
        if not all(r.warmed_up for r in self.readings.values()):
            # Nothing trustworthy to classify yet
            step.insufficient_data = True
            return self._emit(step)
        step.low_confidence = not all(r.reliable for r in self.readings.values())

        violation = self._check_safety(step.zones)
        if violation is not None and self._violation is None:
            step.safety_edge = "enter"
            self.safety_violations += 1
            logger.info("[%s] Safety violation '%s' in phase %s", self.profile.name, violation.rule, self.phase)
        elif violation is None and self._violation is not None:
            step.safety_edge = "clear"
            logger.info("[%s] Safety violation '%s' cleared", self.profile.name, self._violation.rule)
        self._violation = violation
        step.violation = violation

        if violation is not None and (step.safety_edge == "enter" or self.profile.safety_policy == FREEZE):
            self._cancel_hold()
        if violation is None or self.profile.safety_policy != FREEZE:
            self._advance(step, now, withhold_reps=violation is not None)

        step.phase = self.phase
        step.rep_count = self.rep_count
        return self._emit(step)

    def overlay(self) -> List[OverlayMetric]:
        """Current per-metric values with their zone validity, for the renderer."""
        return [
            OverlayMetric(name=r.name, joints=r.joints, value=r.value, valid=r.valid)
            for r in self.readings.values()
        ]

    def reset(self) -> None:
        """Start the attempt over: counters, phase, timers and smoothing buffers."""
        for metric in self._metrics:
            metric.reset()
        self.dispatcher.reset()
        self._reset_state()
        logger.info("[%s] Session reset", self.profile.name)

    def stop(self) -> SessionSummary:
        """End the session and report its counters."""
        self._stopped = True
        started = self._started_at if self._started_at is not None else 0.0
        ended = self._last_timestamp if self._last_timestamp is not None else started
        summary = SessionSummary(
            exercise=self.profile.name,
            rep_count=self.rep_count,
            phase=self.phase,
            duration=max(0.0, ended - started),
            safety_violations=self.safety_violations,
            early_breaks=self.early_breaks,
            debounced_reps=self.debounced_reps,
            withheld_reps=self.withheld_reps,
        )
        logger.info("[%s] Session stopped: %d reps in %.1fs", self.profile.name, summary.rep_count, summary.duration)
        return summary

    # --- internals ---

    def _clock(self, timestamp: float) -> float:
        """Monotonic view of frame timestamps; stale or bogus stamps are clamped."""
        if self._last_timestamp is None:
            now = timestamp if math.isfinite(timestamp) else 0.0
            self._started_at = now
        elif not math.isfinite(timestamp) or timestamp < self._last_timestamp:
            logger.debug("[%s] Non-monotonic timestamp %r clamped to %r",
                         self.profile.name, timestamp, self._last_timestamp)
            now = self._last_timestamp
        else:
            now = timestamp
        if self.phase_entered_at is None:
            self.phase_entered_at = now
        self._last_timestamp = now
        return now

    def _check_safety(self, zones: Dict[str, str]) -> Optional[Violation]:
        for rule in self.profile.safety_rules:
            if rule.violated(zones, self.phase):
                return Violation(rule.name, rule.message)
        symmetry = self.profile.symmetry
        if symmetry is not None:
            reading = self.readings.get(symmetry.metric)
            if reading is not None and reading.reliable and symmetry.violated(reading.side_smoothed):
                return Violation(symmetry.name, symmetry.message)
        return None

    def _cancel_hold(self) -> None:
        self.hold_started_at = None
        self._hold_edge = None

    def _advance(self, step: StepResult, now: float, withhold_reps: bool) -> None:
        zones = step.zones
        candidate = next((edge for edge in self.profile.outgoing(self.phase) if edge.condition.holds(zones)), None)

        if self._hold_edge is not None and candidate is not self._hold_edge:
            # Condition broke (or another edge took priority) before the hold elapsed
            step.broken_hold = self._hold_edge
            self.early_breaks += 1
            logger.debug("[%s] Hold on %s -> %s broken after %.0f ms", self.profile.name,
                         self._hold_edge.source, self._hold_edge.target, (now - self.hold_started_at) * 1000.0)
            self._cancel_hold()

        if candidate is None:
            return
        if candidate.hold_ms > 0:
            if self._hold_edge is None:
                self._hold_edge = candidate
                self.hold_started_at = now
            if (now - self.hold_started_at) * 1000.0 < candidate.hold_ms:
                return
            if step.low_confidence:
                # substituted values may keep a hold alive but never complete it
                return
        self._commit(candidate, step, now, withhold_reps)

    def _commit(self, edge: Transition, step: StepResult, now: float, withhold_reps: bool) -> None:
        step.transition = edge
        self.phase = edge.target
        self.phase_entered_at = now
        self._cancel_hold()
        logger.debug("[%s] Phase %s -> %s", self.profile.name, edge.source, edge.target)

        if not edge.rep_completing:
            return
        if withhold_reps:
            self.withheld_reps += 1
            step.rep_note = "withheld"
        elif self.last_rep_at is not None and (now - self.last_rep_at) * 1000.0 < self.profile.debounce_ms:
            self.debounced_reps += 1
            step.rep_note = "too_fast"
            logger.debug("[%s] Rep inside debounce window ignored", self.profile.name)
        else:
            self.rep_count += 1
            self.last_rep_at = now
            step.rep_delta = 1
            logger.debug("[%s] Rep %d counted", self.profile.name, self.rep_count)

    def _emit(self, step: StepResult) -> FeedbackEvent:
        self.last_event = self.dispatcher.dispatch(step)
        return self.last_event
