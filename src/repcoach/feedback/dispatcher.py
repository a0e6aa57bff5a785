"""
dispatcher.py - Turns one state-machine step into a rate-limited FeedbackEvent.
"""
import logging
from typing import TYPE_CHECKING, Dict, Optional

from ..exercise_analysis.models import FeedbackEvent, FeedbackKind
from ..exercise_analysis.profile import ExerciseProfile, MessageTemplate

if TYPE_CHECKING:
    from ..exercise_analysis.session import StepResult

logger = logging.getLogger(__name__)


class _TemplateValues(dict):
    """Leaves unknown placeholders untouched instead of failing."""

    def __missing__(self, key):
        return "{" + key + "}"


class FeedbackDispatcher:
    """Feedback selection and speech rate limiting for one Session."""

    def __init__(self, profile: ExerciseProfile, speech_silence_ms: Optional[float] = None):
        """
        Initialize the dispatcher.

        Args:
            profile: Profile providing message templates
            speech_silence_ms: Minimum time before the same text is voiced again,
                defaults to the profile's setting
        """
        self.profile = profile
        self.speech_silence_ms = profile.speech_silence_ms if speech_silence_ms is None else speech_silence_ms
        self._previous_message: Optional[str] = None
        self._last_spoken: Dict[str, float] = {}

    def reset(self) -> None:
        self._previous_message = None
        self._last_spoken.clear()

    def dispatch(self, step: "StepResult") -> FeedbackEvent:
        """
        Render the most specific applicable message for this step.

        Priority: safety violation > rep / hold events > phase guidance > idle.
        """
        template = self._select(step)
        message = self._render(template.message, step)
        ongoing_violation = step.violation is not None and step.safety_edge != "enter"
        should_speak = template.speak and not ongoing_violation and self._may_speak(message, step.timestamp)
        self._previous_message = message
        return FeedbackEvent(
            kind=FeedbackKind(template.kind),
            message=message,
            should_speak=should_speak,
            rep_count_delta=step.rep_delta,
            rep_count=step.rep_count,
            phase=step.phase,
            safety_edge=step.safety_edge,
            low_confidence=step.low_confidence or step.insufficient_data,
        )

    def _select(self, step: "StepResult") -> MessageTemplate:
        messages = self.profile.messages
        if step.insufficient_data:
            return messages["insufficient_data"]
        if step.violation is not None:
            if step.safety_edge == "enter":
                return MessageTemplate(step.violation.message, kind="danger")
            return MessageTemplate(step.violation.message, kind="warning", speak=False)
        if step.safety_edge == "clear":
            return messages["safety_cleared"]
        if step.rep_delta:
            if step.transition is not None and step.transition.message is not None:
                return step.transition.message
            return messages["rep"]
        if step.rep_note:
            return messages[step.rep_note]
        if step.broken_hold is not None and step.broken_hold.early_break_message is not None:
            return step.broken_hold.early_break_message
        if step.transition is not None and step.transition.message is not None:
            return step.transition.message
        if step.low_confidence:
            return messages["low_confidence"]
        zones = step.zones
        for template in self.profile.phase_guidance.get(step.phase, ()):
            if template.when.holds(zones):
                return template
        return messages["idle"]

    def _render(self, text: str, step: "StepResult") -> str:
        values = _TemplateValues(reps=step.rep_count, phase=step.phase, exercise=step.exercise)
        for name, reading in step.readings.items():
            values[name] = int(round(reading.value))
        try:
            return text.format_map(values)
        except (ValueError, IndexError) as e:
            logger.warning(f"Could not render message template {text!r}: {e}")
            return text

    def _may_speak(self, message: str, now: float) -> bool:
        if not message:
            return False
        self._prune(now)
        last = self._last_spoken.get(message)
        changed = message != self._previous_message
        if changed or last is None or (now - last) * 1000.0 >= self.speech_silence_ms:
            self._last_spoken[message] = now
            return True
        return False

    def _prune(self, now: float) -> None:
        """Forget texts whose silence interval has elapsed."""
        expired = [text for text, spoken_at in self._last_spoken.items()
                   if (now - spoken_at) * 1000.0 >= self.speech_silence_ms]
        for text in expired:
            del self._last_spoken[text]
