"""
Exercise analysis package: geometry, smoothing, zone classification and the
profile-driven phase state machine.
"""

from .models import FeedbackEvent, FeedbackKind, Frame, Landmark, MetricReading, OverlayMetric, SessionSummary
from .profile import ExerciseProfile, ProfileValidationError
from .config_utils import ProfileNotFoundError, list_profiles, load_profile
from .session import Session, SessionStoppedError, StepResult

__all__ = [
    'ExerciseProfile',
    'FeedbackEvent',
    'FeedbackKind',
    'Frame',
    'Landmark',
    'MetricReading',
    'OverlayMetric',
    'ProfileNotFoundError',
    'ProfileValidationError',
    'Session',
    'SessionStoppedError',
    'SessionSummary',
    'StepResult',
    'list_profiles',
    'load_profile',
]
