"""
repcoach - repetition counting and form feedback driven by exercise profiles.
"""

# exercise_analysis must be imported before feedback (session -> dispatcher)
from .exercise_analysis import (
    ExerciseProfile,
    FeedbackEvent,
    FeedbackKind,
    Frame,
    Landmark,
    ProfileValidationError,
    Session,
    list_profiles,
    load_profile,
)
from .feedback import FeedbackDispatcher

__version__ = "0.1.0"

__all__ = [
    'ExerciseProfile',
    'FeedbackDispatcher',
    'FeedbackEvent',
    'FeedbackKind',
    'Frame',
    'Landmark',
    'ProfileValidationError',
    'Session',
    'list_profiles',
    'load_profile',
]
