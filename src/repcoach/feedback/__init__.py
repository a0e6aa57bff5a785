"""
Feedback package: message selection and speech output.
"""

from .dispatcher import FeedbackDispatcher

__all__ = ['FeedbackDispatcher']
