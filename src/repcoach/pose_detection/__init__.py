"""
Pose detection adapters producing engine Frames.
"""

from .base_detector import BasePoseDetector

__all__ = ['BasePoseDetector']
