from typing import List, Optional

import cv2
import mediapipe as mp
import numpy as np

from ..exercise_analysis.geometry import LANDMARK_NAMES
from ..exercise_analysis.models import Frame
from .base_detector import BasePoseDetector # Abstract base class


class MediaPipePoseDetector(BasePoseDetector):
    """MediaPipe implementation of pose detection."""

    def __init__(self, min_detection_confidence: float = 0.5, min_tracking_confidence: float = 0.5,
                 model_complexity: int = 1):
        """
        Initialize the MediaPipe pose detector.

        Args:
            min_detection_confidence: Minimum confidence for pose detection
            min_tracking_confidence: Minimum confidence for pose tracking
            model_complexity: 0, 1 or 2, higher is slower and more accurate
        """
        self.mp_pose = mp.solutions.pose
        self.pose = self.mp_pose.Pose(
            static_image_mode=False,
            model_complexity=model_complexity,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence
        )

    def detect(self, image: np.ndarray, timestamp: Optional[float] = None) -> Optional[Frame]:
        """
        Detect pose landmarks using MediaPipe.

        Args:
            image: Input image as numpy array (BGR)
            timestamp: Capture time in seconds, defaults to the wall clock

        Returns:
            Frame of 33 landmarks, or None when no pose was detected
        """
        # Convert BGR to RGB
        image_rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        results = self.pose.process(image_rgb)

        if not results.pose_landmarks:
            return None
        return Frame.from_landmarks(results.pose_landmarks.landmark, timestamp)

    def get_landmark_names(self) -> List[str]:
        """Get the list of landmark names provided by MediaPipe."""
        return list(LANDMARK_NAMES)

    def close(self) -> None:
        self.pose.close()
