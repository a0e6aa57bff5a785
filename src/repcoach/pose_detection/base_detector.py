from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from ..exercise_analysis.models import Frame


class BasePoseDetector(ABC):
    """Base class for pose detection implementations."""

    @abstractmethod
    def detect(self, image: np.ndarray, timestamp: Optional[float] = None) -> Optional[Frame]:
        """
        Detect pose landmarks in the given image.

        Args:
            image: Input image as numpy array (BGR, as read by OpenCV)
            timestamp: Capture time in seconds, defaults to the wall clock

        Returns:
            Frame with one landmark per joint id, or None when no body was found
        """
        pass

    @abstractmethod
    def get_landmark_names(self) -> List[str]:
        """
        Get the list of landmark names that this detector provides.

        Returns:
            List of landmark names, index == joint id
        """
        pass

    def close(self) -> None:
        """Release model resources."""
