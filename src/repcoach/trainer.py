import logging
import time
from typing import Dict, List, Optional, Union

import cv2
import numpy as np

from .exercise_analysis.config_utils import load_profile
from .exercise_analysis.models import FeedbackEvent, FeedbackKind, Frame, OverlayMetric, SessionSummary
from .exercise_analysis.profile import ExerciseProfile
from .exercise_analysis.session import Session
from .pose_detection.base_detector import BasePoseDetector

logger = logging.getLogger(__name__)

WINDOW_NAME = "Exercise Coach"

# BGR colours
VALID_COLOR = (0, 200, 0)
INVALID_COLOR = (0, 0, 255)
KIND_COLORS = {
    FeedbackKind.INFO: (255, 255, 255),
    FeedbackKind.SUCCESS: (0, 200, 0),
    FeedbackKind.WARNING: (0, 200, 255),
    FeedbackKind.DANGER: (0, 0, 255),
}


def draw_overlay(image: np.ndarray, frame: Optional[Frame], overlay: List[OverlayMetric]) -> None:
    """
    Draw each metric's joint chain coloured by zone validity, with its value
    next to the middle joint.

    Args:
        image: BGR image to draw on (modified in place)
        frame: Frame the overlay was computed from
        overlay: Session.overlay() entries
    """
    if frame is None:
        return
    h, w = image.shape[:2]
    for item in overlay:
        color = VALID_COLOR if item.valid else INVALID_COLOR
        points = [(int(frame[i].x * w), int(frame[i].y * h)) for i in item.joints if i < len(frame)]
        for start, end in zip(points, points[1:]):
            cv2.line(image, start, end, color, 3)
        for point in points:
            cv2.circle(image, point, 5, color, -1)
        if points:
            anchor = points[len(points) // 2]
            cv2.putText(image, f"{item.value:.0f}", (anchor[0] + 8, anchor[1] - 8),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2)


def draw_status(image: np.ndarray, profile: ExerciseProfile, event: Optional[FeedbackEvent]) -> None:
    """Draw exercise name, phase, rep count and the current message."""
    cv2.putText(image, f"Exercise: {profile.display_name}", (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 0), 2)
    if event is None:
        return
    cv2.putText(image, f"Phase: {event.phase}", (10, 60), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 0), 2)
    cv2.putText(image, f"Reps: {event.rep_count}", (10, 90), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 0), 2)
    cv2.putText(image, event.message, (10, 120), cv2.FONT_HERSHEY_SIMPLEX, 0.6, KIND_COLORS[event.kind], 2)


class ExerciseTrainer:
    """Camera/video loop: detect pose, run the session, draw and speak feedback."""

    def __init__(self, profile: Union[str, ExerciseProfile], detector: Optional[BasePoseDetector] = None,
                 voice=None, show_window: bool = True):
        """
        Initialize the trainer.

        Args:
            profile: Bundled profile name, profile path or a loaded profile
            detector: Pose detector, MediaPipe is used when omitted
            voice: Object with ``handle(event)`` for speech output, or None for silence
            show_window: Whether to open an OpenCV window
        """
        self.profile = load_profile(profile) if isinstance(profile, str) else profile
        if detector is None:
            from .pose_detection.mediapipe_detector import MediaPipePoseDetector
            detector = MediaPipePoseDetector()
        self.pose_detector = detector
        self.voice = voice
        self.show_window = show_window
        self.session = Session(self.profile)
        self.last_event: Optional[FeedbackEvent] = None
        self.last_frame: Optional[Frame] = None
        self.cap = None
        self.is_running = False
        self._summary: Optional[SessionSummary] = None

    def process_image(self, image: np.ndarray, timestamp: Optional[float] = None) -> Dict:
        """
        Process a single image.

        Args:
            image: BGR image
            timestamp: Capture time in seconds, defaults to the wall clock

        Returns:
            Dictionary with the frame (or None), the feedback event and the overlay
        """
        timestamp = timestamp if timestamp is not None else time.time()
        frame = self.pose_detector.detect(image, timestamp)
        # No body found: feed an all-invisible frame so the engine degrades gracefully
        event = self.session.process_frame(frame if frame is not None else Frame.from_landmarks([], timestamp))
        if self.voice is not None:
            self.voice.handle(event)
        self.last_event = event
        self.last_frame = frame
        overlay = self.session.overlay() if frame is not None else []
        return {"frame": frame, "event": event, "overlay": overlay}

    def start(self, source: Union[int, str] = 0) -> SessionSummary:
        """
        Run until the stream ends or the user presses 'q'.

        Args:
            source: Camera device ID or video file path

        Returns:
            Summary of the session
        """
        self.cap = cv2.VideoCapture(source)
        if not self.cap.isOpened():
            raise RuntimeError(f"Failed to open video source {source!r}")
        self.is_running = True
        logger.info(f"Starting {self.profile.display_name} on source {source!r}")
        try:
            while self.is_running:
                ret, image = self.cap.read()
                if not ret:
                    break
                result = self.process_image(image)
                if self.show_window:
                    draw_overlay(image, result["frame"], result["overlay"])
                    draw_status(image, self.profile, result["event"])
                    cv2.imshow(WINDOW_NAME, image)
                    if cv2.waitKey(1) & 0xFF == ord('q'):
                        break
        except KeyboardInterrupt:
            logger.info("KeyboardInterrupt received, stopping")
        finally:
            summary = self.stop()
        return summary

    def stop(self) -> SessionSummary:
        """Stop the trainer, release resources and report the session counters."""
        if self._summary is not None:
            return self._summary
        self.is_running = False
        if self.cap is not None:
            self.cap.release()
            self.cap = None
        if self.show_window:
            cv2.destroyAllWindows()
        self.pose_detector.close()
        self._summary = self.session.stop()
        return self._summary
