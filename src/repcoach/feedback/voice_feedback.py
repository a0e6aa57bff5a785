import logging
import queue
import threading
from typing import Optional

import pyttsx3

from ..exercise_analysis.models import FeedbackEvent

logger = logging.getLogger(__name__)


class VoiceFeedback:
    """Speaks feedback events through pyttsx3 on a background thread."""

    def __init__(self, rate: int = 150, volume: float = 1.0, voice: Optional[str] = None):
        """
        Initialize the voice feedback system.

        Args:
            rate: Speech rate (words per minute)
            volume: Speech volume (0.0 to 1.0)
            voice: Optional pyttsx3 voice id
        """
        self.engine = pyttsx3.init()
        self.engine.setProperty('rate', rate)
        self.engine.setProperty('volume', volume)
        if voice:
            self.engine.setProperty('voice', voice)

        self._tts_queue = queue.Queue()
        self._tts_thread = threading.Thread(target=self._tts_worker, daemon=True)
        self._tts_thread.start()

    def handle(self, event: FeedbackEvent) -> bool:
        """
        Voice an event if the dispatcher flagged it for speech.

        Returns:
            True when the message was queued
        """
        if not event.should_speak or not event.message:
            return False
        self.speak(event.message)
        return True

    def speak(self, message: str) -> None:
        """
        Queue the given message to be spoken by the background TTS thread.
        Fire-and-forget: never waits for speech to finish.

        Args:
            message: Message to speak
        """
        # Drop whatever is still waiting so speech never lags behind the user
        while True:
            try:
                self._tts_queue.get_nowait()
            except queue.Empty:
                break
        self._tts_queue.put(message)

    def _tts_worker(self):
        while True:
            msg = self._tts_queue.get()
            if msg is None:
                break  # clean shutdown
            try:
                self.engine.say(msg)
                self.engine.runAndWait()
            except RuntimeError as e:
                logger.warning(f"Speech error for {msg!r}: {e}")

    def stop(self) -> None:
        """Stop the worker thread after the current utterance."""
        self._tts_queue.put(None)
        self._tts_thread.join(timeout=2)
