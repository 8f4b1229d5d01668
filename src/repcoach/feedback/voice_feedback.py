import logging
import queue
import threading
import time
from typing import Callable, Optional

import pyttsx3

from ..exercise_analysis.base_analyzer import ExerciseState

logger = logging.getLogger("repcoach.voice")


class VoiceFeedback:
    """Voice feedback system for exercise form correction."""

    def __init__(self, rate: int = 150, volume: float = 1.0, cooldown: float = 4.0, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the voice feedback system.

        Args:
            rate: Speech rate (words per minute)
            volume: Speech volume (0.0 to 1.0)
            cooldown: Minimum seconds between two form cues
            clock: Time source for the cooldown
        """
        self.engine = pyttsx3.init()
        self.engine.setProperty('rate', rate)
        self.engine.setProperty('volume', volume)

        self._tts_queue = queue.Queue()
        self._tts_thread = threading.Thread(target=self._tts_worker, daemon=True)
        self._tts_thread.start()

        self._clock = clock
        self.cooldown = cooldown
        self.last_feedback_time = float("-inf")
        self._last_feedback_message = None
        self._counting_announced = False

    def generate_feedback(self, exercise_state: ExerciseState) -> Optional[str]:
        """
        Pick the message to speak for this frame, if any.

        Rep counts, the session start and the completion are always spoken;
        form cues only once they become active and outside the cooldown.

        Args:
            exercise_state: Current state of the exercise (ExerciseState object)

        Returns:
            Feedback message if any, None otherwise
        """
        if exercise_state.results is not None:
            return f"Great work! {exercise_state.results.correct_reps} of {exercise_state.results.total_reps} reps correct."

        if exercise_state.phase == "counting" and not self._counting_announced:
            self._counting_announced = True
            return "Go!"
        if exercise_state.phase == "waiting":
            self._counting_announced = False

        if exercise_state.rep_event is not None:
            return str(exercise_state.rep_count)

        cues = [view.message for view in exercise_state.new_feedback]
        if exercise_state.warning:
            cues.append(exercise_state.warning)
        if not cues:
            return None

        current_time = self._clock()
        if current_time - self.last_feedback_time < self.cooldown:
            return None
        feedback = cues[0]
        if feedback == self._last_feedback_message:
            return None
        self._last_feedback_message = feedback
        self.last_feedback_time = current_time
        return feedback

    def handle_state(self, exercise_state: ExerciseState) -> Optional[str]:
        feedback = self.generate_feedback(exercise_state)
        if feedback:
            self.speak(feedback)
        return feedback

    def speak(self, message: str) -> None:
        """
        Queue the given message to be spoken by the background TTS thread.

        Args:
            message: Message to speak
        """
        self._tts_queue.put(message)

    def shutdown(self) -> None:
        self._tts_queue.put(None)

    def _tts_worker(self):
        while True:
            msg = self._tts_queue.get()
            if msg is None:
                break
            try:
                self.engine.say(msg)
                self.engine.runAndWait()
            except RuntimeError as e:
                logger.warning(f"Speech output failed: {e}")
