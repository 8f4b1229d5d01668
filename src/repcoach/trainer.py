import logging
import os
import time
from typing import Optional

import cv2
import numpy as np

from .exercise_analysis.base_analyzer import ExerciseState, UserLevel
from .exercise_analysis.rep_analyzer import create_analyzer
from .exercise_analysis.session import SessionTrace
from .feedback.voice_feedback import VoiceFeedback
from .pose_detection.base_detector import BasePoseDetector
from .rendering.opencv_renderer import OpenCVRenderer, summary_frame
from .results.aggregator import ResultsRecord
from .results.storage import SessionHistoryStore, export_results

logger = logging.getLogger("repcoach.trainer")


class Trainer:
    """Main class: pulls frames, runs detection and analysis, draws and speaks."""

    def __init__(
        self,
        exercise_type: str = "tricep_pushdown",
        user_level: UserLevel = UserLevel.BEGINNER,
        output_dir: str = "results",
        history_file: str = "session_history.json",
        voice: bool = True,
        display: bool = True,
        target_fps: int = 30,
        detector: BasePoseDetector = None,
    ):
        """
        Initialize the trainer.

        Args:
            exercise_type: Registered exercise name
            user_level: User's experience level
            output_dir: Directory for result exports
            history_file: JSON file holding the recent session history
            voice: Speak feedback through the system TTS engine
            display: Show the OpenCV preview window
            target_fps: Upper bound on processed frames per second
            detector: Pose detector; MediaPipe is used when omitted
        """
        self.exercise_analyzer = create_analyzer(exercise_type, user_level)
        if detector is None:
            from .pose_detection.mediapipe_detector import MediaPipePoseDetector
            detector = MediaPipePoseDetector()
        self.pose_detector = detector
        self.voice_feedback = VoiceFeedback() if voice else None
        self.renderer = OpenCVRenderer(self.exercise_analyzer.config.issue_labels) if display else None

        self.history = SessionHistoryStore(history_file)
        self.output_dir = output_dir
        self.target_fps = target_fps
        self.exercise_analyzer.add_completion_callback(self._on_session_complete)

        self.cap = None
        self.is_running = False
        self._released = False
        # outcome of persisting the last finished session
        self.saved_to_history: Optional[bool] = None
        self.export_path = None

    def start(self, camera_id: int = 0) -> None:
        """
        Start the trainer with the specified camera.

        Args:
            camera_id: Camera device ID
        """
        cap = cv2.VideoCapture(camera_id)
        if not cap.isOpened():
            raise RuntimeError("Failed to open camera")
        self._run(cap)

    def run_video(self, video_path: str) -> None:
        """Analyze a recorded video; frame times come from the file's frame rate."""
        if not os.path.isfile(video_path):
            raise FileNotFoundError(f"Video file not found: {video_path}")
        cap = cv2.VideoCapture(video_path)
        if not cap.isOpened():
            raise RuntimeError(f"Failed to open video: {video_path}")
        fps = cap.get(cv2.CAP_PROP_FPS) or self.target_fps
        self._run(cap, video_fps=fps)

    def _run(self, cap, video_fps: Optional[float] = None) -> None:
        self.cap = cap
        self.is_running = True
        frame_interval = 1.0 / self.target_fps
        frame_index = 0
        try:
            while self.is_running:
                started = time.monotonic()
                ret, frame = self.cap.read()
                if not ret:
                    break
                timestamp = frame_index / video_fps if video_fps else None
                frame_index += 1

                state = self.process_frame(frame, timestamp)
                if self.renderer is not None and self.renderer.show(frame) == ord('q'):
                    break
                if self._completion_shown(state):
                    break

                if video_fps is None:
                    elapsed = time.monotonic() - started
                    if elapsed < frame_interval:
                        time.sleep(frame_interval - elapsed)
        except KeyboardInterrupt:
            logger.info("KeyboardInterrupt received. Exiting gracefully...")
        finally:
            self.stop()
        logger.info(f"Processed {frame_index} frames")

    def process_frame(self, frame: np.ndarray, timestamp: Optional[float] = None) -> ExerciseState:
        """
        Process a single frame.

        Args:
            frame: Input frame, drawn on in place when display is enabled
            timestamp: Frame time in seconds; wall clock when omitted

        Returns:
            The analyzer's ExerciseState for this frame
        """
        success, skeleton = self.pose_detector.detect(frame)
        state = self.exercise_analyzer.analyze_frame(skeleton if success else None, timestamp)

        if self.voice_feedback is not None:
            self.voice_feedback.handle_state(state)
        if self.renderer is not None:
            self.renderer.draw(frame, state)
        return state

    def _completion_shown(self, state: ExerciseState) -> bool:
        """True once the session is over and its completion message has expired."""
        if not self.exercise_analyzer.is_finished:
            return False
        return not any(h.target == "completion_message" for h in state.highlights)

    def _on_session_complete(self, record: ResultsRecord, trace: SessionTrace) -> None:
        self.saved_to_history = self.history.save(record)
        if not self.saved_to_history:
            logger.warning(f"Session {record.session_id} was not added to the history at {self.history.path}")
        self.export_path = export_results(record, self.output_dir, self.exercise_analyzer.config.issue_labels, trace)
        if self.export_path is None:
            logger.warning(f"Results of session {record.session_id} were not exported to {self.output_dir}")

    @property
    def results_persisted(self) -> bool:
        """False when the last finished session could not be saved or exported."""
        if self.saved_to_history is None:
            return True
        return self.saved_to_history and self.export_path is not None

    def stop(self, summary_seconds: float = 3.0) -> None:
        """Stop the trainer, finalize a started session and release resources."""
        self.is_running = False
        analyzer = self.exercise_analyzer
        if analyzer.session.total_reps > 0:
            analyzer.finalize("teardown")
        if self._released:
            return
        self._released = True

        if self.cap is not None:
            self.cap.release()
            self.cap = None
        if self.renderer is not None:
            if analyzer.results is not None:
                self.renderer.show(summary_frame(analyzer.results, analyzer.config.issue_labels))
                cv2.waitKey(int(summary_seconds * 1000))
            self.renderer.close()
        if self.voice_feedback is not None:
            self.voice_feedback.shutdown()
        self.pose_detector.close()
