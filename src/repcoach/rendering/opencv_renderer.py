from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from ..exercise_analysis.base_analyzer import ExerciseState
from ..results.aggregator import ResultsRecord

FONT = cv2.FONT_HERSHEY_SIMPLEX
WINDOW_NAME = "Rep Coach"

BGR = Tuple[int, int, int]


def hex_to_bgr(color: str) -> BGR:
    """'#RRGGBB' -> OpenCV (b, g, r)."""
    value = color.lstrip("#")
    r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    return b, g, r


def _pt(point) -> Tuple[int, int]:
    return int(round(point[0])), int(round(point[1]))


class OpenCVRenderer:
    """Draws an ExerciseState over the camera frame."""

    def __init__(self, issue_labels: Dict[str, str] = None, window_name: str = WINDOW_NAME):
        self.issue_labels = issue_labels or {}
        self.window_name = window_name

    def draw(self, frame: np.ndarray, state: ExerciseState) -> np.ndarray:
        self._draw_skeleton(frame, state)
        self._draw_arrows(frame, state)
        self._draw_feedback(frame, state)

        if state.phase == "waiting":
            self._draw_position_bar(frame, state)
        if state.counters_visible or state.phase == "finished":
            self._draw_counters(frame, state)
        if state.warning:
            self._text(frame, state.warning, (10, frame.shape[0] - 20), (0, 0, 255), 0.7)
        elif not state.analysis_reliable and state.error_message:
            self._text(frame, state.error_message, (10, frame.shape[0] - 20), (0, 0, 255), 0.6)

        for highlight in state.highlights:
            if highlight.target == "completion_message":
                self._draw_centered(frame, highlight.text or "Exercise Complete!", hex_to_bgr(highlight.color))
        return frame

    def show(self, frame: np.ndarray) -> int:
        """Display the frame; returns the pressed key code."""
        cv2.imshow(self.window_name, frame)
        return cv2.waitKey(1) & 0xFF

    def draw_results(self, frame: np.ndarray, record: ResultsRecord) -> np.ndarray:
        """Overlay the final summary on a dimmed frame."""
        overlay = np.zeros_like(frame)
        frame[:] = cv2.addWeighted(frame, 0.3, overlay, 0.7, 0)
        lines = [
            f"{record.workout_name} complete",
            f"Total reps: {record.total_reps}",
            f"Correct: {record.correct_reps}   Incorrect: {record.incorrect_reps}",
            f"Performance score: {record.performance_score}%",
        ]
        for kind, count in record.form_issues.items():
            if count:
                lines.append(f"{self.issue_labels.get(kind, kind)}: {count}")
        for kind, count in record.range_shortfalls.items():
            if count:
                lines.append(f"{self.issue_labels.get(kind, kind)}: {count} (range of motion)")
        for idx, line in enumerate(lines):
            self._text(frame, line, (40, 60 + idx * 35), (255, 255, 255), 0.8)
        return frame

    @staticmethod
    def close() -> None:
        cv2.destroyAllWindows()

    # --- helpers ---
    @staticmethod
    def _text(frame: np.ndarray, text: str, origin: Tuple[int, int], color: BGR, scale: float = 0.6, thickness: int = 2) -> None:
        cv2.putText(frame, text, origin, FONT, scale, color, thickness)

    def _draw_skeleton(self, frame: np.ndarray, state: ExerciseState) -> None:
        for line in state.connections:
            cv2.line(frame, _pt(line.start), _pt(line.end), hex_to_bgr(line.color), line.thickness)
        for line in state.emphasis:
            cv2.line(frame, _pt(line.start), _pt(line.end), hex_to_bgr(line.color), line.thickness)
        for point in state.points:
            cv2.circle(frame, _pt((point.x, point.y)), 5, hex_to_bgr(point.color), -1)

    def _draw_arrows(self, frame: np.ndarray, state: ExerciseState) -> None:
        for arrow in state.arrows:
            color = hex_to_bgr(arrow.color)
            cv2.arrowedLine(frame, _pt(arrow.start), _pt(arrow.end), color, 3, tipLength=0.3)
            if arrow.label:
                x, y = _pt(arrow.end)
                self._text(frame, arrow.label, (x + 10, y), color, 0.6)

    def _draw_feedback(self, frame: np.ndarray, state: ExerciseState) -> None:
        y = 30
        for view in state.feedback:
            overlay = frame.copy()
            self._text(overlay, view.message, (10, y), hex_to_bgr(view.color), 0.7)
            cv2.addWeighted(overlay, view.opacity, frame, 1 - view.opacity, 0, frame)
            y += 30

    def _draw_position_bar(self, frame: np.ndarray, state: ExerciseState) -> None:
        width = frame.shape[1]
        x0, y0, bar_w, bar_h = width - 230, 20, 200, 20
        cv2.rectangle(frame, (x0, y0), (x0 + bar_w, y0 + bar_h), (255, 255, 255), 2)
        filled = int(bar_w * state.hold_progress)
        if filled > 0:
            cv2.rectangle(frame, (x0, y0), (x0 + filled, y0 + bar_h), (0, 255, 0), -1)
        if state.countdown_remaining is not None:
            self._draw_centered(frame, f"Starting in {state.countdown_remaining}", (0, 255, 255))

    def _draw_counters(self, frame: np.ndarray, state: ExerciseState) -> None:
        colors = {"correct_counter": (0, 255, 0), "incorrect_counter": (0, 0, 255)}
        for highlight in state.highlights:
            if highlight.target in colors:
                colors[highlight.target] = hex_to_bgr(highlight.color)
        width = frame.shape[1]
        self._text(frame, f"Correct: {state.correct_reps}", (width - 220, 90), colors["correct_counter"], 0.8)
        self._text(frame, f"Incorrect: {state.incorrect_reps}", (width - 220, 125), colors["incorrect_counter"], 0.8)

    def _draw_centered(self, frame: np.ndarray, text: str, color: BGR, scale: float = 1.2) -> None:
        (text_w, text_h), _ = cv2.getTextSize(text, FONT, scale, 3)
        origin = ((frame.shape[1] - text_w) // 2, (frame.shape[0] + text_h) // 2)
        cv2.putText(frame, text, origin, FONT, scale, color, 3)


def blank_frame(width: int = 640, height: int = 480) -> np.ndarray:
    return np.zeros((height, width, 3), dtype=np.uint8)


def summary_frame(record: ResultsRecord, issue_labels: Optional[Dict[str, str]] = None) -> np.ndarray:
    """Standalone results screen shown after the session ends."""
    return OpenCVRenderer(issue_labels).draw_results(blank_frame(), record)
