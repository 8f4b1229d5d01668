from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .pose_utils import KEYPOINT_INDEX, Keypoint
from ..feedback.debouncer import FeedbackView

if TYPE_CHECKING:
    from ..results.aggregator import ResultsRecord
    from .session import RepRecord


class UserLevel(Enum):
    """Enum representing different user experience levels."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


Point = Tuple[float, float]


@dataclass(frozen=True)
class DrawPoint:
    x: float
    y: float
    color: str


@dataclass(frozen=True)
class DrawLine:
    start: Point
    end: Point
    color: str
    thickness: int = 4


@dataclass(frozen=True)
class Arrow:
    """Instructional arrow the renderer draws over the body."""
    start: Point
    end: Point
    color: str
    label: Optional[str] = None


@dataclass(frozen=True)
class Highlight:
    """Transient visual state, e.g. flashing a counter after a rep."""
    target: str  # "correct_counter", "incorrect_counter", "completion_message"
    color: str
    expires_at: float
    text: Optional[str] = None


@dataclass
class ExerciseState:
    """Everything the renderer and other sinks need for one frame."""
    name: str
    phase: str  # "waiting", "counting", "finished"
    rep_state: str  # "up", "down"
    rep_count: int
    correct_reps: int
    incorrect_reps: int
    is_correct_form: bool
    violations: List[str]
    angles: Dict[str, float]
    confidence: float  # Mean confidence of the required joints in this frame
    side: Optional[str] = None
    hold_progress: float = 0.0
    countdown_remaining: Optional[int] = None
    counters_visible: bool = False
    feedback: List[FeedbackView] = field(default_factory=list)
    new_feedback: List[FeedbackView] = field(default_factory=list)
    points: List[DrawPoint] = field(default_factory=list)
    connections: List[DrawLine] = field(default_factory=list)
    emphasis: List[DrawLine] = field(default_factory=list)
    arrows: List[Arrow] = field(default_factory=list)
    highlights: List[Highlight] = field(default_factory=list)
    warning: Optional[str] = None
    rep_event: Optional["RepRecord"] = None
    results: Optional["ResultsRecord"] = None
    analysis_reliable: bool = True  # Flag indicating if the analysis is reliable
    error_message: Optional[str] = None  # Optional error message if analysis fails
    user_level: UserLevel = UserLevel.BEGINNER


class BaseExerciseAnalyzer(ABC):
    """Base class for exercise analysis implementations."""

    def __init__(self, user_level: UserLevel = UserLevel.BEGINNER):
        """
        Initialize the analyzer with configuration parameters.

        Args:
            user_level: User's experience level
        """
        self.user_level = user_level

    @abstractmethod
    def analyze_frame(self, skeleton: Optional[Sequence[Keypoint]], timestamp: Optional[float] = None) -> ExerciseState:
        """
        Analyze a single frame of exercise performance.

        Args:
            skeleton: The 17 keypoints of the first detected person, or None
                when nobody was detected
            timestamp: Frame time in seconds; the analyzer's clock is used
                when omitted

        Returns:
            ExerciseState object containing analysis results
        """
        pass

    @abstractmethod
    def get_exercise_name(self) -> str:
        """Get the name of the exercise being analyzed."""
        pass

    @abstractmethod
    def get_required_landmarks(self) -> List[str]:
        """Get the list of joints required for this exercise."""
        pass

    @abstractmethod
    def reset_session(self) -> None:
        """Discard all session state, including the cumulative totals."""
        pass

    def calculate_confidence(self, skeleton: Sequence[Keypoint]) -> float:
        """
        Calculate confidence score for the detection by averaging the
        confidence of the required joints.

        Returns:
            Confidence score between 0 and 1 (0: not visible, 1: fully visible)
        """
        required = self.get_required_landmarks()
        if not required:
            return 0.0
        return float(np.mean([skeleton[KEYPOINT_INDEX[name]].confidence for name in required]))

    def validate_inputs(self, skeleton: Optional[Sequence[Keypoint]], min_visibility: float, max_missing: int) -> Tuple[bool, Optional[str]]:
        """
        Check that enough required joints are visible to analyze the frame.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not skeleton:
            return False, "No pose detected"
        if len(skeleton) != len(KEYPOINT_INDEX):
            return False, f"Expected {len(KEYPOINT_INDEX)} keypoints, got {len(skeleton)}"
        missing = [
            name for name in self.get_required_landmarks()
            if skeleton[KEYPOINT_INDEX[name]].confidence <= min_visibility
        ]
        if len(missing) > max_missing:
            return False, f"Missing required landmarks: {', '.join(missing)}"
        return True, None
