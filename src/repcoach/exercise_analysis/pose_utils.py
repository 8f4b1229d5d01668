"""
pose_utils.py - Shared utilities for keypoints, smoothing, and geometry.
"""
import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger("repcoach.pose_utils")

# --- Keypoint Layout ---
KEYPOINT_NAMES = [
    "nose", "left_eye", "right_eye", "left_ear", "right_ear",
    "left_shoulder", "right_shoulder", "left_elbow", "right_elbow",
    "left_wrist", "right_wrist", "left_hip", "right_hip",
    "left_knee", "right_knee", "left_ankle", "right_ankle"
]
KEYPOINT_INDEX = {name: idx for idx, name in enumerate(KEYPOINT_NAMES)}

SKELETON_CONNECTIONS = [
    ("nose", "left_eye"), ("nose", "right_eye"),
    ("left_eye", "left_ear"), ("right_eye", "right_ear"),
    ("left_shoulder", "right_shoulder"), ("left_shoulder", "left_hip"),
    ("right_shoulder", "right_hip"), ("left_hip", "right_hip"),
    ("left_shoulder", "left_elbow"), ("left_elbow", "left_wrist"),
    ("right_shoulder", "right_elbow"), ("right_elbow", "right_wrist"),
    ("left_hip", "left_knee"), ("left_knee", "left_ankle"),
    ("right_hip", "right_knee"), ("right_knee", "right_ankle")
]

VERTICAL_REFERENCE_LENGTH = 100.0  # pixels above the lower joint
DEGENERATE_EPSILON = 1e-6


@dataclass(frozen=True)
class Keypoint:
    """One detected joint in image coordinates."""
    x: float
    y: float
    confidence: float


Skeleton = List[Keypoint]


def joint(skeleton: Sequence[Keypoint], side: str, part: str) -> Keypoint:
    """Return ``{side}_{part}`` from the skeleton, e.g. joint(s, "right", "elbow")."""
    return skeleton[KEYPOINT_INDEX[f"{side}_{part}"]]


def is_visible(keypoint: Keypoint, threshold: float) -> bool:
    return keypoint.confidence > threshold


def midpoint(points: Sequence[Keypoint]) -> Tuple[float, float]:
    return (
        float(np.mean([p.x for p in points])),
        float(np.mean([p.y for p in points])),
    )


# --- Math & Geometry Utilities ---
def calculate_angle(a: Keypoint, b: Keypoint, c: Keypoint) -> Optional[float]:
    """
    Calculate the angle at ``b`` between the rays ``b->a`` and ``b->c``.

    Point ordering convention:
    - a: First point (e.g., shoulder for elbow angle)
    - b: Middle point (e.g., elbow for elbow angle)
    - c: Last point (e.g., wrist for elbow angle)

    Args:
        a: First point
        b: Vertex point - angle is calculated here
        c: Last point
    Returns:
        Angle in degrees within [0, 180], or None when either ray has
        zero length (coincident points).
    """
    ba = np.array([a.x - b.x, a.y - b.y], dtype=float)
    bc = np.array([c.x - b.x, c.y - b.y], dtype=float)
    norm_ba = np.linalg.norm(ba)
    norm_bc = np.linalg.norm(bc)
    if norm_ba < DEGENERATE_EPSILON or norm_bc < DEGENERATE_EPSILON:
        logger.warning(f"Degenerate angle: coincident points at ({b.x:.1f}, {b.y:.1f})")
        return None
    cosine_angle = np.clip(np.dot(ba, bc) / (norm_ba * norm_bc), -1.0, 1.0)
    return float(np.degrees(np.arccos(cosine_angle)))


def vertical_lean(upper: Keypoint, lower: Keypoint, side: str, forward: str = "lower") -> Optional[float]:
    """
    Angle between the ``lower->upper`` ray and a vertical ray above ``lower``.

    ``forward`` names the joint whose offset counts as leaning forward:
    "lower" for a limb hanging below its anchor (elbow under shoulder),
    "upper" for a segment standing on its base (shoulder over hip).
    The result is positive when that joint sits forward of the other one
    for the tracked side (to the right for the right side, to the left for
    the left side), negative when it sits behind.
    """
    vertical_point = Keypoint(lower.x, lower.y - VERTICAL_REFERENCE_LENGTH, lower.confidence)
    angle = calculate_angle(upper, lower, vertical_point)
    if angle is None:
        return None
    ahead, behind = (lower, upper) if forward == "lower" else (upper, lower)
    is_forward = ahead.x > behind.x if side == "right" else ahead.x < behind.x
    return angle if is_forward else -angle


def get_side_visibility(skeleton: Sequence[Keypoint], side: str, parts: Sequence[str]) -> float:
    return float(sum(joint(skeleton, side, part).confidence for part in parts))


def choose_side(skeleton: Sequence[Keypoint], parts: Sequence[str], previous: str = "right", tie_break: str = "previous") -> str:
    """
    Pick the body side whose ``parts`` have the higher summed confidence.

    An exact tie keeps ``previous`` when ``tie_break == "previous"`` and
    returns "right" otherwise.
    """
    left_visibility = get_side_visibility(skeleton, "left", parts)
    right_visibility = get_side_visibility(skeleton, "right", parts)
    if left_visibility > right_visibility:
        return "left"
    if right_visibility > left_visibility:
        return "right"
    return previous if tie_break == "previous" else "right"


# --- Smoothing ---
class LandmarkSmoother:
    """Exponential smoothing of joint positions, one state per joint index."""

    def __init__(self, factor: float = 0.5, visibility_threshold: float = 0.3):
        self.factor = factor
        self.visibility_threshold = visibility_threshold
        self._history: Dict[int, Tuple[float, float]] = {}

    def smooth_position(self, joint_id: int, position: Tuple[float, float]) -> Tuple[float, float]:
        previous = self._history.get(joint_id)
        if previous is None:
            self._history[joint_id] = position
            return position
        smoothed = (
            self.factor * position[0] + (1 - self.factor) * previous[0],
            self.factor * position[1] + (1 - self.factor) * previous[1],
        )
        self._history[joint_id] = smoothed
        return smoothed

    def smooth_skeleton(self, skeleton: Sequence[Keypoint]) -> Skeleton:
        smoothed = list(skeleton)
        for idx, keypoint in enumerate(skeleton):
            if is_visible(keypoint, self.visibility_threshold):
                x, y = self.smooth_position(idx, (keypoint.x, keypoint.y))
                smoothed[idx] = Keypoint(x, y, keypoint.confidence)
        return smoothed

    def reset(self) -> None:
        self._history.clear()


class AngleSmoother:
    """Moving average per angle kind that drops the extreme samples."""

    def __init__(self, window_size: int = 10):
        self.window_size = window_size
        self._history: Dict[str, Deque[float]] = {}

    @staticmethod
    def _average(values: Sequence[float]) -> float:
        if len(values) >= 4:
            trimmed = sorted(values)[1:-1]
            return float(np.mean(trimmed))
        return float(np.mean(values))

    def smooth_angle(self, kind: str, value: float) -> float:
        if kind not in self._history:
            self._history[kind] = deque(maxlen=self.window_size)
        self._history[kind].append(value)
        return self._average(self._history[kind])

    def current(self, kind: str) -> Optional[float]:
        history = self._history.get(kind)
        if not history:
            return None
        return self._average(history)

    def reset(self) -> None:
        self._history.clear()
