import logging
from typing import List, Optional, Tuple

import cv2
import numpy as np

from .base_detector import BasePoseDetector, PoseEstimatorUnavailable
from ..exercise_analysis.pose_utils import Keypoint

logger = logging.getLogger("repcoach.pose_detection")

# MediaPipe Pose landmark index for each COCO keypoint, in COCO order
COCO_FROM_MEDIAPIPE = (
    0,   # nose
    2,   # left_eye
    5,   # right_eye
    7,   # left_ear
    8,   # right_ear
    11,  # left_shoulder
    12,  # right_shoulder
    13,  # left_elbow
    14,  # right_elbow
    15,  # left_wrist
    16,  # right_wrist
    23,  # left_hip
    24,  # right_hip
    25,  # left_knee
    26,  # right_knee
    27,  # left_ankle
    28,  # right_ankle
)


class MediaPipePoseDetector(BasePoseDetector):
    """MediaPipe implementation of pose detection, reduced to the COCO-17 layout."""

    def __init__(self, min_detection_confidence: float = 0.5, min_tracking_confidence: float = 0.5, model_complexity: int = 1):
        """
        Initialize the MediaPipe pose detector.

        Args:
            min_detection_confidence: Minimum confidence for pose detection
            min_tracking_confidence: Minimum confidence for pose tracking
            model_complexity: Pose landmark model complexity (0, 1 or 2)
        """
        try:
            import mediapipe as mp
            self.mp_pose = mp.solutions.pose
            self.pose = self.mp_pose.Pose(
                static_image_mode=False,
                model_complexity=model_complexity,
                min_detection_confidence=min_detection_confidence,
                min_tracking_confidence=min_tracking_confidence
            )
        except Exception as e:
            raise PoseEstimatorUnavailable(f"Could not initialize MediaPipe Pose: {e}") from e
        logger.info("MediaPipe pose model loaded")

    def detect(self, frame: np.ndarray) -> Tuple[bool, Optional[List[Keypoint]]]:
        height, width = frame.shape[:2]
        frame_rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        results = self.pose.process(frame_rgb)

        if not results.pose_landmarks:
            return False, None

        landmarks = results.pose_landmarks.landmark
        skeleton = [
            Keypoint(landmarks[idx].x * width, landmarks[idx].y * height, landmarks[idx].visibility)
            for idx in COCO_FROM_MEDIAPIPE
        ]
        return True, skeleton

    def close(self) -> None:
        self.pose.close()
