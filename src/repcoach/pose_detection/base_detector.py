from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import numpy as np

from ..exercise_analysis.pose_utils import Keypoint


class PoseEstimatorUnavailable(RuntimeError):
    """Raised when the pose estimation backend cannot be initialized."""


class BasePoseDetector(ABC):
    """Base class for pose detection implementations."""

    @abstractmethod
    def detect(self, frame: np.ndarray) -> Tuple[bool, Optional[List[Keypoint]]]:
        """
        Detect the first person's keypoints in the given frame.

        Args:
            frame: Input frame as a BGR numpy array

        Returns:
            Tuple containing:
            - Boolean indicating if a person was detected
            - The 17 COCO keypoints in pixel coordinates (if successful) or None
        """
        pass

    def close(self) -> None:
        """Release model resources."""
