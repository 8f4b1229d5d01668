from .base_detector import BasePoseDetector, PoseEstimatorUnavailable

__all__ = ['BasePoseDetector', 'PoseEstimatorUnavailable']
