"""
Exercise analysis package: keypoint smoothing, joint geometry and rep counting.
"""

from .base_analyzer import BaseExerciseAnalyzer, ExerciseState, UserLevel
from .config_utils import ConfigError, ExerciseConfig, load_exercise_config
from .pose_utils import KEYPOINT_NAMES, Keypoint, calculate_angle, vertical_lean
from .session import ExerciseSession, RepRecord, RepState, SessionPhase
from .stability import StabilityAnalyzer
from .state_machine import ExerciseStateMachine, FrameMetrics

__all__ = [
    'BaseExerciseAnalyzer',
    'ExerciseState',
    'UserLevel',
    'ConfigError',
    'ExerciseConfig',
    'load_exercise_config',
    'KEYPOINT_NAMES',
    'Keypoint',
    'calculate_angle',
    'vertical_lean',
    'ExerciseSession',
    'RepRecord',
    'RepState',
    'SessionPhase',
    'StabilityAnalyzer',
    'ExerciseStateMachine',
    'FrameMetrics',
]
