"""
Rep Coach: rep counting and form feedback from 2D pose keypoints.
"""

from .exercise_analysis.base_analyzer import ExerciseState, UserLevel
from .exercise_analysis.rep_analyzer import (
    EXERCISE_ANALYZER_REGISTRY,
    RepCountingAnalyzer,
    create_analyzer,
)

__version__ = "0.1.0"

__all__ = [
    'ExerciseState',
    'UserLevel',
    'EXERCISE_ANALYZER_REGISTRY',
    'RepCountingAnalyzer',
    'create_analyzer',
]
