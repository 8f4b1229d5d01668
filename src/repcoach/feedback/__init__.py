"""
Form feedback: frame debouncing and spoken cues.
"""

from .debouncer import FeedbackDebouncer, FeedbackView

__all__ = ['FeedbackDebouncer', 'FeedbackView']
