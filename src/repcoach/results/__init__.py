"""
Session results: scoring, history and exports.
"""

from .aggregator import ResultsRecord, build_results_record, calculate_performance_score
from .storage import SessionHistoryStore, export_results

__all__ = [
    'ResultsRecord',
    'build_results_record',
    'calculate_performance_score',
    'SessionHistoryStore',
    'export_results',
]
