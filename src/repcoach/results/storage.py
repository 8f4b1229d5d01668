"""
Session persistence: a bounded JSON history and per-session export files.
"""

import json
import logging
import os
from pathlib import Path
from typing import List, Mapping, Optional

from .aggregator import ResultsRecord, format_text_report
from ..exercise_analysis.session import SessionTrace

logger = logging.getLogger("repcoach.storage")

DEFAULT_HISTORY_LIMIT = 20


class SessionHistoryStore:
    """Keeps the most recent sessions and the last one in a JSON file."""

    def __init__(self, path: str, limit: int = DEFAULT_HISTORY_LIMIT):
        self.path = Path(path)
        self.limit = limit

    def _read(self) -> dict:
        if not self.path.exists():
            return {"history": [], "last_session": None}
        with open(self.path, "r") as f:
            data = json.load(f)
        if not isinstance(data, dict) or not isinstance(data.get("history", []), list):
            raise ValueError(f"Unexpected session history layout in {self.path}")
        data.setdefault("history", [])
        data.setdefault("last_session", None)
        return data

    def load_history(self) -> List[ResultsRecord]:
        try:
            return [ResultsRecord.from_dict(item) for item in self._read()["history"]]
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Error loading session history from {self.path}: {e}")
            return []

    def last_session(self) -> Optional[ResultsRecord]:
        try:
            last = self._read()["last_session"]
        except (OSError, ValueError) as e:
            logger.error(f"Error loading session history from {self.path}: {e}")
            return None
        return ResultsRecord.from_dict(last) if last else None

    def save(self, record: ResultsRecord) -> bool:
        """Append ``record``, evicting the oldest entries beyond the limit."""
        try:
            data = self._read()
        except (OSError, ValueError) as e:
            logger.warning(f"Session history at {self.path} unreadable, starting fresh: {e}")
            data = {"history": [], "last_session": None}
        history = data["history"]
        history.append(record.to_dict())
        if len(history) > self.limit:
            history = history[-self.limit:]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w") as f:
                json.dump({"history": history, "last_session": record.to_dict()}, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Error saving session data: {e}")
            return False
        logger.info(f"Session {record.session_id} saved to {self.path}")
        return True


def export_results(record: ResultsRecord, directory: str, issue_labels: Mapping[str, str] = None, trace: SessionTrace = None) -> Optional[Path]:
    """
    Write ``exercise_results_<id>.json`` and a matching ``.txt`` report.

    Returns:
        Path of the JSON file, or None if writing failed
    """
    out_dir = Path(directory)
    json_path = out_dir / f"exercise_results_{record.session_id}.json"
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        with open(json_path, "w") as f:
            json.dump(record.to_dict(), f, indent=2)
        with open(json_path.with_suffix(".txt"), "w") as f:
            f.write(format_text_report(record, issue_labels))
        if trace is not None:
            with open(out_dir / f"exercise_trace_{record.session_id}.json", "w") as f:
                json.dump(trace.to_dict(), f)
    except OSError as e:
        logger.error(f"Error generating results file: {e}")
        return None
    logger.info(f"Results exported to {json_path}")
    return json_path
