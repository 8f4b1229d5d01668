"""
Results aggregation: performance score and the immutable session record.
"""

import math
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from ..exercise_analysis.config_utils import ExerciseConfig
from ..exercise_analysis.session import ExerciseSession

ISSUE_PENALTY_CAP = 25
PENALTY_PER_DISTINCT_ISSUE = 5


def calculate_performance_score(total: int, correct: int, form_issues: Mapping[str, int], penalty_mode: str = "capped_total") -> int:
    """
    Score a session from 0 to 100.

    The base is the percentage of correct reps. ``capped_total`` deducts one
    point per recorded issue (at most 25); ``per_distinct`` deducts five
    points for every issue kind that occurred at all.
    """
    rep_score = (correct / total) * 100 if total > 0 else 0.0
    if penalty_mode == "capped_total":
        penalty = min(ISSUE_PENALTY_CAP, sum(form_issues.values()))
    elif penalty_mode == "per_distinct":
        penalty = PENALTY_PER_DISTINCT_ISSUE * sum(1 for count in form_issues.values() if count > 0)
    else:
        raise ValueError(f"Unknown penalty mode: {penalty_mode}")
    score = max(0.0, min(100.0, rep_score - penalty))
    return int(math.floor(score + 0.5))


@dataclass(frozen=True)
class ResultsRecord:
    """Summary of a finished session."""
    session_id: str
    workout_name: str
    exercise: str
    started_at: str
    completed_at: str
    date: str
    time: str
    total_reps: int
    correct_reps: int
    incorrect_reps: int
    form_issues: Dict[str, int]
    performance_score: int
    end_reason: str
    user_level: str
    sets: int = 1
    rep_details: tuple = field(default_factory=tuple)
    range_shortfalls: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "session_id": self.session_id,
            "workout_name": self.workout_name,
            "exercise": self.exercise,
            "user_level": self.user_level,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "date": self.date,
            "time": self.time,
            "sets": self.sets,
            "reps": {
                "total": self.total_reps,
                "correct": self.correct_reps,
                "incorrect": self.incorrect_reps,
            },
            "form_issues": dict(self.form_issues),
            "range_shortfalls": dict(self.range_shortfalls),
            "performance_score": self.performance_score,
            "end_reason": self.end_reason,
            "rep_details": [dict(r) for r in self.rep_details],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResultsRecord":
        reps = data.get("reps", {})
        return cls(
            session_id=data["session_id"],
            workout_name=data["workout_name"],
            exercise=data.get("exercise", data["workout_name"]),
            started_at=data.get("started_at", ""),
            completed_at=data.get("completed_at", ""),
            date=data.get("date", ""),
            time=data.get("time", ""),
            total_reps=reps.get("total", 0),
            correct_reps=reps.get("correct", 0),
            incorrect_reps=reps.get("incorrect", 0),
            form_issues=dict(data.get("form_issues", {})),
            performance_score=data.get("performance_score", 0),
            end_reason=data.get("end_reason", "target_reached"),
            user_level=data.get("user_level", "beginner"),
            sets=data.get("sets", 1),
            rep_details=tuple(data.get("rep_details", [])),
            range_shortfalls=dict(data.get("range_shortfalls", {})),
        )


def _iso(timestamp: Optional[float]) -> str:
    return datetime.fromtimestamp(timestamp).isoformat(timespec="seconds") if timestamp else ""


def build_results_record(session: ExerciseSession, config: ExerciseConfig, end_reason: str, wall_time: float = None) -> ResultsRecord:
    """Freeze the session's totals into a ResultsRecord."""
    wall_time = wall_time if wall_time is not None else time.time()
    completed = datetime.fromtimestamp(wall_time)
    form_issues = {kind: 0 for kind in config.issue_kinds}
    for kind, count in session.form_issues.items():
        form_issues[kind] = count
    range_shortfalls = {}
    if config.range_check is not None:
        range_shortfalls[config.range_check.issue] = session.range_shortfalls.get(config.range_check.issue, 0)
    rep_details = tuple(
        {
            "rep": rep.rep_number,
            "correct": rep.is_correct,
            "issues": list(rep.issues),
            "primary_angle": round(rep.primary_angle, 1),
            "instability": round(rep.instability, 1),
        }
        for rep in session.reps
    )
    return ResultsRecord(
        session_id=uuid.uuid4().hex,
        workout_name=config.display_name,
        exercise=config.name,
        started_at=_iso(session.start_time),
        completed_at=completed.isoformat(timespec="seconds"),
        date=completed.strftime("%Y-%m-%d"),
        time=completed.strftime("%H:%M:%S"),
        total_reps=session.total_reps,
        correct_reps=session.correct_reps,
        incorrect_reps=session.incorrect_reps,
        form_issues=form_issues,
        performance_score=calculate_performance_score(
            session.total_reps, session.correct_reps, session.form_issues, config.score_penalty
        ),
        end_reason=end_reason,
        user_level=config.user_level.value,
        rep_details=rep_details,
        range_shortfalls=range_shortfalls,
    )


def format_text_report(record: ResultsRecord, issue_labels: Mapping[str, str] = None) -> str:
    """Plain-text summary written next to the JSON export."""
    issue_labels = issue_labels or {}
    lines = [
        "Exercise Results:",
        "------------------------",
        f"Workout: {record.workout_name}",
        f"Date: {record.date} at {record.time}",
        f"Sets: {record.sets}",
        f"Total Repetitions: {record.total_reps}",
        f"Correct Repetitions: {record.correct_reps}",
        f"Incorrect Repetitions: {record.incorrect_reps}",
        "",
        f"Performance Score: {record.performance_score}%",
        "",
        "Form Issues:",
        "------------------------",
    ]
    for kind, count in record.form_issues.items():
        label = issue_labels.get(kind, kind.replace("_", " ").title())
        lines.append(f"{label}: {count} times")
    if record.range_shortfalls:
        lines += ["", "Range of Motion:", "------------------------"]
        for kind, count in record.range_shortfalls.items():
            label = issue_labels.get(kind, kind.replace("_", " ").title())
            lines.append(f"{label}: {count} times")
    return "\n".join(lines)
