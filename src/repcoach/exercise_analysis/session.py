from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class SessionPhase(Enum):
    """Overall session phase."""
    WAITING = "waiting"
    COUNTING = "counting"
    FINISHED = "finished"


class RepState(Enum):
    """Position within one repetition cycle."""
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class RepRecord:
    """Record of a single counted repetition."""
    rep_number: int
    timestamp: float
    is_correct: bool
    issues: Tuple[str, ...]
    primary_angle: float
    secondary_angle: Optional[float]
    lean_angle: Optional[float]
    instability: float


@dataclass
class ExerciseSession:
    """Mutable state of one exercise session, owned by a single analyzer."""
    phase: SessionPhase = SessionPhase.WAITING
    rep_state: RepState = RepState.UP
    rep_counted: bool = False
    position_frames: int = 0
    countdown_deadline: Optional[float] = None
    counters_visible: bool = False

    total_reps: int = 0
    correct_reps: int = 0
    incorrect_reps: int = 0
    form_issues: Dict[str, int] = field(default_factory=dict)
    # advisory range-of-motion shortfalls, kept out of correctness and score
    range_shortfalls: Dict[str, int] = field(default_factory=dict)
    reps: List[RepRecord] = field(default_factory=list)
    last_rep_time: Optional[float] = None

    # extremes of the current cycle
    cycle_min_primary: Optional[float] = None
    cycle_max_primary: Optional[float] = None
    cycle_max_lean: Optional[float] = None

    missed_frames: int = 0
    side: str = "right"
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    def record_issue(self, kind: str) -> None:
        self.form_issues[kind] = self.form_issues.get(kind, 0) + 1

    def record_range_shortfall(self, kind: str) -> None:
        self.range_shortfalls[kind] = self.range_shortfalls.get(kind, 0) + 1

    def track_extremes(self, primary: float, lean: Optional[float]) -> None:
        if self.cycle_min_primary is None or primary < self.cycle_min_primary:
            self.cycle_min_primary = primary
        if self.cycle_max_primary is None or primary > self.cycle_max_primary:
            self.cycle_max_primary = primary
        if lean is not None and (self.cycle_max_lean is None or lean > self.cycle_max_lean):
            self.cycle_max_lean = lean

    def reset_cycle(self) -> None:
        self.rep_state = RepState.UP
        self.rep_counted = False
        self.clear_extremes()

    def clear_extremes(self) -> None:
        self.cycle_min_primary = None
        self.cycle_max_primary = None
        self.cycle_max_lean = None

    def reset_tracking(self) -> None:
        """Back to waiting after losing the user; the totals survive."""
        self.phase = SessionPhase.WAITING
        self.position_frames = 0
        self.countdown_deadline = None
        self.counters_visible = False
        self.reset_cycle()


@dataclass
class SessionTrace:
    """Per-frame measurement series kept for post-session charts."""
    frame_count: List[int] = field(default_factory=list)
    primary_angles: List[float] = field(default_factory=list)
    secondary_angles: List[Optional[float]] = field(default_factory=list)
    lean_angles: List[Optional[float]] = field(default_factory=list)
    instability: List[float] = field(default_factory=list)
    rep_markers: List[int] = field(default_factory=list)
    rep_primary_angles: List[float] = field(default_factory=list)
    rep_secondary_angles: List[Optional[float]] = field(default_factory=list)
    rep_lean_angles: List[Optional[float]] = field(default_factory=list)
    rep_instability: List[float] = field(default_factory=list)

    def add_frame(self, primary: float, secondary: Optional[float], lean: Optional[float], instability: float) -> int:
        frame = len(self.frame_count)
        self.frame_count.append(frame)
        self.primary_angles.append(primary)
        self.secondary_angles.append(secondary)
        self.lean_angles.append(lean)
        self.instability.append(instability)
        return frame

    def add_rep(self, frame: int, rep: RepRecord) -> None:
        self.rep_markers.append(frame)
        self.rep_primary_angles.append(rep.primary_angle)
        self.rep_secondary_angles.append(rep.secondary_angle)
        self.rep_lean_angles.append(rep.lean_angle)
        self.rep_instability.append(rep.instability)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
