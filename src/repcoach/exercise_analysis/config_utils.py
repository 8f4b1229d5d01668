import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .base_analyzer import UserLevel


class ConfigError(ValueError):
    """Raised when an exercise config file is missing or malformed."""


_CONFIG_DIR = os.path.dirname(__file__)

_METRICS = ("primary", "secondary", "lean", "instability")
_OPERATORS = (">", "<")


@dataclass(frozen=True)
class AngleSpec:
    joints: Tuple[str, ...]
    default: Optional[float] = None


@dataclass(frozen=True)
class ArrowSpec:
    anchor: Tuple[str, ...]
    offset: Tuple[float, float]
    label: Optional[str] = None


@dataclass(frozen=True)
class FeedbackRule:
    """A debounced form condition: ``metric op threshold`` shows ``message``."""
    kind: str
    metric: str
    op: str
    threshold: float
    message: str
    color: str = "#FF0000"
    issue: Optional[str] = None
    arrow: Optional[ArrowSpec] = None

    def holds(self, value: Optional[float]) -> bool:
        if value is None:
            return False
        return value > self.threshold if self.op == ">" else value < self.threshold


@dataclass(frozen=True)
class RangeCheck:
    extreme: str  # "max" or "min" of the primary angle over one cycle
    threshold: float
    issue: str

    def passed(self, extreme_value: Optional[float]) -> bool:
        if extreme_value is None:
            return True
        if self.extreme == "max":
            return extreme_value >= self.threshold
        return extreme_value <= self.threshold


@dataclass(frozen=True)
class ExerciseConfig:
    """Every tunable of one exercise, resolved for a single user level."""
    name: str
    display_name: str
    user_level: UserLevel

    # joints
    side_joints: Tuple[str, ...]
    side_tie_break: str
    required_joints: Tuple[str, ...]
    max_missing_joints: int
    visibility_threshold: float

    # smoothing
    position_smoothing: float
    angle_window: int

    # angles
    primary_angle: AngleSpec
    secondary_angle: AngleSpec
    lean_joints: Optional[Tuple[str, str]]
    lean_forward: str

    # stability
    stability_moving_joint: str
    stability_reference_joint: str
    stability_window: int
    stability_range_window: int
    stability_trim_fraction: float

    # rep cycle
    rep_direction: str
    ready_min: Optional[float]
    ready_max: Optional[float]
    down_threshold: float
    up_threshold: float
    min_rep_interval: float
    range_check: Optional[RangeCheck]

    # correctness
    secondary_min: float
    secondary_max: float
    secondary_low_issue: Optional[str]
    secondary_high_issue: Optional[str]
    stability_threshold: float
    stability_issue: Optional[str]
    lean_max: Optional[float]
    lean_issue: Optional[str]

    # feedback
    feedback_threshold: int
    feedback_persistence: int
    feedback_on_deactivate: str
    position_message: str
    position_color: str
    last_rep_color: str
    feedback_rules: Tuple[FeedbackRule, ...]

    # session
    hold_threshold: int
    hold_gain: int
    hold_penalty: int
    countdown_seconds: float
    rep_target: int
    max_missed_frames: int
    detection_loss_policy: str
    lost_tracking_message: str
    score_penalty: str
    highlight_seconds: float
    completion_seconds: float

    issue_labels: Dict[str, str] = field(default_factory=dict)
    last_rep_messages: Dict[str, str] = field(default_factory=dict)

    @property
    def issue_kinds(self) -> List[str]:
        """Kinds that can fail a rep; the range-of-motion kind is advisory only."""
        advisory = self.range_check.issue if self.range_check else None
        return [kind for kind in self.issue_labels if kind != advisory]

    def in_ready_band(self, angle: float) -> bool:
        if self.ready_min is not None and angle <= self.ready_min:
            return False
        if self.ready_max is not None and angle >= self.ready_max:
            return False
        return True

    def crossed_down(self, angle: float) -> bool:
        if self.rep_direction == "rising":
            return angle > self.down_threshold
        return angle < self.down_threshold

    def crossed_up(self, angle: float) -> bool:
        if self.rep_direction == "rising":
            return angle < self.up_threshold
        return angle > self.up_threshold


_LEVEL_NAMES = {level.value for level in UserLevel}


def _resolve_level(value: Any, level: UserLevel) -> Any:
    """Pick the per-level entry of ``value`` if it is a level dict."""
    if isinstance(value, dict) and value and all(k in _LEVEL_NAMES for k in value):
        return value.get(level.value, next(iter(value.values())))
    return value


def _choice(value: str, allowed: Tuple[str, ...], key: str) -> str:
    if value not in allowed:
        raise ConfigError(f"{key} must be one of {allowed}, got {value!r}")
    return value


def _parse_rule(raw: Dict[str, Any], level: UserLevel) -> FeedbackRule:
    arrow = None
    if raw.get("arrow"):
        a = raw["arrow"]
        arrow = ArrowSpec(anchor=tuple(a["anchor"]), offset=(float(a["offset"][0]), float(a["offset"][1])), label=a.get("label"))
    return FeedbackRule(
        kind=raw["kind"],
        metric=_choice(raw["metric"], _METRICS, "feedback.rules.metric"),
        op=_choice(raw["op"], _OPERATORS, "feedback.rules.op"),
        threshold=float(_resolve_level(raw["threshold"], level)),
        message=raw["message"],
        color=raw.get("color", "#FF0000"),
        issue=raw.get("issue"),
        arrow=arrow,
    )


def parse_exercise_config(raw: Dict[str, Any], user_level: UserLevel = UserLevel.BEGINNER) -> ExerciseConfig:
    """Build an ExerciseConfig from the decoded JSON document."""

    def lvl(value: Any) -> Any:
        return _resolve_level(value, user_level)

    try:
        joints = raw["joints"]
        smoothing = raw["smoothing"]
        angles = raw["angles"]
        stability = raw["stability"]
        rep = raw["rep"]
        correctness = raw["correctness"]
        feedback = raw["feedback"]
        session = raw["session"]
        issues = raw.get("issues", {})

        range_check = None
        if rep.get("range_check"):
            rc = rep["range_check"]
            range_check = RangeCheck(
                extreme=_choice(rc["extreme"], ("max", "min"), "rep.range_check.extreme"),
                threshold=float(lvl(rc["threshold"])),
                issue=rc["issue"],
            )
        lean = angles.get("lean")
        return ExerciseConfig(
            name=raw["name"],
            display_name=raw.get("display_name", raw["name"]),
            user_level=user_level,
            side_joints=tuple(joints["side_joints"]),
            side_tie_break=_choice(joints.get("side_tie_break", "previous"), ("previous", "right"), "joints.side_tie_break"),
            required_joints=tuple(joints["required"]),
            max_missing_joints=int(joints.get("max_missing", 2)),
            visibility_threshold=float(lvl(joints["visibility_threshold"])),
            position_smoothing=float(lvl(smoothing["position_factor"])),
            angle_window=int(smoothing.get("angle_window", 10)),
            primary_angle=AngleSpec(tuple(angles["primary"]["joints"]), angles["primary"].get("default")),
            secondary_angle=AngleSpec(tuple(angles["secondary"]["joints"]), angles["secondary"].get("default")),
            lean_joints=tuple(lean["joints"]) if lean else None,
            lean_forward=_choice(lean.get("forward", "lower") if lean else "lower", ("lower", "upper"), "angles.lean.forward"),
            stability_moving_joint=stability["moving_joint"],
            stability_reference_joint=stability["reference_joint"],
            stability_window=int(stability.get("window", 30)),
            stability_range_window=int(stability.get("range_window", 20)),
            stability_trim_fraction=float(stability.get("trim_fraction", 0.1)),
            rep_direction=_choice(rep["direction"], ("rising", "falling"), "rep.direction"),
            ready_min=lvl(rep.get("ready_min")),
            ready_max=lvl(rep.get("ready_max")),
            down_threshold=float(lvl(rep["down_threshold"])),
            up_threshold=float(lvl(rep["up_threshold"])),
            min_rep_interval=float(lvl(rep["min_rep_interval"])),
            range_check=range_check,
            secondary_min=float(lvl(correctness["secondary_min"])),
            secondary_max=float(lvl(correctness["secondary_max"])),
            secondary_low_issue=correctness.get("secondary_low_issue"),
            secondary_high_issue=correctness.get("secondary_high_issue"),
            stability_threshold=float(lvl(correctness["stability_threshold"])),
            stability_issue=correctness.get("stability_issue"),
            lean_max=lvl(correctness.get("lean_max")),
            lean_issue=correctness.get("lean_issue"),
            feedback_threshold=int(lvl(feedback["threshold"])),
            feedback_persistence=int(lvl(feedback["persistence"])),
            feedback_on_deactivate=_choice(feedback.get("on_deactivate", "decay"), ("decay", "delete"), "feedback.on_deactivate"),
            position_message=feedback.get("position_message", "Get in position"),
            position_color=feedback.get("position_color", "#FFFF00"),
            last_rep_color=feedback.get("last_rep_color", "#FFA500"),
            feedback_rules=tuple(_parse_rule(r, user_level) for r in feedback.get("rules", [])),
            hold_threshold=int(lvl(session["hold_threshold"])),
            hold_gain=int(session.get("hold_gain", 1)),
            hold_penalty=int(session.get("hold_penalty", 2)),
            countdown_seconds=float(lvl(session["countdown_seconds"])),
            rep_target=int(session["rep_target"]),
            max_missed_frames=int(lvl(session["max_missed_frames"])),
            detection_loss_policy=_choice(session.get("detection_loss_policy", "reset"), ("reset", "warn"), "session.detection_loss_policy"),
            lost_tracking_message=session.get("lost_tracking_message", "Lost tracking"),
            score_penalty=_choice(session.get("score_penalty", "capped_total"), ("capped_total", "per_distinct"), "session.score_penalty"),
            highlight_seconds=float(session.get("highlight_seconds", 0.5)),
            completion_seconds=float(session.get("completion_seconds", 5.0)),
            issue_labels={k: v.get("label", k) for k, v in issues.items()},
            last_rep_messages={k: v["last_rep_message"] for k, v in issues.items() if v.get("last_rep_message")},
        )
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e


def load_exercise_config(name: str, user_level: UserLevel = UserLevel.BEGINNER, config_path: str = None) -> ExerciseConfig:
    """Load ``<name>_config.json`` from this package, or ``config_path`` if given."""
    if config_path is None:
        config_path = os.path.join(_CONFIG_DIR, f"{name}_config.json")
    if not os.path.isfile(config_path):
        raise ConfigError(f"Config file not found: {config_path}")
    with open(config_path, "r") as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e
    return parse_exercise_config(raw, user_level)
