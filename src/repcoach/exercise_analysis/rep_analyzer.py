import logging
import time
from typing import Callable, Dict, List, Optional, Sequence, Type

from .base_analyzer import (
    Arrow,
    BaseExerciseAnalyzer,
    DrawLine,
    DrawPoint,
    ExerciseState,
    Highlight,
    UserLevel,
)
from .config_utils import ExerciseConfig, load_exercise_config
from .pose_utils import (
    KEYPOINT_NAMES,
    SKELETON_CONNECTIONS,
    AngleSmoother,
    Keypoint,
    LandmarkSmoother,
    calculate_angle,
    choose_side,
    is_visible,
    joint,
    midpoint,
    vertical_lean,
)
from .session import ExerciseSession, SessionPhase, SessionTrace
from .stability import StabilityAnalyzer
from .state_machine import ExerciseStateMachine, FrameMetrics, StepEvents
from ..feedback.debouncer import FeedbackDebouncer
from ..results.aggregator import ResultsRecord, build_results_record

# --- Logger Setup ---
_package_logger = logging.getLogger("repcoach")
if not _package_logger.hasHandlers():
    handler = logging.StreamHandler()
    formatter = logging.Formatter('%(asctime)s %(levelname)s %(message)s')
    handler.setFormatter(formatter)
    _package_logger.addHandler(handler)
    _package_logger.setLevel(logging.INFO)

logger = logging.getLogger("repcoach.analyzer")

LOST_TRACKING = "lost_tracking"
KEYPOINT_COLOR = "#FF0000"
ACTIVE_SIDE_COLOR = "#00FF00"
INACTIVE_SIDE_COLOR = "#FFFFFF"
PRIMARY_CHAIN_COLOR = "#00FF00"
SECONDARY_CHAIN_COLOR = "#FFC800"
CORRECT_HIGHLIGHT_COLOR = "#4CAF50"
INCORRECT_HIGHLIGHT_COLOR = "#FF5252"

SessionCompleteCallback = Callable[[ResultsRecord, SessionTrace], None]

# --- Exercise Registry ---
EXERCISE_ANALYZER_REGISTRY: Dict[str, Type["RepCountingAnalyzer"]] = {}


def register_exercise(name):
    def decorator(cls):
        EXERCISE_ANALYZER_REGISTRY[name] = cls
        return cls
    return decorator


class RepCountingAnalyzer(BaseExerciseAnalyzer):
    """
    Generic rep counter driven entirely by an ExerciseConfig.

    Per frame: smooth the keypoints, pick the more visible side, measure and
    smooth the configured angles, update the swing metric, then let the
    state machine advance. Reaching the rep target finalizes the session
    exactly once and notifies the registered completion callbacks.
    """

    CONFIG_NAME: Optional[str] = None

    def __init__(
        self,
        user_level: UserLevel = UserLevel.BEGINNER,
        config: ExerciseConfig = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        super().__init__(user_level)
        if config is None:
            if self.CONFIG_NAME is None:
                raise ValueError(f"{type(self).__name__} needs a config")
            config = load_exercise_config(self.CONFIG_NAME, user_level)
        self.config = config
        self._clock = clock
        self._wall_clock = wall_clock
        self._completion_callbacks: List[SessionCompleteCallback] = []
        self._init_session_state()

    def _init_session_state(self) -> None:
        cfg = self.config
        self.landmark_smoother = LandmarkSmoother(cfg.position_smoothing, cfg.visibility_threshold)
        self.angle_smoother = AngleSmoother(cfg.angle_window)
        self.stability = StabilityAnalyzer(cfg.stability_window, cfg.stability_range_window, cfg.stability_trim_fraction)
        self.debouncer = FeedbackDebouncer(cfg.feedback_threshold, cfg.feedback_persistence, cfg.feedback_on_deactivate)
        self.session = ExerciseSession()
        self.state_machine = ExerciseStateMachine(cfg, self.debouncer, self.session)
        self.trace = SessionTrace()
        self.results: Optional[ResultsRecord] = None
        self._highlights: List[Highlight] = []
        self._finalized = False

    # --- BaseExerciseAnalyzer interface ---
    def get_exercise_name(self) -> str:
        return self.config.name

    def get_required_landmarks(self) -> List[str]:
        return list(self.config.required_joints)

    def add_completion_callback(self, callback: SessionCompleteCallback) -> None:
        self._completion_callbacks.append(callback)

    @property
    def is_finished(self) -> bool:
        return self.session.phase == SessionPhase.FINISHED

    def reset_session(self, finalize: bool = True) -> None:
        """Start over; a session with counted reps is finalized first."""
        if finalize and self.session.total_reps > 0:
            self.finalize("reset")
        self._init_session_state()
        logger.info("Trainer reset")

    def analyze_frame(self, skeleton: Optional[Sequence[Keypoint]], timestamp: Optional[float] = None) -> ExerciseState:
        now = timestamp if timestamp is not None else self._clock()
        cfg, s = self.config, self.session
        if s.start_time is None:
            s.start_time = self._wall_clock()
        if s.phase == SessionPhase.FINISHED:
            return self._compose_state(now)

        self.debouncer.tick()

        valid, error = self.validate_inputs(skeleton, cfg.visibility_threshold, cfg.max_missing_joints)
        if not valid:
            return self._handle_detection_loss(now, error)
        self.state_machine.register_hit()

        smoothed = self.landmark_smoother.smooth_skeleton(skeleton)
        s.side = choose_side(smoothed, cfg.side_joints, s.side, cfg.side_tie_break)
        metrics = self._measure(smoothed, s.side)
        if metrics is None:
            return self._compose_state(
                now, skeleton=smoothed, error="Unable to measure the tracked joint angle"
            )

        frame_index = self.trace.add_frame(metrics.primary, metrics.secondary, metrics.lean, metrics.instability)
        events = self.state_machine.update(metrics, now)
        if events.rep is not None:
            self.trace.add_rep(frame_index, events.rep)
            target = "correct_counter" if events.rep.is_correct else "incorrect_counter"
            color = CORRECT_HIGHLIGHT_COLOR if events.rep.is_correct else INCORRECT_HIGHLIGHT_COLOR
            self._highlights.append(Highlight(target, color, now + cfg.highlight_seconds))
        if events.target_reached:
            self.finalize("target_reached", now)
        return self._compose_state(now, skeleton=smoothed, metrics=metrics, events=events)

    # --- measurement ---
    def _smoothed(self, kind: str, raw: Optional[float], default: Optional[float] = None) -> Optional[float]:
        if raw is None:
            held = self.angle_smoother.current(kind)
            return held if held is not None else default
        return self.angle_smoother.smooth_angle(kind, raw)

    def _measure(self, skeleton: Sequence[Keypoint], side: str) -> Optional[FrameMetrics]:
        cfg = self.config
        points = [joint(skeleton, side, part) for part in cfg.primary_angle.joints]
        primary = self._smoothed("primary", calculate_angle(*points), cfg.primary_angle.default)
        if primary is None:
            return None

        points = [joint(skeleton, side, part) for part in cfg.secondary_angle.joints]
        if all(is_visible(p, cfg.visibility_threshold) for p in points[1:]):
            raw_secondary = calculate_angle(*points)
        else:
            raw_secondary = cfg.secondary_angle.default
        secondary = self._smoothed("secondary", raw_secondary, cfg.secondary_angle.default)

        lean = None
        if cfg.lean_joints:
            upper, lower = (joint(skeleton, side, part) for part in cfg.lean_joints)
            lean = self._smoothed("lean", vertical_lean(upper, lower, side, cfg.lean_forward))

        moving = joint(skeleton, side, cfg.stability_moving_joint)
        reference = joint(skeleton, side, cfg.stability_reference_joint)
        instability = self.stability.update(moving.x - reference.x)
        return FrameMetrics(primary=primary, secondary=secondary, lean=lean, instability=instability)

    # --- detection loss ---
    def _handle_detection_loss(self, now: float, error: Optional[str]) -> ExerciseState:
        cfg = self.config
        warning = None
        if self.state_machine.register_miss():
            if cfg.detection_loss_policy == "reset":
                if self.session.missed_frames == cfg.max_missed_frames:
                    self.stability.reset()
            else:
                warning = cfg.lost_tracking_message
                self.debouncer.post(LOST_TRACKING, warning, "#FF0000")
        return self._compose_state(now, error=error, warning=warning)

    # --- finalization ---
    def finalize(self, end_reason: str = "target_reached", now: Optional[float] = None) -> ResultsRecord:
        """Build the results record and notify callbacks; runs once per session."""
        if self._finalized:
            logger.debug(f"Session already finalized, ignoring '{end_reason}'")
            return self.results
        self._finalized = True
        s = self.session
        s.phase = SessionPhase.FINISHED
        s.end_time = self._wall_clock()
        self.results = build_results_record(s, self.config, end_reason, s.end_time)
        logger.info(
            f"Session finished ({end_reason}): {s.total_reps} reps, "
            f"{s.correct_reps} correct, score {self.results.performance_score}"
        )
        now = now if now is not None else self._clock()
        self._highlights.append(
            Highlight("completion_message", "#FFFFFF", now + self.config.completion_seconds, text="Exercise Complete!")
        )
        for callback in self._completion_callbacks:
            try:
                callback(self.results, self.trace)
            except Exception as e:
                logger.error(f"Session completion handler failed: {e}")
        return self.results

    # --- output record ---
    def _compose_state(
        self,
        now: float,
        skeleton: Optional[Sequence[Keypoint]] = None,
        metrics: Optional[FrameMetrics] = None,
        events: Optional[StepEvents] = None,
        error: Optional[str] = None,
        warning: Optional[str] = None,
    ) -> ExerciseState:
        cfg, s = self.config, self.session
        self._highlights = [h for h in self._highlights if now < h.expires_at]

        angles: Dict[str, float] = {}
        if metrics is not None:
            for name in ("primary", "secondary", "lean", "instability"):
                value = metrics.value(name)
                if value is not None:
                    angles[name] = value

        active_rule_kinds = {rule.kind for rule in cfg.feedback_rules if self.debouncer.is_active(rule.kind)}
        feedback = self.debouncer.entries()
        violations = [view.message for view in feedback if view.kind in active_rule_kinds]

        state = ExerciseState(
            name=cfg.name,
            phase=s.phase.value,
            rep_state=s.rep_state.value,
            rep_count=s.total_reps,
            correct_reps=s.correct_reps,
            incorrect_reps=s.incorrect_reps,
            is_correct_form=not violations,
            violations=violations,
            angles=angles,
            confidence=self.calculate_confidence(skeleton) if skeleton is not None else 0.0,
            side=s.side if skeleton is not None else None,
            hold_progress=self.state_machine.hold_progress,
            countdown_remaining=self.state_machine.countdown_remaining(now),
            counters_visible=s.counters_visible,
            feedback=feedback,
            new_feedback=self.debouncer.newly_activated(),
            highlights=list(self._highlights),
            warning=warning,
            rep_event=events.rep if events is not None else None,
            results=self.results if events is not None and events.target_reached else None,
            analysis_reliable=error is None,
            error_message=error,
            user_level=self.user_level,
        )
        if skeleton is not None:
            self._add_draw_instructions(state, skeleton, active_rule_kinds)
        return state

    def _add_draw_instructions(self, state: ExerciseState, skeleton: Sequence[Keypoint], active_rule_kinds) -> None:
        cfg = self.config
        side = self.session.side
        threshold = cfg.visibility_threshold
        visible = {name: skeleton[idx] for idx, name in enumerate(KEYPOINT_NAMES) if is_visible(skeleton[idx], threshold)}

        state.points = [DrawPoint(kp.x, kp.y, KEYPOINT_COLOR) for kp in visible.values()]
        for name_a, name_b in SKELETON_CONNECTIONS:
            if name_a not in visible or name_b not in visible:
                continue
            sides = {n.split("_")[0] for n in (name_a, name_b) if n.startswith(("left_", "right_"))}
            color = ACTIVE_SIDE_COLOR if sides == {side} else INACTIVE_SIDE_COLOR
            a, b = visible[name_a], visible[name_b]
            state.connections.append(DrawLine((a.x, a.y), (b.x, b.y), color))

        for chain, color, thickness in (
            (cfg.primary_angle.joints, PRIMARY_CHAIN_COLOR, 5),
            (cfg.secondary_angle.joints, SECONDARY_CHAIN_COLOR, 5),
        ):
            names = [f"{side}_{part}" for part in chain]
            for name_a, name_b in zip(names, names[1:]):
                if name_a in visible and name_b in visible:
                    a, b = visible[name_a], visible[name_b]
                    state.emphasis.append(DrawLine((a.x, a.y), (b.x, b.y), color, thickness))

        for rule in cfg.feedback_rules:
            if rule.arrow is None or rule.kind not in active_rule_kinds:
                continue
            anchors = [f"{side}_{part}" for part in rule.arrow.anchor]
            if not all(name in visible for name in anchors):
                continue
            start = midpoint([visible[name] for name in anchors])
            end = (start[0] + rule.arrow.offset[0], start[1] + rule.arrow.offset[1])
            state.arrows.append(Arrow(start, end, rule.color, rule.arrow.label))


@register_exercise("tricep_pushdown")
class TricepPushdownAnalyzer(RepCountingAnalyzer):
    CONFIG_NAME = "tricep_pushdown"


@register_exercise("squat")
class SquatAnalyzer(RepCountingAnalyzer):
    CONFIG_NAME = "squat"


def create_analyzer(exercise_type: str, user_level: UserLevel = UserLevel.BEGINNER, **kwargs) -> RepCountingAnalyzer:
    """Instantiate the registered analyzer for ``exercise_type``."""
    if exercise_type not in EXERCISE_ANALYZER_REGISTRY:
        raise ValueError(f"Unsupported exercise type: {exercise_type}")
    return EXERCISE_ANALYZER_REGISTRY[exercise_type](user_level=user_level, **kwargs)
