import logging
import math
from dataclasses import dataclass
from typing import List, Optional

from .config_utils import ExerciseConfig
from .session import ExerciseSession, RepRecord, RepState, SessionPhase
from ..feedback.debouncer import FeedbackDebouncer

logger = logging.getLogger("repcoach.state_machine")

GET_IN_POSITION = "get_in_position"


@dataclass
class FrameMetrics:
    """Smoothed measurements of one frame."""
    primary: float
    secondary: Optional[float] = None
    lean: Optional[float] = None
    instability: float = 0.0

    def value(self, metric: str) -> Optional[float]:
        return getattr(self, metric)


@dataclass
class StepEvents:
    counting_started: bool = False
    rep: Optional[RepRecord] = None
    target_reached: bool = False
    range_issue: Optional[str] = None


class ExerciseStateMachine:
    """
    Session phase and rep cycle of one exercise.

    waiting: the user holds the ready position for ``hold_threshold`` frames,
    which starts a countdown; leaving the position cancels it.
    counting: the primary angle swings between the up and down thresholds.
    A rep is counted on the up->down transition, at most once per cycle and
    never sooner than ``min_rep_interval`` after the previous one.
    """

    def __init__(self, config: ExerciseConfig, debouncer: FeedbackDebouncer, session: ExerciseSession = None):
        self.config = config
        self.debouncer = debouncer
        self.session = session or ExerciseSession()

    # --- per-frame entry points ---
    def update(self, metrics: FrameMetrics, now: float) -> StepEvents:
        events = StepEvents()
        if self.session.phase == SessionPhase.FINISHED:
            return events
        if self.session.phase == SessionPhase.WAITING:
            self._update_waiting(metrics, now, events)
        if self.session.phase == SessionPhase.COUNTING:
            self._update_counting(metrics, now, events)
        return events

    def register_hit(self) -> None:
        self.session.missed_frames = 0

    def register_miss(self) -> bool:
        """Count a frame without a usable skeleton; True once the loss limit is reached."""
        s = self.session
        s.missed_frames += 1
        if s.missed_frames < self.config.max_missed_frames:
            return False
        if self.config.detection_loss_policy == "reset" and s.phase != SessionPhase.FINISHED:
            if s.missed_frames == self.config.max_missed_frames:
                logger.info("Detection lost for too long, resetting trainer...")
            s.reset_tracking()
        return True

    # --- derived values for the output record ---
    @property
    def hold_progress(self) -> float:
        return min(1.0, self.session.position_frames / self.config.hold_threshold)

    def countdown_remaining(self, now: float) -> Optional[int]:
        deadline = self.session.countdown_deadline
        if deadline is None:
            return None
        return max(0, math.ceil(deadline - now))

    # --- waiting ---
    def _update_waiting(self, metrics: FrameMetrics, now: float, events: StepEvents) -> None:
        s, cfg = self.session, self.config
        if cfg.in_ready_band(metrics.primary):
            s.position_frames = min(s.position_frames + cfg.hold_gain, cfg.hold_threshold)
            if s.position_frames >= cfg.hold_threshold and s.countdown_deadline is None:
                s.countdown_deadline = now + cfg.countdown_seconds
                logger.info(f"In position, starting {cfg.countdown_seconds:.0f}s countdown")
        else:
            s.position_frames = max(0, s.position_frames - cfg.hold_penalty)
            if s.countdown_deadline is not None:
                logger.info("Left the starting position, countdown cancelled")
            s.countdown_deadline = None

        self._update_position_prompt(s.countdown_deadline is None)
        if s.countdown_deadline is not None and now >= s.countdown_deadline:
            s.phase = SessionPhase.COUNTING
            s.countdown_deadline = None
            s.counters_visible = True
            s.reset_cycle()
            events.counting_started = True
            logger.info("Starting to count reps!")

    def _update_position_prompt(self, holds: bool) -> None:
        self.debouncer.update_condition(GET_IN_POSITION, holds, self.config.position_message, self.config.position_color)

    # --- counting ---
    def _update_counting(self, metrics: FrameMetrics, now: float, events: StepEvents) -> None:
        s, cfg = self.session, self.config
        self._update_position_prompt(False)
        for rule in cfg.feedback_rules:
            self.debouncer.update_condition(rule.kind, rule.holds(metrics.value(rule.metric)), rule.message, rule.color)

        s.track_extremes(metrics.primary, metrics.lean)

        if s.rep_state == RepState.UP and cfg.crossed_down(metrics.primary):
            s.rep_state = RepState.DOWN
            logger.debug(f"State change: up -> down (angle: {metrics.primary:.1f})")
            dwell_ok = s.last_rep_time is None or now - s.last_rep_time > cfg.min_rep_interval
            if not s.rep_counted and dwell_ok:
                events.rep = self._count_rep(metrics, now)
                events.target_reached = s.total_reps >= cfg.rep_target
        elif s.rep_state == RepState.DOWN and cfg.crossed_up(metrics.primary):
            if s.rep_counted:
                events.range_issue = self._check_range_of_motion()
            s.reset_cycle()
            logger.debug(f"State change: down -> up (angle: {metrics.primary:.1f})")

    def _count_rep(self, metrics: FrameMetrics, now: float) -> RepRecord:
        s = self.session
        s.rep_counted = True
        s.total_reps += 1
        s.last_rep_time = now

        issues = self.evaluate_rep(metrics)
        if issues:
            s.incorrect_reps += 1
            for issue in issues:
                s.record_issue(issue)
                self._post_last_rep_note(issue)
        else:
            s.correct_reps += 1

        rep = RepRecord(
            rep_number=s.total_reps,
            timestamp=now,
            is_correct=not issues,
            issues=tuple(issues),
            primary_angle=metrics.primary,
            secondary_angle=metrics.secondary,
            lean_angle=s.cycle_max_lean,
            instability=metrics.instability,
        )
        s.reps.append(rep)
        logger.info(f"Rep {s.total_reps} detected! Correct: {s.correct_reps}, Incorrect: {s.incorrect_reps}")
        return rep

    def evaluate_rep(self, metrics: FrameMetrics) -> List[str]:
        """Issue kinds that make the rep being counted incorrect."""
        s, cfg = self.session, self.config
        issues: List[str] = []

        def fail(kind: Optional[str]) -> None:
            if kind and kind not in issues:
                issues.append(kind)

        if metrics.secondary is not None:
            if metrics.secondary < cfg.secondary_min:
                fail(cfg.secondary_low_issue)
            elif metrics.secondary > cfg.secondary_max:
                fail(cfg.secondary_high_issue)
        if metrics.instability > cfg.stability_threshold:
            fail(cfg.stability_issue)
        if cfg.lean_max is not None and s.cycle_max_lean is not None and s.cycle_max_lean > cfg.lean_max:
            fail(cfg.lean_issue)
        for rule in cfg.feedback_rules:
            if rule.issue and self.debouncer.is_active(rule.kind):
                fail(rule.issue)
        return issues

    def _check_range_of_motion(self) -> Optional[str]:
        check = self.config.range_check
        if check is None:
            return None
        s = self.session
        extreme = s.cycle_max_primary if check.extreme == "max" else s.cycle_min_primary
        if check.passed(extreme):
            return None
        s.record_range_shortfall(check.issue)
        self._post_last_rep_note(check.issue)
        logger.info(f"Rep {s.total_reps} missed full range of motion ({check.extreme} angle {extreme:.1f})")
        return check.issue

    def _post_last_rep_note(self, issue: str) -> None:
        message = self.config.last_rep_messages.get(issue)
        if message:
            self.debouncer.post(f"last_rep:{issue}", message, self.config.last_rep_color)
