import pytest

from repcoach.exercise_analysis.base_analyzer import UserLevel
from repcoach.exercise_analysis.pose_utils import KEYPOINT_INDEX, Keypoint
from repcoach.exercise_analysis.rep_analyzer import (
    LOST_TRACKING,
    SquatAnalyzer,
    TricepPushdownAnalyzer,
    create_analyzer,
)

WALL_TIME = 1_700_000_000.0


@pytest.fixture
def completed():
    return []


@pytest.fixture
def pushdown(completed):
    analyzer = TricepPushdownAnalyzer(wall_clock=lambda: WALL_TIME)
    analyzer.add_completion_callback(lambda record, trace: completed.append((record, trace)))
    return analyzer


def get_ready(driver, skeleton):
    driver.feed(skeleton, 130)
    assert driver.analyzer.session.phase.value == "counting"


def pushdown_reps(driver, build, count, **kwargs):
    for _ in range(count):
        driver.feed(build(elbow_angle=170.0, **kwargs), 20)
        driver.feed(build(elbow_angle=90.0, **kwargs), 20)


class TestPushdownSession:
    def test_waiting_shows_progress_and_countdown(self, pushdown, frame_driver, pushdown_skeleton):
        driver = frame_driver(pushdown)
        state = driver.feed(pushdown_skeleton(elbow_angle=90.0), 10)
        assert state.phase == "waiting"
        assert state.hold_progress == pytest.approx(10 / 30)
        assert not state.counters_visible
        assert state.side == "right"
        assert any(view.kind == "get_in_position" for view in state.feedback)

        state = driver.feed(pushdown_skeleton(elbow_angle=90.0), 30)
        assert state.countdown_remaining is not None
        assert state.phase == "waiting"

    def test_twelve_clean_reps_score_full_marks(self, pushdown, completed, frame_driver, pushdown_skeleton):
        driver = frame_driver(pushdown)
        get_ready(driver, pushdown_skeleton(elbow_angle=90.0))
        pushdown_reps(driver, pushdown_skeleton, 12)

        rep_states = [s for s in driver.states if s.rep_event is not None]
        assert [s.rep_count for s in rep_states] == list(range(1, 13))
        assert all(s.rep_event.is_correct for s in rep_states)
        assert all(any(h.target == "correct_counter" for h in s.highlights) for s in rep_states)

        final = [s for s in driver.states if s.results is not None]
        assert len(final) == 1
        record = final[0].results
        assert record.total_reps == 12
        assert record.correct_reps == 12
        assert record.incorrect_reps == 0
        assert record.performance_score == 100
        assert record.end_reason == "target_reached"
        assert set(record.form_issues) == set(pushdown.config.issue_kinds)

        assert len(completed) == 1
        _, trace = completed[0]
        assert len(trace.rep_markers) == 12

        assert driver.states[-1].phase == "finished"
        assert pushdown.finalize("teardown") is record
        assert len(completed) == 1

    def test_frames_after_finish_change_nothing(self, pushdown, frame_driver, pushdown_skeleton):
        driver = frame_driver(pushdown)
        get_ready(driver, pushdown_skeleton(elbow_angle=90.0))
        pushdown_reps(driver, pushdown_skeleton, 13)
        assert pushdown.session.total_reps == 12

    def test_completion_message_expires(self, pushdown, frame_driver, pushdown_skeleton):
        driver = frame_driver(pushdown)
        get_ready(driver, pushdown_skeleton(elbow_angle=90.0))
        pushdown_reps(driver, pushdown_skeleton, 12)
        state = driver.feed(None)
        assert any(h.target == "completion_message" for h in state.highlights)
        state = driver.feed(None, int(5 * driver.fps) + 1)
        assert not any(h.target == "completion_message" for h in state.highlights)

    def test_swinging_elbow_fails_each_rep_once(self, pushdown, frame_driver, pushdown_skeleton):
        driver = frame_driver(pushdown)

        def swinging(elbow_angle):
            for _ in range(10):
                driver.feed(pushdown_skeleton(elbow_angle=elbow_angle, elbow_dx=60.0))
                driver.feed(pushdown_skeleton(elbow_angle=elbow_angle, elbow_dx=-60.0))

        for _ in range(7):
            swinging(90.0)
        assert pushdown.session.phase.value == "counting"
        for _ in range(3):
            swinging(170.0)
            swinging(90.0)

        session = pushdown.session
        assert session.total_reps == 3
        assert session.incorrect_reps == 3
        assert session.form_issues == {"elbow_swinging": 3}
        assert any(state.arrows for state in driver.states)
        assert any("elbow" in view.message.lower() for state in driver.states for view in state.feedback)

    def test_detection_loss_resets_but_keeps_totals(self, pushdown, frame_driver, pushdown_skeleton):
        driver = frame_driver(pushdown)
        get_ready(driver, pushdown_skeleton(elbow_angle=90.0))
        pushdown_reps(driver, pushdown_skeleton, 2)

        state = driver.feed(None, 29)
        assert state.phase == "counting"
        assert not state.analysis_reliable
        assert state.error_message == "No pose detected"

        state = driver.feed(None)
        assert state.phase == "waiting"
        assert not state.counters_visible
        assert state.rep_count == 2
        assert state.correct_reps == 2

    def test_missing_required_joints_is_a_miss(self, pushdown, frame_driver, pushdown_skeleton):
        driver = frame_driver(pushdown)
        skeleton = pushdown_skeleton()
        for name in ("left_wrist", "right_wrist", "left_hip"):
            idx = KEYPOINT_INDEX[name]
            skeleton[idx] = Keypoint(skeleton[idx].x, skeleton[idx].y, 0.1)
        state = driver.feed(skeleton)
        assert not state.analysis_reliable
        assert state.error_message.startswith("Missing required landmarks")
        assert pushdown.session.missed_frames == 1

    def test_degenerate_first_frame_is_unreliable(self, pushdown, frame_driver, pushdown_skeleton):
        driver = frame_driver(pushdown)
        skeleton = pushdown_skeleton()
        shoulder = skeleton[KEYPOINT_INDEX["right_shoulder"]]
        skeleton[KEYPOINT_INDEX["right_elbow"]] = Keypoint(shoulder.x, shoulder.y, 0.9)
        state = driver.feed(skeleton)
        assert not state.analysis_reliable
        assert "primary" not in state.angles
        assert pushdown.session.position_frames == 0

    def test_draw_instructions(self, pushdown, frame_driver, pushdown_skeleton):
        driver = frame_driver(pushdown)
        state = driver.feed(pushdown_skeleton())
        assert len(state.points) == 17
        colors = {line.color for line in state.connections}
        assert colors == {"#00FF00", "#FFFFFF"}
        assert any(line.color == "#FFC800" for line in state.emphasis)
        assert state.angles["primary"] == pytest.approx(90.0)
        assert state.angles["secondary"] == pytest.approx(160.0)

    def test_reset_session_finalizes_started_session(self, pushdown, completed, frame_driver, pushdown_skeleton):
        driver = frame_driver(pushdown)
        get_ready(driver, pushdown_skeleton(elbow_angle=90.0))
        pushdown_reps(driver, pushdown_skeleton, 3)
        pushdown.reset_session()
        assert len(completed) == 1
        assert completed[0][0].end_reason == "reset"
        assert completed[0][0].total_reps == 3
        assert pushdown.session.total_reps == 0
        assert pushdown.results is None

    def test_reset_without_reps_does_not_finalize(self, pushdown, completed):
        pushdown.reset_session()
        assert completed == []

    def test_partial_extension_keeps_full_score(self, pushdown, frame_driver, pushdown_skeleton):
        driver = frame_driver(pushdown)
        get_ready(driver, pushdown_skeleton(elbow_angle=90.0))
        for _ in range(12):
            driver.feed(pushdown_skeleton(elbow_angle=150.0), 20)
            driver.feed(pushdown_skeleton(elbow_angle=90.0), 20)
        record = pushdown.results
        assert record.correct_reps == 12
        assert record.performance_score == 100
        assert all(count == 0 for count in record.form_issues.values())
        # the session ends on the 12th count, before that cycle can close
        assert record.range_shortfalls == {"elbow_not_extended": 11}

    def test_failing_callback_does_not_break_finalize(self, frame_driver, pushdown_skeleton):
        analyzer = TricepPushdownAnalyzer()

        def broken(record, trace):
            raise OSError("disk full")

        analyzer.add_completion_callback(broken)
        driver = frame_driver(analyzer)
        get_ready(driver, pushdown_skeleton(elbow_angle=90.0))
        pushdown_reps(driver, pushdown_skeleton, 12)
        assert analyzer.results is not None
        assert analyzer.is_finished


class TestSquatSession:
    def test_clean_squats(self, frame_driver, squat_skeleton):
        analyzer = SquatAnalyzer()
        driver = frame_driver(analyzer)
        driver.feed(squat_skeleton(knee_angle=175.0), 130)
        assert analyzer.session.phase.value == "counting"
        for _ in range(3):
            driver.feed(squat_skeleton(knee_angle=80.0), 30)
            driver.feed(squat_skeleton(knee_angle=175.0), 30)
        assert analyzer.session.total_reps == 3
        assert analyzer.session.correct_reps == 3
        assert analyzer.session.form_issues == {}

    def test_shallow_squat_is_noted_but_correct(self, frame_driver, squat_skeleton):
        analyzer = SquatAnalyzer()
        driver = frame_driver(analyzer)
        driver.feed(squat_skeleton(knee_angle=175.0), 130)
        driver.feed(squat_skeleton(knee_angle=100.0), 30)
        driver.feed(squat_skeleton(knee_angle=175.0), 30)
        assert analyzer.session.total_reps == 1
        assert analyzer.session.correct_reps == 1
        assert analyzer.session.form_issues == {}
        assert analyzer.session.range_shortfalls == {"squat_too_shallow": 1}

    def test_forward_torso_lean_is_positive(self, frame_driver, squat_skeleton):
        analyzer = SquatAnalyzer()
        state = frame_driver(analyzer).feed(squat_skeleton(knee_angle=80.0, torso_dx=120.0))
        assert state.angles["lean"] > 0

    @pytest.mark.parametrize("torso_dx, fails", [(250.0, True), (-250.0, False)])
    def test_torso_lean_direction(self, frame_driver, squat_skeleton, torso_dx, fails):
        analyzer = SquatAnalyzer()
        driver = frame_driver(analyzer)
        driver.feed(squat_skeleton(knee_angle=175.0, torso_dx=torso_dx), 130)
        assert analyzer.session.phase.value == "counting"
        for _ in range(2):
            driver.feed(squat_skeleton(knee_angle=80.0, torso_dx=torso_dx), 30)
            driver.feed(squat_skeleton(knee_angle=175.0, torso_dx=torso_dx), 30)
        assert analyzer.session.total_reps == 2
        if fails:
            assert analyzer.session.form_issues["torso_leaning_forward"] == 2
        else:
            assert analyzer.session.correct_reps == 2
            assert analyzer.session.form_issues == {}

    def test_lost_tracking_warns_without_reset(self, frame_driver, squat_skeleton):
        analyzer = SquatAnalyzer()
        driver = frame_driver(analyzer)
        driver.feed(squat_skeleton(knee_angle=175.0), 40)
        position = analyzer.session.position_frames
        state = driver.feed(None, 89)
        assert state.warning is None
        state = driver.feed(None)
        assert state.warning == analyzer.config.lost_tracking_message
        assert any(view.kind == LOST_TRACKING for view in state.feedback)
        assert analyzer.session.position_frames == position


def test_registry():
    assert isinstance(create_analyzer("tricep_pushdown"), TricepPushdownAnalyzer)
    squat = create_analyzer("squat", UserLevel.ADVANCED)
    assert isinstance(squat, SquatAnalyzer)
    assert squat.config.stability_threshold == 14.0
    with pytest.raises(ValueError):
        create_analyzer("deadlift")
