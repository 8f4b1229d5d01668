import logging

import numpy as np
import pytest

from repcoach.exercise_analysis.pose_utils import (
    KEYPOINT_INDEX,
    AngleSmoother,
    Keypoint,
    LandmarkSmoother,
    calculate_angle,
    choose_side,
    midpoint,
    vertical_lean,
)


def kp(x, y, c=1.0):
    return Keypoint(x, y, c)


class TestCalculateAngle:
    def test_right_angle(self):
        assert calculate_angle(kp(0, 0), kp(1, 0), kp(1, 1)) == pytest.approx(90.0)

    def test_straight_line(self):
        assert calculate_angle(kp(0, 0), kp(1, 0), kp(2, 0)) == pytest.approx(180.0)

    def test_folded(self):
        assert calculate_angle(kp(2, 0), kp(0, 0), kp(1, 0)) == pytest.approx(0.0)

    def test_is_symmetric(self):
        a, b, c = kp(3, 7), kp(1, 1), kp(-4, 2)
        assert calculate_angle(a, b, c) == pytest.approx(calculate_angle(c, b, a))

    def test_coincident_points_return_none(self, caplog):
        with caplog.at_level(logging.WARNING, logger="repcoach.pose_utils"):
            assert calculate_angle(kp(1, 1), kp(1, 1), kp(2, 2)) is None
        assert "Degenerate angle" in caplog.text

    @pytest.mark.parametrize("scale", [0.01, 1000.0])
    def test_uniform_scaling_keeps_angle(self, scale):
        a, b, c = kp(3, 7), kp(1, 1), kp(-4, 2)
        scaled = [kp(p.x * scale, p.y * scale) for p in (a, b, c)]
        assert calculate_angle(*scaled) == pytest.approx(calculate_angle(a, b, c))

    def test_range_over_random_triples(self):
        rng = np.random.default_rng(7)
        for _ in range(200):
            a, b, c = (kp(*rng.uniform(-500, 500, size=2)) for _ in range(3))
            angle = calculate_angle(a, b, c)
            assert angle is not None
            assert 0.0 <= angle <= 180.0


class TestVerticalLean:
    def test_upright_is_zero(self):
        assert vertical_lean(kp(100, 0), kp(100, 100), "right") == pytest.approx(0.0)

    def test_sign_follows_side(self):
        upper, lower = kp(100, 0), kp(150, 50)
        right = vertical_lean(upper, lower, "right")
        left = vertical_lean(upper, lower, "left")
        assert right == pytest.approx(45.0)
        assert left == pytest.approx(-45.0)

    def test_lower_behind_upper_is_negative_on_right(self):
        assert vertical_lean(kp(150, 0), kp(100, 50), "right") == pytest.approx(-45.0)

    def test_upper_joint_forward(self):
        # shoulder ahead of the hip
        hip = kp(100, 100)
        assert vertical_lean(kp(150, 50), hip, "right", forward="upper") == pytest.approx(45.0)
        assert vertical_lean(kp(50, 50), hip, "right", forward="upper") == pytest.approx(-45.0)
        assert vertical_lean(kp(50, 50), hip, "left", forward="upper") == pytest.approx(45.0)


class TestSideSelection:
    def _skeleton(self, left_conf, right_conf):
        skeleton = [kp(0, 0, 0.0)] * len(KEYPOINT_INDEX)
        for part in ("shoulder", "elbow", "wrist"):
            skeleton[KEYPOINT_INDEX[f"left_{part}"]] = kp(0, 0, left_conf)
            skeleton[KEYPOINT_INDEX[f"right_{part}"]] = kp(0, 0, right_conf)
        return skeleton

    def test_more_visible_side_wins(self):
        parts = ["shoulder", "elbow", "wrist"]
        assert choose_side(self._skeleton(0.9, 0.4), parts) == "left"
        assert choose_side(self._skeleton(0.4, 0.9), parts, previous="left") == "right"

    def test_tie_keeps_previous(self):
        parts = ["shoulder", "elbow", "wrist"]
        assert choose_side(self._skeleton(0.5, 0.5), parts, previous="left") == "left"

    def test_tie_prefers_right(self):
        parts = ["shoulder", "elbow", "wrist"]
        assert choose_side(self._skeleton(0.5, 0.5), parts, previous="left", tie_break="right") == "right"


def test_midpoint():
    assert midpoint([kp(0, 0), kp(10, 20)]) == (5.0, 10.0)


class TestLandmarkSmoother:
    def test_first_sample_passes_through(self):
        smoother = LandmarkSmoother(factor=0.5)
        assert smoother.smooth_position(0, (10.0, 20.0)) == (10.0, 20.0)

    def test_exponential_update(self):
        smoother = LandmarkSmoother(factor=0.5)
        smoother.smooth_position(0, (0.0, 0.0))
        assert smoother.smooth_position(0, (10.0, 20.0)) == pytest.approx((5.0, 10.0))
        assert smoother.smooth_position(0, (10.0, 20.0)) == pytest.approx((7.5, 15.0))

    def test_invisible_joints_are_untouched(self):
        smoother = LandmarkSmoother(factor=0.5, visibility_threshold=0.3)
        first = [kp(0, 0, 0.9), kp(0, 0, 0.1)]
        smoother.smooth_skeleton(first)
        second = smoother.smooth_skeleton([kp(10, 10, 0.9), kp(10, 10, 0.1)])
        assert (second[0].x, second[0].y) == pytest.approx((5.0, 5.0))
        assert second[1] == kp(10, 10, 0.1)

    def test_reset(self):
        smoother = LandmarkSmoother(factor=0.5)
        smoother.smooth_position(0, (0.0, 0.0))
        smoother.reset()
        assert smoother.smooth_position(0, (8.0, 8.0)) == (8.0, 8.0)


class TestAngleSmoother:
    def test_plain_mean_below_four_samples(self):
        smoother = AngleSmoother(window_size=10)
        smoother.smooth_angle("primary", 90.0)
        assert smoother.smooth_angle("primary", 100.0) == pytest.approx(95.0)

    def test_drops_extremes_from_four_samples(self):
        smoother = AngleSmoother(window_size=10)
        for value in (0.0, 100.0, 110.0):
            smoother.smooth_angle("primary", value)
        # sorted [0, 100, 110, 500] -> mean of [100, 110]
        assert smoother.smooth_angle("primary", 500.0) == pytest.approx(105.0)

    def test_window_is_bounded(self):
        smoother = AngleSmoother(window_size=4)
        for value in (1000.0, 10.0, 10.0, 10.0, 10.0):
            result = smoother.smooth_angle("primary", value)
        assert result == pytest.approx(10.0)

    def test_kinds_are_independent(self):
        smoother = AngleSmoother()
        smoother.smooth_angle("primary", 90.0)
        assert smoother.current("secondary") is None
        assert smoother.smooth_angle("secondary", 160.0) == 160.0
        assert smoother.current("primary") == 90.0
