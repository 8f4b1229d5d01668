import math

import pytest

from repcoach.exercise_analysis.pose_utils import KEYPOINT_INDEX, KEYPOINT_NAMES, Keypoint

FPS = 30.0


def rotate(vec, degrees):
    r = math.radians(degrees)
    return (
        vec[0] * math.cos(r) - vec[1] * math.sin(r),
        vec[0] * math.sin(r) + vec[1] * math.cos(r),
    )


def _add(a, b):
    return a[0] + b[0], a[1] + b[1]


def _sub(a, b):
    return a[0] - b[0], a[1] - b[1]


def _assemble(points, confidences):
    skeleton = [Keypoint(0.0, 0.0, 0.0)] * len(KEYPOINT_NAMES)
    for name, (x, y) in points.items():
        skeleton[KEYPOINT_INDEX[name]] = Keypoint(x, y, confidences.get(name, 0.9))
    return skeleton


def _head(points, x0):
    points["nose"] = (x0, 120.0)
    points["left_eye"] = (x0 - 10, 110.0)
    points["right_eye"] = (x0 + 10, 110.0)
    points["left_ear"] = (x0 - 20, 115.0)
    points["right_ear"] = (x0 + 20, 115.0)


def build_pushdown_skeleton(elbow_angle=90.0, back_angle=160.0, elbow_dx=0.0, right_conf=0.9, left_conf=0.6):
    """Side view of a cable pushdown; the forearm is the upper arm rotated by ``elbow_angle``."""
    points, confidences = {}, {}
    for side, conf, x0 in (("right", right_conf, 300.0), ("left", left_conf, 260.0)):
        shoulder = (x0, 200.0)
        elbow = (x0 + elbow_dx, 300.0)
        wrist = _add(elbow, rotate(_sub(shoulder, elbow), elbow_angle))
        hip = (x0, 450.0)
        ankle = _add(hip, rotate(_sub(shoulder, hip), back_angle))
        knee = ((hip[0] + ankle[0]) / 2, (hip[1] + ankle[1]) / 2)
        for part, point in (("shoulder", shoulder), ("elbow", elbow), ("wrist", wrist),
                            ("hip", hip), ("knee", knee), ("ankle", ankle)):
            points[f"{side}_{part}"] = point
            confidences[f"{side}_{part}"] = conf
    _head(points, 300.0)
    return _assemble(points, confidences)


def build_squat_skeleton(knee_angle=175.0, torso_dx=0.0, right_conf=0.9, left_conf=0.6):
    """Side view of a squat with the shank fixed and the thigh rotating about the knee.

    ``torso_dx`` moves the shoulders horizontally; positive is toward the toes.
    """
    points, confidences = {}, {}
    for side, conf, x0 in (("right", right_conf, 300.0), ("left", left_conf, 260.0)):
        knee = (x0, 450.0)
        ankle = (x0, 600.0)
        hip = _add(knee, rotate(_sub(ankle, knee), knee_angle))
        shoulder = (hip[0] + torso_dx, hip[1] - 200.0)
        elbow = (hip[0] + 20.0, hip[1] - 100.0)
        wrist = (hip[0] + 60.0, hip[1] - 100.0)
        for part, point in (("shoulder", shoulder), ("elbow", elbow), ("wrist", wrist),
                            ("hip", hip), ("knee", knee), ("ankle", ankle)):
            points[f"{side}_{part}"] = point
            confidences[f"{side}_{part}"] = conf
    _head(points, 300.0)
    return _assemble(points, confidences)


class FrameDriver:
    """Feeds skeletons to an analyzer at a fixed frame rate."""

    def __init__(self, analyzer, fps=FPS):
        self.analyzer = analyzer
        self.fps = fps
        self.frame = 0
        self.states = []

    @property
    def now(self):
        return self.frame / self.fps

    def feed(self, skeleton, count=1):
        state = None
        for _ in range(count):
            state = self.analyzer.analyze_frame(skeleton, self.now)
            self.frame += 1
            self.states.append(state)
        return state


@pytest.fixture
def pushdown_skeleton():
    return build_pushdown_skeleton


@pytest.fixture
def squat_skeleton():
    return build_squat_skeleton


@pytest.fixture
def frame_driver():
    return FrameDriver
