import pytest

pyttsx3 = pytest.importorskip("pyttsx3")

from repcoach.exercise_analysis.base_analyzer import ExerciseState
from repcoach.feedback.debouncer import FeedbackView
from repcoach.feedback.voice_feedback import VoiceFeedback


class FakeEngine:
    def __init__(self):
        self.spoken = []

    def setProperty(self, name, value):
        pass

    def say(self, message):
        self.spoken.append(message)

    def runAndWait(self):
        pass


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def voice(monkeypatch, clock):
    monkeypatch.setattr(pyttsx3, "init", lambda: FakeEngine())
    feedback = VoiceFeedback(cooldown=4.0, clock=clock)
    yield feedback
    feedback.shutdown()


def make_state(phase="counting", **kwargs):
    return ExerciseState(
        name="tricep_pushdown", phase=phase, rep_state="up", rep_count=kwargs.pop("rep_count", 0),
        correct_reps=0, incorrect_reps=0, is_correct_form=True, violations=[], angles={},
        confidence=1.0, **kwargs,
    )


def cue(message):
    return FeedbackView("elbow_swinging", message, "#FF0000", 1.0)


def test_announces_counting_start_once(voice):
    assert voice.generate_feedback(make_state()) == "Go!"
    assert voice.generate_feedback(make_state()) is None


def test_new_cue_respects_cooldown(voice, clock):
    voice.generate_feedback(make_state())
    assert voice.generate_feedback(make_state(new_feedback=[cue("Stop swinging elbows!")])) == "Stop swinging elbows!"
    clock.now = 1.0
    assert voice.generate_feedback(make_state(new_feedback=[cue("Straighten your back a bit")])) is None
    clock.now = 5.0
    assert voice.generate_feedback(make_state(new_feedback=[cue("Straighten your back a bit")])) == "Straighten your back a bit"


def test_same_cue_is_not_repeated(voice, clock):
    voice.generate_feedback(make_state())
    voice.generate_feedback(make_state(new_feedback=[cue("Stop swinging elbows!")]))
    clock.now = 10.0
    assert voice.generate_feedback(make_state(new_feedback=[cue("Stop swinging elbows!")])) is None


def test_rep_count_is_spoken(voice):
    voice.generate_feedback(make_state())
    assert voice.generate_feedback(make_state(rep_count=3, rep_event=object())) == "3"
