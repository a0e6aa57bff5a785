from repcoach.exercise_analysis.models import FeedbackKind, MetricReading
from repcoach.exercise_analysis.profile import ExerciseProfile
from repcoach.exercise_analysis.session import Session, StepResult, Violation
from repcoach.feedback.dispatcher import FeedbackDispatcher

from conftest import body_frame


def _step(**kwargs):
    values = dict(exercise="Curl", timestamp=0.0, phase="down", previous_phase="down", rep_count=0)
    values.update(kwargs)
    return StepResult(**values)


def test_repeated_message_is_rate_limited(curl_profile):
    session = Session(curl_profile)
    spoken = []
    for i in range(11):
        event = session.process_frame(body_frame(i * 0.1, elbow=170))
        assert event.message == "Curl up"
        spoken.append(event.should_speak)
    # silence interval is 1000 ms
    assert spoken == [True] + [False] * 9 + [True]


def test_changed_message_is_spoken_immediately(curl_profile):
    session = Session(curl_profile)
    session.process_frame(body_frame(0.0, elbow=170))
    idle = session.process_frame(body_frame(0.1, elbow=95))
    assert idle.message == "Keep going"
    assert not idle.should_speak
    rep = session.process_frame(body_frame(0.2, elbow=170))
    assert rep.message == "1" and rep.should_speak
    back = session.process_frame(body_frame(0.3, elbow=170))
    assert back.message == "Curl up"
    assert back.should_speak
    assert not session.process_frame(body_frame(0.4, elbow=170)).should_speak


def test_templates_render_metric_values(curl_data):
    curl_data["phases"][0]["guidance"] = [{"message": "Elbow at {elbow}, {unknown}"}]
    session = Session(ExerciseProfile.from_dict(curl_data))
    event = session.process_frame(body_frame(0.0, elbow=170))
    assert event.message == "Elbow at 170, {unknown}"


def test_transition_message_used_for_rep(curl_data):
    curl_data["transitions"][1]["message"] = {"message": "Rep {reps} done", "kind": "success"}
    session = Session(ExerciseProfile.from_dict(curl_data))
    for t, angle in ((0.0, 170), (0.1, 95)):
        session.process_frame(body_frame(t, elbow=angle))
    event = session.process_frame(body_frame(0.2, elbow=170))
    assert event.message == "Rep 1 done"
    assert event.kind == FeedbackKind.SUCCESS


def test_guidance_condition_selects_template(curl_data):
    curl_data["phases"][1]["guidance"] = [
        {"message": "Squeeze", "when": [{"metric": "elbow", "zone": "flexed"}]},
        {"message": "Higher"},
    ]
    session = Session(ExerciseProfile.from_dict(curl_data))
    session.process_frame(body_frame(0.0, elbow=95))
    assert session.process_frame(body_frame(0.1, elbow=95)).message == "Squeeze"
    assert session.process_frame(body_frame(0.2, elbow=130)).message == "Higher"


def test_priority_insufficient_data_first(curl_profile):
    dispatcher = FeedbackDispatcher(curl_profile)
    event = dispatcher.dispatch(_step(insufficient_data=True, violation=Violation("x", "Danger"),
                                      safety_edge="enter"))
    assert event.message == curl_profile.messages["insufficient_data"].message
    assert event.low_confidence


def test_priority_safety_over_rep(curl_profile):
    dispatcher = FeedbackDispatcher(curl_profile)
    event = dispatcher.dispatch(_step(violation=Violation("x", "Stop"), safety_edge="enter", rep_delta=1))
    assert event.kind == FeedbackKind.DANGER
    assert event.message == "Stop"
    assert event.rep_count_delta == 1


def test_ongoing_violation_never_spoken(curl_profile):
    dispatcher = FeedbackDispatcher(curl_profile, speech_silence_ms=0)
    dispatcher.dispatch(_step(violation=Violation("x", "Stop"), safety_edge="enter"))
    event = dispatcher.dispatch(_step(timestamp=10.0, violation=Violation("x", "Stop")))
    assert event.kind == FeedbackKind.WARNING
    assert not event.should_speak


def test_reset_forgets_speech_history(curl_profile):
    dispatcher = FeedbackDispatcher(curl_profile)
    assert dispatcher.dispatch(_step(rep_note="too_fast")).should_speak
    assert not dispatcher.dispatch(_step(rep_note="too_fast")).should_speak
    dispatcher.reset()
    assert dispatcher.dispatch(_step(rep_note="too_fast")).should_speak


def test_speech_history_only_keeps_recent_texts(curl_data):
    curl_data["phases"][0]["guidance"] = [{"message": "Elbow at {elbow}"}]
    profile = ExerciseProfile.from_dict(curl_data)
    dispatcher = FeedbackDispatcher(profile)
    for i in range(100):
        reading = MetricReading(name="elbow", raw=float(i), value=float(i), zone="extended", valid=True, joints=())
        event = dispatcher.dispatch(_step(timestamp=i * 0.5, readings={"elbow": reading}))
        assert event.message == f"Elbow at {i}"
        assert event.should_speak
    # silence interval is 1000 ms, frames are 500 ms apart
    assert len(dispatcher._last_spoken) <= 2
