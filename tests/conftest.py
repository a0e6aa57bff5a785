import copy
import math

import pytest

from repcoach.exercise_analysis.models import Landmark, NUM_LANDMARKS, Frame
from repcoach.exercise_analysis.profile import ExerciseProfile

FPS = 30.0
SEGMENT = 0.15

# joint ids: (shoulder, elbow, wrist, hip, knee, ankle)
LEFT = (11, 13, 15, 23, 25, 27)
RIGHT = (12, 14, 16, 24, 26, 28)


def _rotated(origin, angle, length=SEGMENT):
    """Point at ``angle`` degrees from straight up around ``origin``."""
    rad = math.radians(angle)
    return origin[0] + length * math.sin(rad), origin[1] - length * math.cos(rad)


def body_frame(t, elbow=170.0, knee=170.0, left_elbow=None, visibility=1.0, left_visibility=None):
    """
    Synthetic upright body whose elbow and knee angles equal the given values.

    Upper arm hangs straight down from the shoulder, so the hip-shoulder-elbow
    angle is 0. Thigh hangs straight down from the hip.
    """
    points = [Landmark(0.0, 0.0, 0.0, 0.0)] * NUM_LANDMARKS
    sides = ((LEFT, 0.4, elbow if left_elbow is None else left_elbow,
              visibility if left_visibility is None else left_visibility),
             (RIGHT, 0.6, elbow, visibility))
    for (shoulder, elb, wrist, hip, kn, ankle), x, elbow_angle, vis in sides:
        s, e, h, k = (x, 0.30), (x, 0.45), (x, 0.70), (x, 0.85)
        w = _rotated(e, elbow_angle)
        a = _rotated(k, knee)
        for idx, (px, py) in ((shoulder, s), (elb, e), (wrist, w), (hip, h), (kn, k), (ankle, a)):
            points[idx] = Landmark(px, py, 0.0, vis)
    return Frame(tuple(points), t)


def blank_frame(t):
    return Frame.from_landmarks([], t)


def curl_profile_dict():
    """Two-phase elbow profile: down >= 165, up < 100, rep on the way back down."""
    return {
        "name": "curl_test",
        "smoothing": {"method": "moving_average", "window": 1},
        "debounce_ms": 500,
        "speech_silence_ms": 1000,
        "metrics": [
            {
                "name": "elbow",
                "kind": "angle",
                "joints": ["right_shoulder", "right_elbow", "right_wrist"],
                "zones": [
                    {"zone": "flexed", "min": 0, "max": 100},
                    {"zone": "mid", "min": 100, "max": 165},
                    {"zone": "extended", "min": 165, "max": 180},
                ],
                "valid_zones": ["flexed", "extended"],
            },
            {
                "name": "knee",
                "kind": "angle",
                "joints": ["right_hip", "right_knee", "right_ankle"],
                "zones": [
                    {"zone": "ok", "min": 0, "max": 175},
                    {"zone": "locked", "min": 175, "max": 180},
                ],
                "valid_zones": ["ok"],
            },
        ],
        "phases": [
            {"name": "down", "initial": True,
             "guidance": [{"message": "Curl up"}]},
            {"name": "up"},
        ],
        "transitions": [
            {"from": "down", "to": "up", "when": [{"metric": "elbow", "zone": "flexed"}]},
            {"from": "up", "to": "down", "when": [{"metric": "elbow", "zone": "extended"}], "rep": True},
        ],
    }


@pytest.fixture
def curl_data():
    return copy.deepcopy(curl_profile_dict())


@pytest.fixture
def curl_profile(curl_data):
    return ExerciseProfile.from_dict(curl_data)


@pytest.fixture
def safety_data(curl_data):
    curl_data["safety_rules"] = [
        {"name": "knee_lock", "metric": "knee", "zones": ["locked"], "message": "Soften your knees"}
    ]
    return curl_data


def feed(session, angles, start=0.0, step=1.0 / FPS, **kwargs):
    """Feed one frame per elbow angle and return (events, next timestamp)."""
    events = []
    t = start
    for angle in angles:
        events.append(session.process_frame(body_frame(t, elbow=angle, **kwargs)))
        t += step
    return events, t
