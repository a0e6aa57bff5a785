import math

import pytest

from repcoach.exercise_analysis.geometry import (
    GeometryRule,
    included_angle,
    joint_index,
    parse_joint_ref,
    planar_distance,
    vertical_tilt,
)
from repcoach.exercise_analysis.models import Frame, Landmark

from conftest import body_frame


def test_included_angle_right_angle():
    assert included_angle([0, 1], [0, 0], [1, 0]) == pytest.approx(90.0)


def test_included_angle_collinear_is_straight():
    assert included_angle([0, 0], [1, 0], [2, 0]) == pytest.approx(180.0)


def test_included_angle_degenerate_returns_none():
    assert included_angle([1, 1], [1, 1], [2, 0]) is None
    assert included_angle([0, 0], [1, 1], [1, 1]) is None


def test_signed_angle_sign_follows_rotation():
    clockwise = included_angle([1, 0], [0, 0], [0, 1], signed=True)
    counter = included_angle([0, 1], [0, 0], [1, 0], signed=True)
    assert clockwise == pytest.approx(90.0)
    assert counter == pytest.approx(-90.0)


def test_vertical_tilt():
    assert vertical_tilt([0.5, 0.2], [0.5, 0.8]) == pytest.approx(0.0)
    assert vertical_tilt([0.6, 0.4], [0.5, 0.5]) == pytest.approx(45.0)
    assert vertical_tilt([0.4, 0.4], [0.5, 0.5]) == pytest.approx(-45.0)
    assert vertical_tilt([0.5, 0.5], [0.5, 0.5]) is None


def test_planar_distance_normalized():
    assert planar_distance([0, 0], [3, 4]) == pytest.approx(5.0)
    assert planar_distance([0, 0], [0.2, 0], reference=0.4) == pytest.approx(0.5)
    assert planar_distance([0, 0], [0.2, 0], reference=0.0) is None


def test_joint_references():
    assert joint_index("left_elbow") == 13
    assert joint_index(14) == 14
    assert parse_joint_ref(["left_hip", "right_hip"]) == (23, 24)
    assert parse_joint_ref(["nose"]) == 0
    with pytest.raises(ValueError):
        joint_index("left_tail")
    with pytest.raises(ValueError):
        joint_index(33)


@pytest.mark.parametrize("angle", [30.0, 95.0, 170.0])
def test_angle_rule_on_synthetic_frame(angle):
    rule = GeometryRule.from_dict({"kind": "angle", "joints": ["right_shoulder", "right_elbow", "right_wrist"]})
    assert rule.evaluate(body_frame(0.0, elbow=angle)) == pytest.approx(angle, abs=1e-6)


def test_rule_invalid_when_joint_not_visible():
    rule = GeometryRule.from_dict({"kind": "angle", "joints": ["left_shoulder", "left_elbow", "left_wrist"]})
    frame = body_frame(0.0, left_visibility=0.3)
    assert rule.evaluate(frame) is None
    assert rule.evaluate(frame, min_visibility=0.2) is not None


def test_tilt_rule_with_midpoints():
    rule = GeometryRule.from_dict({
        "kind": "tilt",
        "joints": [["left_shoulder", "right_shoulder"], ["left_hip", "right_hip"]],
    })
    assert rule.evaluate(body_frame(0.0)) == pytest.approx(0.0)
    assert rule.joint_ids == (11, 12, 23, 24)


def test_distance_rule_normalized_by_reference_pair():
    landmarks = [Landmark(0.0, 0.0, 0.0, 0.0)] * 33
    landmarks[23] = Landmark(0.4, 0.5)
    landmarks[24] = Landmark(0.6, 0.5)
    landmarks[25] = Landmark(0.45, 0.7)
    landmarks[26] = Landmark(0.55, 0.7)
    rule = GeometryRule.from_dict({
        "kind": "distance",
        "joints": ["left_knee", "right_knee"],
        "normalize_by": ["left_hip", "right_hip"],
    })
    assert rule.evaluate(Frame(tuple(landmarks), 0.0)) == pytest.approx(0.5)


def test_rule_rejects_wrong_joint_count():
    with pytest.raises(ValueError):
        GeometryRule.from_dict({"kind": "angle", "joints": ["left_hip", "left_knee"]})
    with pytest.raises(ValueError):
        GeometryRule.from_dict({"kind": "bend", "joints": ["left_hip", "left_knee"]})


def test_legal_range_and_neutral():
    angle = GeometryRule.from_dict({"joints": [11, 13, 15]})
    signed = GeometryRule.from_dict({"joints": [11, 13, 15], "signed": True})
    distance = GeometryRule.from_dict({"kind": "distance", "joints": [25, 26]})
    assert angle.legal_range == (0.0, 180.0) and angle.neutral == 180.0
    assert signed.legal_range == (-180.0, 180.0) and signed.neutral == 0.0
    assert distance.legal_range == (0.0, math.inf)
