import json

import pytest

from repcoach.exercise_analysis.config_utils import (
    ProfileNotFoundError,
    list_profiles,
    load_profile,
    load_profile_config,
)
from repcoach.exercise_analysis.profile import ProfileValidationError
from repcoach.exercise_analysis.session import Session

from conftest import body_frame

BUNDLED = ["biceps_curl", "lateral_raise", "lateral_trunk_stretch", "pushup", "squat"]


def test_list_profiles():
    assert list_profiles() == BUNDLED


@pytest.mark.parametrize("name", BUNDLED)
def test_bundled_profiles_are_valid(name):
    profile = load_profile(name)
    assert profile.name == name
    assert profile.initial_phase in profile.phases
    assert any(t.rep_completing for t in profile.transitions)


def test_load_from_path(tmp_path, curl_data):
    path = tmp_path / "custom.json"
    path.write_text(json.dumps(curl_data), encoding="utf-8")
    assert load_profile(str(path)).name == "curl_test"


def test_invalid_file_reports_validation_error(tmp_path, curl_data):
    curl_data["phases"] = []
    path = tmp_path / "broken.json"
    path.write_text(json.dumps(curl_data), encoding="utf-8")
    with pytest.raises(ProfileValidationError):
        load_profile(str(path))


def test_unknown_profile():
    with pytest.raises(ProfileNotFoundError) as excinfo:
        load_profile_config("handstand")
    assert "biceps_curl" in str(excinfo.value)
    assert isinstance(excinfo.value, FileNotFoundError)


def test_biceps_curl_counts_one_rep():
    session = Session(load_profile("biceps_curl"))
    t = 0.0
    for angle, seconds in ((170, 1.0), (40, 1.0), (170, 1.5)):
        for _ in range(int(seconds * 30)):
            session.process_frame(body_frame(t, elbow=angle))
            t += 1 / 30.0
    assert session.rep_count == 1
    assert session.phase == "down"
    assert session.safety_violations == 0
