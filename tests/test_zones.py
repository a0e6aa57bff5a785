import math

from repcoach.exercise_analysis.zones import ZoneBand, classify, validate_bands

BANDS = [
    ZoneBand(0.0, 100.0, "flexed"),
    ZoneBand(100.0, 165.0, "mid"),
    ZoneBand(165.0, 180.0, "extended"),
]


def test_bands_are_half_open():
    assert classify(99.999, BANDS) == "flexed"
    assert classify(100.0, BANDS) == "mid"
    assert classify(165.0, BANDS) == "extended"


def test_last_band_is_closed_and_ends_absorb_outliers():
    assert classify(180.0, BANDS) == "extended"
    assert classify(181.0, BANDS) == "extended"
    assert classify(-1.0, BANDS) == "flexed"


def test_valid_partition_has_no_errors():
    assert validate_bands(BANDS, (0.0, 180.0)) == []


def test_gap_and_overlap_reported():
    gap = [ZoneBand(0.0, 90.0, "a"), ZoneBand(100.0, 180.0, "b")]
    overlap = [ZoneBand(0.0, 120.0, "a"), ZoneBand(100.0, 180.0, "b")]
    assert any("gap" in e for e in validate_bands(gap, (0.0, 180.0), "elbow"))
    assert any("overlap" in e for e in validate_bands(overlap, (0.0, 180.0), "elbow"))


def test_coverage_of_legal_range():
    bands = [ZoneBand(10.0, 170.0, "only")]
    errors = validate_bands(bands, (0.0, 180.0))
    assert len(errors) == 2
    unbounded = [ZoneBand(-math.inf, 0.5, "narrow"), ZoneBand(0.5, math.inf, "wide")]
    assert validate_bands(unbounded, (0.0, math.inf)) == []


def test_empty_and_duplicate_bands():
    assert validate_bands([], (0.0, 180.0))
    dup = [ZoneBand(0.0, 90.0, "a"), ZoneBand(90.0, 180.0, "a")]
    assert any("duplicate" in e for e in validate_bands(dup, (0.0, 180.0)))


def test_band_from_dict_null_bounds():
    band = ZoneBand.from_dict({"zone": "any", "min": None, "max": 3})
    assert band.lower == -math.inf and band.upper == 3.0
