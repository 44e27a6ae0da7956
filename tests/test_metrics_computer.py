from datetime import date

import numpy as np
import pydantic
import pytest

from activity_recorder.athletes.profile import AthleteProfile
from activity_recorder.exceptions import ValidationError
from activity_recorder.metrics.computer import compute_activity_metrics
from activity_recorder.recording.models import ActivityType
from activity_recorder.streams.models import BooleanStream, FloatStream

T0 = 1_700_000_000_000


def float_stream(metric, values, start=T0, step_ms=1000, paused_mask=None):
    values = np.asarray(values, dtype=float)
    return FloatStream(
        metric=metric,
        timestamps=np.arange(values.size, dtype=np.int64) * step_ms + start,
        sample_count=values.size,
        values=values,
        min_value=float(values.min()),
        max_value=float(values.max()),
        avg_value=float(values.mean()),
        paused_mask=paused_mask,
    )


def compute(profile, streams, duration_s=600, **kwargs):
    kwargs.setdefault("activity_type", ActivityType.OUTDOOR_BIKE)
    return compute_activity_metrics(
        profile, streams, T0, T0 + duration_s * 1000,
        session_id="s-1", owner_id="athlete-1", **kwargs,
    )


def test_constant_power_scenario(profile):
    record = compute(profile, {"power": float_stream("power", [200.0] * 600)})
    assert record.elapsed_time == 600
    assert record.normalized_power == pytest.approx(200.0)
    assert record.intensity_factor == pytest.approx(0.80)
    assert record.variability_index == pytest.approx(1.0)
    assert record.training_stress_score == pytest.approx(10.7, abs=0.05)
    assert record.tss_source == "power"
    assert record.power_weight_ratio == pytest.approx(200 / 70, abs=0.01)
    assert record.calorie_model == "power_work"
    assert record.calories == 120
    assert len(record.power_zone_times) == 7


def test_no_power_means_unavailable_not_zero():
    profile = AthleteProfile(id="athlete-1", weight_kg=70.0)
    record = compute(profile, {})
    assert record.intensity_factor is None
    assert record.normalized_power is None
    assert record.training_stress_score is None
    assert record.tss_source is None
    payload = record.to_payload()
    assert "intensity_factor" not in payload
    assert "training_stress_score" not in payload


def test_heart_rate_fallback_is_named(profile):
    streams = {"heartrate": float_stream("heartrate", [150.0] * 600)}
    record = compute(profile, streams)
    assert record.intensity_factor is None
    assert record.training_stress_score is not None and record.training_stress_score > 0
    assert record.tss_source == "heart_rate_trimp"
    assert record.calorie_model == "heart_rate_keytel"


def test_zone_fallback_without_max_hr_or_age():
    profile = AthleteProfile(id="athlete-1", threshold_hr=170.0)
    record = compute(profile, {"heartrate": float_stream("heartrate", [170.0] * 3600)}, duration_s=3600)
    assert record.tss_source == "heart_rate_zones"
    assert record.training_stress_score == pytest.approx(100.0)
    assert record.calories is None
    assert record.calorie_model is None


def test_non_overlapping_power_and_hr(profile):
    streams = {
        "power": float_stream("power", [200.0] * 60),
        "heartrate": float_stream("heartrate", [150.0] * 60, start=T0 + 300_000),
    }
    record = compute(profile, streams)
    assert record.efficiency_factor is None
    assert record.decoupling is None
    assert record.power_heart_rate_ratio is None
    assert record.avg_power == 200.0


def test_moving_time_uses_speed_threshold(profile):
    speed = [5.0] * 300 + [0.0] * 200 + [5.0] * 100
    record = compute(profile, {"speed": float_stream("speed", speed)})
    assert record.moving_time == pytest.approx(399.0)
    assert record.avg_speed == pytest.approx(np.mean(speed), abs=0.01)


def test_moving_time_falls_back_to_clock_then_elapsed(profile):
    assert compute(profile, {}, recorded_moving_time=420.0).moving_time == 420.0
    assert compute(profile, {}).moving_time == 600.0
    moving = BooleanStream(
        metric="moving",
        timestamps=np.arange(11, dtype=np.int64) * 1000 + T0,
        sample_count=11,
        values=np.array([True] * 5 + [False] * 6),
    )
    assert compute(profile, {"moving": moving}).moving_time == pytest.approx(5.0)


def test_paused_samples_are_excluded_from_moving_time(profile):
    paused = np.zeros(600, dtype=bool)
    paused[100:200] = True
    record = compute(profile, {"speed": float_stream("speed", [4.0] * 600, paused_mask=paused)})
    assert record.moving_time == pytest.approx(499.0)


def test_missing_timestamps_fail(profile):
    with pytest.raises(ValidationError):
        compute_activity_metrics(profile, {}, T0, None, session_id="s-1", owner_id="a",
                                 activity_type=ActivityType.OUTDOOR_RUN)
    with pytest.raises(ValidationError):
        compute_activity_metrics(profile, {}, T0, T0 - 1, session_id="s-1", owner_id="a",
                                 activity_type=ActivityType.OUTDOOR_RUN)


def test_profile_snapshot_and_default_name(profile):
    record = compute(profile, {})
    assert record.profile_ftp == 250.0
    assert record.profile_age == 33
    assert record.name == "Outdoor Bike - 2023-11-14"


def test_calorie_models_by_available_inputs():
    weight_only = AthleteProfile(id="a", weight_kg=70.0)
    record = compute(weight_only, {}, duration_s=3600, activity_type=ActivityType.OUTDOOR_RUN)
    assert record.calorie_model == "met_duration"
    assert record.calories == round(9.8 * 70)

    no_age = AthleteProfile(id="a", weight_kg=70.0)
    record = compute(no_age, {"heartrate": float_stream("heartrate", [150.0] * 600)})
    assert record.calorie_model == "heart_rate_basic"

    assert compute(None, {}).calories is None


def test_distance_and_elevation(profile):
    altitude = list(np.linspace(100, 150, 600))
    distance = list(np.linspace(0, 5000, 600))
    record = compute(profile, {
        "altitude": float_stream("altitude", altitude),
        "distance": float_stream("distance", distance),
    })
    assert record.distance == pytest.approx(5000.0)
    assert record.elevation_gain == pytest.approx(50.0, abs=2.0)
    assert record.avg_grade == pytest.approx(1.0)
    assert record.elevation_gain_per_km == pytest.approx(record.elevation_gain / 5)


def test_record_is_frozen_except_edits(profile):
    record = compute(profile, {})
    with pytest.raises(pydantic.ValidationError):
        record.training_stress_score = 50
    edited = record.with_edits(name="Morning ride", notes="windy")
    assert edited.name == "Morning ride"
    assert edited.notes == "windy"
    assert edited.elapsed_time == record.elapsed_time
    assert record.name != "Morning ride"


def test_age_on_birthday_boundary():
    p = AthleteProfile(id="a", dob=date(1990, 6, 15))
    assert p.age_on(date(2023, 6, 14)) == 32
    assert p.age_on(date(2023, 6, 15)) == 33


def test_power_ratios_use_active_samples_only(profile):
    paused = np.zeros(600, dtype=bool)
    paused[300:] = True
    power = float_stream("power", [200.0] * 300 + [0.0] * 300, paused_mask=paused)
    record = compute(profile, {"power": power})
    assert record.normalized_power == pytest.approx(200.0)
    assert record.variability_index == pytest.approx(1.0)
    assert record.power_weight_ratio == pytest.approx(200 / 70, abs=0.01)
