import numpy as np
import pytest

from activity_recorder.core.analytics.altitude import average_grade, elevation_gain_loss, elevation_gain_per_km
from activity_recorder.core.analytics.hr import align_power_hr, decoupling_rate, efficiency_factor
from activity_recorder.core.analytics.moving import moving_time_above, route_distance_m
from activity_recorder.core.analytics.power import normalized_power, total_work_kj
from activity_recorder.core.analytics.time_utils import format_time, sample_durations
from activity_recorder.core.analytics.zones import HR_ZONE_CUTS, POWER_ZONE_CUTS, zone_times


def seconds(n, start=0):
    return np.arange(n, dtype=np.int64) * 1000 + start


def test_normalized_power_of_constant_stream():
    ts = seconds(600)
    assert normalized_power(ts, np.full(600, 200.0)) == pytest.approx(200.0)


def test_normalized_power_is_at_least_average_for_variable_effort():
    ts = seconds(600)
    power = np.where((np.arange(600) // 60) % 2 == 0, 100.0, 300.0)
    assert normalized_power(ts, power) > power.mean()


def test_normalized_power_empty_is_unavailable():
    assert normalized_power(np.array([], dtype=np.int64), np.array([])) is None


def test_total_work_integrates_power_over_time():
    assert total_work_kj(seconds(600), np.full(600, 200.0)) == pytest.approx(120.0)


def test_sample_durations_last_sample_gets_one_second():
    np.testing.assert_array_equal(sample_durations(np.array([0, 1000, 3000])), [1.0, 2.0, 1.0])
    assert format_time(3725) == "1:02:05"


def test_power_zones_are_time_weighted():
    times = zone_times(seconds(100), np.full(100, 200.0), 250, POWER_ZONE_CUTS)
    assert len(times) == 7
    assert times[2] == pytest.approx(100.0)
    assert sum(times) == pytest.approx(100.0)


def test_heartrate_zones_use_threshold_bands():
    hr = np.array([130.0] * 10 + [170.0] * 10)
    times = zone_times(seconds(20), hr, 170, HR_ZONE_CUTS)
    assert len(times) == 5
    assert times[0] == pytest.approx(10.0)
    # 恰好等于阈值时归入更高的区
    assert times[4] == pytest.approx(10.0)


def test_zone_times_without_threshold_is_empty():
    assert zone_times(seconds(5), np.full(5, 200.0), 0, POWER_ZONE_CUTS) == []


def test_elevation_noise_floor_suppresses_jitter():
    jitter = np.array([100.0, 101.0, 100.0, 101.5, 100.2, 101.0] * 20)
    assert elevation_gain_loss(jitter, noise_floor=2.0) == (0.0, 0.0)


def test_elevation_gain_and_spike_filter():
    climb = np.concatenate([np.linspace(100, 200, 101), np.linspace(200, 150, 51)])
    climb[50] = 900.0  # single bad reading
    gain, loss = elevation_gain_loss(climb, noise_floor=2.0)
    assert gain == pytest.approx(100.0, abs=2.0)
    assert loss == pytest.approx(50.0, abs=2.0)
    assert elevation_gain_per_km(gain, 10_000) == pytest.approx(gain / 10)


def test_average_grade_prefers_gradient_stream():
    assert average_grade(np.array([2.0, 4.0]), np.array([0.0, 100.0]), 1000.0) == 3.0
    assert average_grade(None, np.array([100.0, 150.0]), 1000.0) == 5.0
    assert average_grade(None, None, 1000.0) is None


def test_moving_time_excludes_stops_and_paused_samples():
    ts = seconds(10)
    speed = np.array([3.0, 3.0, 3.0, 0.0, 0.0, 0.0, 3.0, 3.0, 3.0, 3.0])
    assert moving_time_above(ts, speed, 0.5) == pytest.approx(6.0)
    paused = np.zeros(10, dtype=bool)
    paused[6:8] = True
    assert moving_time_above(ts, speed, 0.5, paused) == pytest.approx(4.0)


def test_route_distance_haversine():
    # 0.01 degree of latitude is about 1112 m
    points = np.array([[30.0, 120.0], [30.01, 120.0]])
    assert route_distance_m(points) == pytest.approx(1112.0, rel=0.01)


def test_power_hr_without_overlap_is_unavailable():
    p_ts, h_ts = seconds(60), seconds(60, start=600_000)
    p, h = np.full(60, 200.0), np.full(60, 150.0)
    assert align_power_hr(p_ts, p, h_ts, h) is None
    assert efficiency_factor(p_ts, p, h_ts, h) is None
    assert decoupling_rate(p_ts, p, h_ts, h) is None


def test_decoupling_positive_when_heart_rate_drifts_up():
    ts = seconds(600)
    power = np.full(600, 200.0)
    hr = np.linspace(140, 160, 600)
    assert decoupling_rate(ts, power, ts, hr) > 0
    assert efficiency_factor(ts, power, ts, np.full(600, 160.0)) == pytest.approx(1.25)
