import math
import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from geometry_utils import (
    G,
    AnnulusSection,
    PressureWindow,
    PressureWindowPoint,
    SectionGeometry,
    StringSection,
    TvdSampler,
)


def _area(d):
    return math.pi * d * d / 4.0


def _geometry(string_bottom=None):
    annulus = [
        AnnulusSection("Open hole", 1000.0, 500.0, 0.25),
        AnnulusSection("Casing", 0.0, 1000.0, 0.3),
    ]
    string = [StringSection("DP", 0.0, 1200.0, 0.127, 0.1)]
    return SectionGeometry(annulus, string, current_string_bottom_md=string_bottom)


def test_annulus_volume_integrates_across_sections():
    geom = _geometry()

    expected = (
        (_area(0.3) - _area(0.127)) * 1000.0
        + (_area(0.25) - _area(0.127)) * 200.0
        + _area(0.25) * 300.0
    )

    assert geom.volume_in_annulus_m3(0.0, 1500.0) == pytest.approx(expected)
    assert geom.max_depth_m == 1500.0


def test_string_volume_stops_at_string_bottom():
    geom = _geometry(string_bottom=800.0)

    assert geom.volume_in_string_m3(0.0, 1500.0) == pytest.approx(_area(0.1) * 800.0)
    assert geom.pipe_od_m(900.0) == 0.0
    assert geom.pipe_id_m(900.0) == 0.0
    assert geom.pipe_od_m(500.0) == pytest.approx(0.127)


def test_annulus_intervals_split_at_every_boundary():
    geom = _geometry()

    intervals = geom.annulus_intervals(0.0, 1500.0)

    assert intervals == [(0.0, 1000.0), (1000.0, 1200.0), (1200.0, 1500.0)]
    assert geom.annulus_intervals(800.0, 800.0) == []


def test_uncovered_depths_have_no_hole():
    geom = _geometry()

    assert geom.hole_id_m(2000.0) == 0.0
    assert geom.volume_in_annulus_m3(1500.0, 2000.0) == 0.0
    assert geom.annulus_section_name(1100.0) == "Open hole"


def test_length_for_string_volume_inverts_string_volume():
    geom = _geometry()

    length = geom.length_for_string_volume_m(100.0, 2.0)

    assert length == pytest.approx(2.0 / _area(0.1), abs=1e-5)


def test_tvd_sampler_interpolates_and_clamps():
    sampler = TvdSampler(md=[1000.0, 0.0, 2000.0, 2000.0], tvd=[950.0, 0.0, 1700.0, 1800.0])

    assert sampler(500.0) == pytest.approx(475.0)
    assert sampler.tvd(1500.0) == pytest.approx(1325.0)
    assert sampler(2500.0) == pytest.approx(1700.0)
    assert sampler(-10.0) == pytest.approx(0.0)


def test_tvd_sampler_without_survey_is_identity():
    assert TvdSampler()(1234.5) == 1234.5


def test_pressure_window_interpolates_frac():
    window = PressureWindow(
        [
            PressureWindowPoint(2000.0, pore_kPa=20000.0, frac_kPa=34000.0),
            PressureWindowPoint(1000.0, pore_kPa=10000.0, frac_kPa=16000.0),
        ]
    )

    assert window.frac_kPa(1500.0) == pytest.approx(25000.0)
    assert window.pore_kPa(1500.0) == pytest.approx(15000.0)
    assert window.frac_kPa(500.0) == pytest.approx(16000.0)
    assert window.max_density_kgm3(1000.0) == pytest.approx(16000.0 * 1000.0 / (G * 1000.0))


def test_pressure_window_missing_values_return_none():
    window = PressureWindow(
        [
            PressureWindowPoint(1000.0, pore_kPa=10000.0, frac_kPa=16000.0),
            PressureWindowPoint(2000.0, pore_kPa=20000.0),
        ]
    )

    assert window.frac_kPa(1500.0) is None
    assert window.max_density_kgm3(1500.0) is None
    assert PressureWindow().frac_kPa(1000.0) is None
