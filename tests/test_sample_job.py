import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from depth_utils import cement_tops, merge_adjacent_segments
from parcel_utils import total_volume
from sample_jobs import FLOAT_COLLAR_MD, SHOE_MD, sample_geometry, sample_job
from scripts import cement_job_walkthrough


def _run_to_end(job):
    while not job.is_at_end:
        job.next_stage()
    return job.result


def _streams(result):
    return (
        total_volume(result.string_parcels)
        + total_volume(result.annulus_parcels)
        + total_volume(result.returns)
        + total_volume(result.losses)
    )


def test_full_job_places_cement_in_annulus():
    geom = sample_geometry()
    string_cap = geom.volume_in_string_m3(0.0, FLOAT_COLLAR_MD)
    annulus_cap = geom.volume_in_annulus_m3(0.0, SHOE_MD)

    result = _run_to_end(sample_job())

    assert result.cumulative_pumped_m3 == pytest.approx(164.0)
    assert result.cement_returns_m3 == 0.0
    assert result.total_losses_m3 == 0.0
    assert result.cement_in_annulus_m3 == pytest.approx(60.0 - (string_cap - 92.0), abs=1e-6)
    assert _streams(result) == pytest.approx(string_cap + annulus_cap + 164.0, abs=1e-6)
    assert result.current_tank_volume_m3 == pytest.approx(60.0 + 164.0)


def test_full_job_cement_tops_are_inside_the_annulus():
    result = _run_to_end(sample_job())

    tops = cement_tops(merge_adjacent_segments(result.annulus_segments))

    assert [s.name for s in tops] == ["Lead cement", "Tail cement"]
    assert 0.0 < tops[0].top_md_m < tops[1].top_md_m < SHOE_MD
    assert tops[1].top_tvd_m < tops[1].top_md_m


def test_tank_shortfall_with_loss_zone_is_moved_to_losses():
    job = sample_job()
    assert job.add_loss_zone(1500.0).created
    while job.current_stage.name != "Lead cement" or job.cursor.progress < 1.0:
        job.next_stage()
    expected = job.result.expected_tank_volume_m3
    geom = sample_geometry()
    caps = geom.volume_in_string_m3(0.0, FLOAT_COLLAR_MD) + geom.volume_in_annulus_m3(0.0, SHOE_MD)

    result = job.record_tank_volume(expected - 5.0)

    assert result.total_losses_m3 == pytest.approx(5.0, abs=1e-6)
    assert _streams(result) == pytest.approx(caps + result.cumulative_pumped_m3, abs=1e-6)
    assert job.return_difference_m3 == pytest.approx(5.0)


def test_walkthrough_prints_cement_tops(capsys):
    assert cement_job_walkthrough.main([]) == 0

    out = capsys.readouterr().out
    assert "Cement tops (theoretical):" in out
    assert "Lead cement:" in out


def test_walkthrough_reports_rejected_zone(capsys):
    cement_job_walkthrough.main(["--loss-zone", "5000"])

    assert "Loss zone not added: depth outside the annulus" in capsys.readouterr().out
