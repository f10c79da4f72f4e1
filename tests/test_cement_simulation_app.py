import os
import sys

import altair as alt
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
import cement_simulation_app as app
from sample_jobs import SHOE_MD, sample_job


def test_column_chart_frame_stacks_string_and_annulus():
    job = sample_job()
    job.next_stage()

    frame = app.column_chart_frame(job.result)

    assert list(frame.columns) == app.CHART_COLUMNS
    assert set(frame["Column"]) == {"String", "Annulus"}
    string = frame[frame["Column"] == "String"]
    assert string["Fluid"].tolist() == ["Pre-flush", "Mud"]
    assert string["Top MD (m)"].iloc[0] == 0.0


def test_returns_frame_lists_merged_returns():
    job = sample_job()
    job.next_stage()

    frame = app.returns_frame(job.result)

    assert frame["Fluid"].tolist() == ["Mud"]
    assert frame["Volume (m³)"].iloc[0] == pytest.approx(4.0)
    assert not frame["Cement"].any()


def test_returns_frame_empty_at_start():
    frame = app.returns_frame(sample_job().result)

    assert frame.empty
    assert list(frame.columns) == ["Fluid", "Volume (m³)", "Cement"]


def test_column_chart_builds_altair_chart():
    job = sample_job()

    chart = app.column_chart(app.column_chart_frame(job.result), SHOE_MD)

    assert isinstance(chart, alt.Chart)


def test_job_is_kept_in_session_state(monkeypatch):
    monkeypatch.setattr(app, "setup_logging", lambda *args, **kwargs: None)
    session = app.st.session_state
    previous = session.get("job")
    if "job" in session:
        del session["job"]
    try:
        job = app._job()
        assert app._job() is job
    finally:
        if previous is None:
            if "job" in session:
                del session["job"]
        else:
            session["job"] = previous
