"""Streamlit viewer for replaying a cement job.

Run with ``streamlit run cement_simulation_app.py``.
"""

from dataclasses import asdict
from pathlib import Path
import sys

import altair as alt
import pandas as pd
import streamlit as st

# Ensure local modules are importable when the app is run from an arbitrary
# working directory.
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from cement_simulation import (
    MAX_PUMP_RATE_M3_MIN,
    MIN_PUMP_RATE_M3_MIN,
    CementJobSimulation,
    SimulationResult,
)
from depth_utils import merge_adjacent_segments, segments_to_frame
from logging_config import setup_logging
from sample_jobs import sample_job

# Hide Vega action buttons globally
alt.renderers.set_embed_options(actions=False)

CHART_COLUMNS = ["Column", "Fluid", "Top MD (m)", "Bottom MD (m)", "Density (kg/m³)", "Cement"]


def column_chart_frame(result: SimulationResult) -> pd.DataFrame:
    """Return string and annulus segments as one long table for charting."""

    frames = []
    for label, segments in (("String", result.string_segments), ("Annulus", result.annulus_segments)):
        df = segments_to_frame(merge_adjacent_segments(segments))
        df.insert(0, "Column", label)
        frames.append(df)
    if not frames or all(f.empty for f in frames):
        return pd.DataFrame(columns=CHART_COLUMNS)
    return pd.concat(frames, ignore_index=True)[CHART_COLUMNS]


def returns_frame(result: SimulationResult) -> pd.DataFrame:
    """Fluids that have reached surface, consecutive same-name entries merged."""

    return pd.DataFrame(
        [{"Fluid": p.name, "Volume (m³)": p.volume_m3, "Cement": p.is_cement} for p in result.returns],
        columns=["Fluid", "Volume (m³)", "Cement"],
    )


def column_chart(frame: pd.DataFrame, max_depth: float) -> alt.Chart:
    return (
        alt.Chart(frame)
        .mark_bar()
        .encode(
            x=alt.X("Column:N", title=None),
            y=alt.Y("Top MD (m):Q", scale=alt.Scale(domain=[max_depth, 0.0]), title="MD (m)"),
            y2="Bottom MD (m):Q",
            color=alt.Color("Fluid:N"),
            tooltip=CHART_COLUMNS,
        )
        .properties(height=520)
    )


def _job() -> CementJobSimulation:
    if "job" not in st.session_state:
        setup_logging()
        st.session_state["job"] = sample_job()
    return st.session_state["job"]


def main() -> None:
    st.set_page_config(page_title="Cement Job Replay", layout="wide")
    st.title("Cement Job Replay")
    job = _job()

    with st.sidebar:
        st.header("Pump program")
        names = [f"{i + 1}. {s.name}" for i, s in enumerate(job.stages)]
        idx = st.selectbox("Stage", range(len(names)), format_func=lambda i: names[i],
                           index=job.cursor.stage_index)
        if idx != job.cursor.stage_index:
            job.jump_to_stage(idx)
        progress = st.slider("Stage progress", 0.0, 1.0, float(job.cursor.progress), 0.01)
        if abs(progress - job.cursor.progress) > 1e-9:
            job.set_progress(progress)
        rate = st.slider("Pump rate (m³/min)", MIN_PUMP_RATE_M3_MIN, MAX_PUMP_RATE_M3_MIN,
                         float(job.pump_rate_m3_per_min), 0.05)
        if abs(rate - job.pump_rate_m3_per_min) > 1e-9:
            job.set_pump_rate(rate)

        st.header("Tank")
        reading = st.number_input("Tank volume (m³)", value=float(job.tank.current_volume_m3), step=0.1)
        if abs(reading - job.tank.current_volume_m3) > 1e-6:
            job.record_tank_volume(reading)
        if not job.tank.is_auto_tracking and st.button("Resume auto-tracking"):
            job.reset_tank_volume_to_expected()

        st.header("Loss zones")
        depth = st.number_input("Depth (m MD)", min_value=0.0, max_value=float(job.shoe_md), value=0.0)
        if st.button("Add loss zone"):
            outcome = job.add_loss_zone(depth)
            if not outcome.created:
                st.warning(f"Loss zone not added: {outcome.reason}")
        for i, zone in enumerate(job.loss_zones):
            st.caption(
                f"{zone.depth_m:.0f} m MD ({zone.tvd_m:.0f} m TVD) · "
                f"frac {zone.frac_kPa:.0f} kPa · EMW {zone.frac_emw_kgm3:.0f} kg/m³"
            )
            if st.button("Remove", key=f"remove_zone_{i}"):
                job.remove_loss_zone(i)
                st.rerun()

    result = job.result
    cols = st.columns(5)
    cols[0].metric("Pumped (m³)", f"{result.cumulative_pumped_m3:.2f}")
    cols[1].metric("Returned (m³)", f"{job.actual_returned_m3:.2f}")
    cols[2].metric("Return ratio", f"{job.overall_return_ratio:.2f}")
    cols[3].metric("Losses (m³)", f"{result.total_losses_m3:.2f}")
    cols[4].metric("Cement returns (m³)", f"{result.cement_returns_m3:.2f}")
    if result.zone_pressure is not None:
        st.caption(
            f"APL {result.zone_pressure.friction_kPa:.0f} kPa · "
            f"total at zone {result.zone_pressure.total_kPa:.0f} kPa · "
            f"frac {result.zone_pressure.frac_kPa:.0f} kPa"
        )

    left, right = st.columns([1, 2])
    with left:
        st.altair_chart(column_chart(column_chart_frame(result), job.shoe_md), use_container_width=True)
    with right:
        st.subheader("Stages")
        st.dataframe(job.stage_table(), use_container_width=True)
        st.subheader("Returns at surface")
        st.dataframe(returns_frame(result), use_container_width=True)
        st.subheader("Annular velocities")
        st.dataframe(
            pd.DataFrame(
                [
                    {
                        "Section": s.name,
                        "Top MD (m)": s.top_md_m,
                        "Bottom MD (m)": s.bottom_md_m,
                        "Velocity (m/min)": s.velocity_m_per_min,
                        "Over limit": s.is_over_speed_limit,
                    }
                    for s in result.annulus_sections
                ]
            ),
            use_container_width=True,
        )
        if result.valve_decisions:
            st.subheader("Loss-zone decisions")
            st.dataframe(pd.DataFrame([asdict(d) for d in result.valve_decisions]),
                         use_container_width=True)


if __name__ == "__main__":
    main()
