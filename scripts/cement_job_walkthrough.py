"""Print a stage-by-stage walkthrough of the sample cement job.

Optionally places a loss zone and overrides the tank reading at the end of
the lead cement so the valve decisions and the conveyor-belt reconciliation
can be followed in the output.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys
from typing import Iterable, Sequence

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from cement_simulation import CementJobSimulation, SimulationResult
from depth_utils import FluidSegment, cement_tops, merge_adjacent_segments
from logging_config import setup_logging
from parcel_utils import Parcel
from sample_jobs import sample_job


def _format_segments(segments: Iterable[FluidSegment]) -> str:
    parts = [
        f"{s.top_md_m:7.1f}-{s.bottom_md_m:7.1f} m {s.name}"
        for s in merge_adjacent_segments(segments)
    ]
    return "\n    ".join(parts) if parts else "(empty)"


def _format_parcels(parcels: Sequence[Parcel]) -> str:
    parts = [f"{p.volume_m3:6.2f} m³ {p.name}" for p in parcels if p.volume_m3 > 1e-9]
    return ", ".join(parts) if parts else "none"


def _describe(job: CementJobSimulation, result: SimulationResult) -> list[str]:
    stage = job.current_stage
    lines = [
        f"Stage {job.cursor.stage_index + 1}/{len(job.stages)} {stage.name if stage else ''} "
        f"@ {job.cursor.progress * 100:5.1f}%",
        f"  pumped {result.cumulative_pumped_m3:7.2f} m³ | tank {job.tank.current_volume_m3:7.2f} m³ "
        f"(expected {result.expected_tank_volume_m3:7.2f}) | losses {result.total_losses_m3:6.2f} m³",
        f"  string:\n    {_format_segments(result.string_segments)}",
        f"  annulus:\n    {_format_segments(result.annulus_segments)}",
        f"  returns: {_format_parcels(result.returns)}",
    ]
    if result.zone_pressure is not None:
        p = result.zone_pressure
        lines.append(
            f"  zone {result.loss_zone.depth_m:.0f} m: HP {p.hydrostatic_kPa:.0f} + APL {p.friction_kPa:.0f}"
            f" = {p.total_kPa:.0f} kPa vs frac {p.frac_kPa:.0f} kPa"
        )
    for d in result.valve_decisions:
        lines.append(
            f"    {d.parcel_name:<20} {d.incoming_m3:6.2f} m³ -> {d.branch:<9} "
            f"passed {d.passed_m3:6.2f} lost {d.lost_m3:6.2f}"
        )
    return lines


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--loss-zone", type=float, default=None, help="loss zone depth (m MD)")
    parser.add_argument("--tank-override", type=float, default=None,
                        help="tank reading (m³) recorded at the end of the lead cement")
    parser.add_argument("--pump-rate", type=float, default=0.8, help="pump rate (m³/min)")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    if args.verbose:
        setup_logging(logging.DEBUG)

    job = sample_job()
    job.set_pump_rate(args.pump_rate)
    if args.loss_zone is not None:
        outcome = job.add_loss_zone(args.loss_zone)
        if not outcome.created:
            print(f"Loss zone not added: {outcome.reason}")

    while True:
        result = job.next_stage()
        print("\n".join(_describe(job, result)))
        stage = job.current_stage
        if (
            args.tank_override is not None
            and stage is not None
            and stage.name == "Lead cement"
            and job.cursor.progress >= 1.0
        ):
            result = job.record_tank_volume(args.tank_override)
            print("  -- tank override --")
            print("\n".join(_describe(job, result)))
        if job.is_at_end:
            break

    tops = cement_tops(merge_adjacent_segments(job.result.annulus_segments))
    print("Cement tops (theoretical):")
    for seg in tops:
        print(f"  {seg.name}: {seg.top_md_m:.0f} m MD / {seg.top_tvd_m:.0f} m TVD")
    if not tops:
        print("  no cement in annulus")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
