"""Cement job replay: stage sequencing, the recompute pass and accounting.

Every change to the job (cursor, pump rate, loss zones, tank reading)
replays the whole pump program from the first stage.  Nothing is carried
between passes apart from the inputs themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Callable, Sequence

import pandas as pd

from depth_utils import (
    FluidSegment,
    segments_from_annulus_parcels,
    segments_from_string_parcels,
)
from geometry_utils import GeometryProvider
from loss_zone import (
    AnnulusSectionInfo,
    LossZone,
    LossZoneOutcome,
    ValveDecision,
    ZonePressure,
    active_loss_zone,
    annular_velocity_report,
    create_loss_zone,
    pressure_at_zone,
    route_through_loss_zone,
)
from parcel_utils import (
    Parcel,
    cement_volume,
    fill_column,
    merge_parcels_by_name,
    push_many,
    push_to_top_and_overflow,
    total_volume,
)
from reconciliation import loss_adjustment, reconcile_conveyor, trim_tail_for_deficit

logger = logging.getLogger(__name__)

MIN_PUMPED_M3 = 0.001
PROGRESS_EPS = 1e-4
MIN_PUMP_RATE_M3_MIN = 0.05
MAX_PUMP_RATE_M3_MIN = 2.0
DEFAULT_PUMP_RATE_M3_MIN = 0.5

STAGE_PRE_FLUSH = "pre_flush"
STAGE_SPACER = "spacer"
STAGE_LEAD_CEMENT = "lead_cement"
STAGE_TAIL_CEMENT = "tail_cement"
STAGE_DISPLACEMENT = "displacement"
STAGE_MUD_DISPLACEMENT = "mud_displacement"
STAGE_OPERATION = "operation"

# (plastic viscosity cP, yield point Pa)
STAGE_DEFAULT_RHEOLOGY = {
    STAGE_PRE_FLUSH: (15.0, 5.0),
    STAGE_SPACER: (20.0, 8.0),
    STAGE_LEAD_CEMENT: (60.0, 10.0),
    STAGE_TAIL_CEMENT: (80.0, 15.0),
    STAGE_DISPLACEMENT: (20.0, 8.0),
    STAGE_MUD_DISPLACEMENT: (20.0, 8.0),
    STAGE_OPERATION: (20.0, 8.0),
}
CEMENT_STAGE_TYPES = {STAGE_LEAD_CEMENT, STAGE_TAIL_CEMENT}


@dataclass(frozen=True)
class Stage:
    """One entry of the pump program."""

    name: str
    volume_m3: float
    density_kgm3: float
    is_cement: bool = False
    plastic_viscosity_cP: float = 20.0
    yield_point_Pa: float = 8.0
    is_operation: bool = False
    stage_type: str = STAGE_SPACER
    color: str | None = None

    @classmethod
    def from_type(
        cls,
        stage_type: str,
        name: str = "",
        volume_m3: float = 0.0,
        density_kgm3: float = 1200.0,
        **kwargs,
    ) -> "Stage":
        """Build a stage with the default rheology and flags of ``stage_type``."""

        pv, yp = STAGE_DEFAULT_RHEOLOGY.get(stage_type, (20.0, 8.0))
        kwargs.setdefault("plastic_viscosity_cP", pv)
        kwargs.setdefault("yield_point_Pa", yp)
        return cls(
            name=name or stage_type.replace("_", " ").title(),
            volume_m3=volume_m3,
            density_kgm3=density_kgm3,
            is_cement=stage_type in CEMENT_STAGE_TYPES,
            is_operation=stage_type == STAGE_OPERATION,
            stage_type=stage_type,
            **kwargs,
        )

    def to_parcel(self, volume_m3: float) -> Parcel:
        return Parcel(
            volume_m3=volume_m3,
            name=self.name,
            density_kgm3=self.density_kgm3,
            is_cement=self.is_cement,
            plastic_viscosity_cP=self.plastic_viscosity_cP,
            yield_point_Pa=self.yield_point_Pa,
            color=self.color,
        )


@dataclass(frozen=True)
class SimulationCursor:
    """Position in the pump program: a stage index and progress within it."""

    stage_index: int = 0
    progress: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "progress", max(0.0, min(1.0, float(self.progress))))


@dataclass
class TankState:
    initial_volume_m3: float = 0.0
    current_volume_m3: float = 0.0
    is_auto_tracking: bool = True
    readings: dict[int, float] = field(default_factory=dict)


@dataclass(frozen=True)
class SimulationResult:
    string_parcels: list[Parcel]
    annulus_parcels: list[Parcel]
    string_segments: list[FluidSegment]
    annulus_segments: list[FluidSegment]
    returns: list[Parcel]
    losses: list[Parcel]
    cumulative_pumped_m3: float
    expected_tank_volume_m3: float
    current_tank_volume_m3: float
    simulated_losses_m3: float
    total_losses_m3: float
    cement_returns_m3: float
    cement_in_annulus_m3: float
    loss_zone: LossZone | None = None
    zone_pressure: ZonePressure | None = None
    valve_decisions: list[ValveDecision] = field(default_factory=list)
    annulus_sections: list[AnnulusSectionInfo] = field(default_factory=list)


@dataclass(frozen=True)
class SimulationSummary:
    total_pumped_m3: float
    expected_return_m3: float
    actual_return_m3: float
    return_ratio: float
    volume_difference_m3: float
    total_losses_m3: float
    current_stage_index: int
    total_stages: int
    current_stage_name: str
    is_operation: bool


# ---------------------------------------------------------------------------
# Sequencing and accounting
# ---------------------------------------------------------------------------

def stage_pumped_volumes(stages: Sequence[Stage], cursor: SimulationCursor) -> list[float]:
    """Volume pumped so far for each stage."""

    pumped = []
    for i, stage in enumerate(stages):
        vol = max(float(stage.volume_m3 or 0.0), 0.0)
        if i < cursor.stage_index:
            pumped.append(vol)
        elif i == cursor.stage_index:
            pumped.append(vol * cursor.progress)
        else:
            pumped.append(0.0)
    return pumped


def cumulative_pumped(stages: Sequence[Stage], cursor: SimulationCursor) -> float:
    """Total volume pumped up to the cursor."""

    return sum(stage_pumped_volumes(stages, cursor))


def expected_tank_volume(tank: TankState, pumped_m3: float) -> float:
    """Tank volume expected with 1:1 returns."""

    return tank.initial_volume_m3 + pumped_m3


def actual_returned(tank: TankState) -> float:
    return max(0.0, tank.current_volume_m3 - tank.initial_volume_m3)


def overall_return_ratio(pumped_m3: float, returned_m3: float) -> float:
    if pumped_m3 <= 0:
        return 1.0
    return returned_m3 / pumped_m3


def return_difference(pumped_m3: float, returned_m3: float) -> float:
    return pumped_m3 - returned_m3


def return_ratio_for_stage(stages: Sequence[Stage], tank: TankState, index: int) -> float | None:
    """Return ratio at the end of stage ``index`` from its recorded tank reading."""

    if index < 0 or index >= len(stages):
        return None
    reading = tank.readings.get(index)
    if reading is None:
        return None
    pumped = sum(max(float(s.volume_m3 or 0.0), 0.0) for s in stages[: index + 1])
    if pumped <= 0:
        return None
    return (reading - tank.initial_volume_m3) / pumped


# ---------------------------------------------------------------------------
# Recompute pass
# ---------------------------------------------------------------------------

def _usable_zone(zones: Sequence[LossZone], shoe_md: float) -> LossZone | None:
    zone = active_loss_zone(zones)
    if zone is None:
        return None
    if not 0.0 < zone.depth_m < shoe_md:
        logger.debug("Ignoring loss zone at %.1f m MD outside the annulus", zone.depth_m)
        return None
    return zone


def simulate(
    stages: Sequence[Stage],
    cursor: SimulationCursor,
    geometry: GeometryProvider,
    tvd: Callable[[float], float] | None = None,
    *,
    mud: Parcel,
    string_bottom_md: float,
    shoe_md: float,
    loss_zones: Sequence[LossZone] = (),
    pump_rate_m3_per_min: float = DEFAULT_PUMP_RATE_M3_MIN,
    tank: TankState | None = None,
    max_velocity_m_per_min: float | None = None,
) -> SimulationResult:
    """Replay the pump program up to ``cursor`` and return the well state.

    ``mud`` is the fluid initially filling both the string and the annulus.
    The string holds fluid from surface to ``string_bottom_md`` (float
    collar); the annulus runs from surface to ``shoe_md``.
    """

    tank = tank or TankState()
    pumped_by_stage = stage_pumped_volumes(stages, cursor)
    pumped = sum(pumped_by_stage)
    expected_tank = expected_tank_volume(tank, pumped)

    string_cap = geometry.volume_in_string_m3(0.0, string_bottom_md)
    string = fill_column(mud, string_cap)
    expelled: list[Parcel] = []
    for stage, vol in zip(stages, pumped_by_stage):
        if stage.is_operation or vol <= MIN_PUMPED_M3:
            continue
        string, out = push_to_top_and_overflow(string, stage.to_parcel(vol), string_cap)
        expelled.extend(out)

    zone = _usable_zone(loss_zones, shoe_md)
    decisions: list[ValveDecision] = []
    zone_pressure = None

    if zone is None:
        losses: list[Parcel] = []
        if not tank.is_auto_tracking:
            deficit = loss_adjustment(expected_tank, tank.current_volume_m3, 0.0)
            expelled, losses = trim_tail_for_deficit(expelled, deficit)
        simulated_losses = 0.0
        annulus_cap = geometry.volume_in_annulus_m3(0.0, shoe_md)
        annulus, returns = push_many(fill_column(mud, annulus_cap), expelled, annulus_cap)
        annulus_parcels = annulus
        annulus_segments = segments_from_annulus_parcels(annulus, shoe_md, geometry, tvd)
    else:
        below_cap = geometry.volume_in_annulus_m3(zone.depth_m, shoe_md)
        above_cap = geometry.volume_in_annulus_m3(0.0, zone.depth_m)
        below, inbound = push_many(fill_column(mud, below_cap), expelled, below_cap)
        routing = route_through_loss_zone(
            inbound,
            fill_column(mud, above_cap),
            zone,
            above_cap,
            geometry,
            pump_rate_m3_per_min,
        )
        returns, above, losses = routing.returns, routing.above, routing.losses
        decisions = routing.decisions
        simulated_losses = total_volume(losses)
        if not tank.is_auto_tracking:
            adjustment = loss_adjustment(expected_tank, tank.current_volume_m3, simulated_losses)
            conveyor = reconcile_conveyor(returns, above, losses, adjustment)
            returns, above, losses = conveyor.returns, conveyor.above, conveyor.losses
        zone_pressure = pressure_at_zone(above, zone, above_cap, geometry, pump_rate_m3_per_min)
        annulus_parcels = below + above
        annulus_segments = segments_from_annulus_parcels(
            below, shoe_md, geometry, tvd, top_md=zone.depth_m
        ) + segments_from_annulus_parcels(above, zone.depth_m, geometry, tvd)
        annulus_segments.sort(key=lambda s: s.top_md_m)

    if tank.is_auto_tracking:
        current_tank = expected_tank - simulated_losses
    else:
        current_tank = tank.current_volume_m3

    result = SimulationResult(
        string_parcels=string,
        annulus_parcels=annulus_parcels,
        string_segments=segments_from_string_parcels(string, string_bottom_md, geometry, tvd),
        annulus_segments=annulus_segments,
        returns=merge_parcels_by_name(returns),
        losses=losses,
        cumulative_pumped_m3=pumped,
        expected_tank_volume_m3=expected_tank,
        current_tank_volume_m3=current_tank,
        simulated_losses_m3=simulated_losses,
        total_losses_m3=total_volume(losses),
        cement_returns_m3=cement_volume(returns),
        cement_in_annulus_m3=cement_volume(annulus_parcels),
        loss_zone=zone,
        zone_pressure=zone_pressure,
        valve_decisions=decisions,
        annulus_sections=annular_velocity_report(
            geometry, 0.0, shoe_md, pump_rate_m3_per_min, max_velocity_m_per_min
        ),
    )
    logger.debug(
        "Recomputed stage %d @ %.2f: pumped %.2f m3, returns %.2f m3, losses %.2f m3",
        cursor.stage_index,
        cursor.progress,
        pumped,
        total_volume(returns),
        result.total_losses_m3,
    )
    return result


# ---------------------------------------------------------------------------
# Job controller
# ---------------------------------------------------------------------------

class CementJobSimulation:
    """Interactive replay of a cement job.

    Holds the inputs of :func:`simulate` and recomputes the full result after
    every mutation.
    """

    def __init__(
        self,
        stages: Sequence[Stage],
        geometry: GeometryProvider,
        *,
        mud: Parcel,
        string_bottom_md: float,
        shoe_md: float,
        tvd: Callable[[float], float] | None = None,
        frac_lookup: Callable[[float], float | None] | None = None,
        pump_rate_m3_per_min: float = DEFAULT_PUMP_RATE_M3_MIN,
        initial_tank_volume_m3: float = 0.0,
        max_velocity_m_per_min: float | None = None,
    ) -> None:
        self.stages = list(stages)
        self.geometry = geometry
        self.mud = mud
        self.string_bottom_md = string_bottom_md
        self.shoe_md = shoe_md
        self.tvd = tvd
        self.frac_lookup = frac_lookup
        self.pump_rate_m3_per_min = self._clamp_rate(pump_rate_m3_per_min)
        self.max_velocity_m_per_min = max_velocity_m_per_min
        self.cursor = SimulationCursor()
        self.tank = TankState(initial_tank_volume_m3, initial_tank_volume_m3)
        self.loss_zones: list[LossZone] = []
        self.result: SimulationResult | None = None
        self.recompute()

    @staticmethod
    def _clamp_rate(rate: float) -> float:
        return max(MIN_PUMP_RATE_M3_MIN, min(MAX_PUMP_RATE_M3_MIN, float(rate)))

    def recompute(self) -> SimulationResult:
        self.result = simulate(
            self.stages,
            self.cursor,
            self.geometry,
            self.tvd,
            mud=self.mud,
            string_bottom_md=self.string_bottom_md,
            shoe_md=self.shoe_md,
            loss_zones=self.loss_zones,
            pump_rate_m3_per_min=self.pump_rate_m3_per_min,
            tank=self.tank,
            max_velocity_m_per_min=self.max_velocity_m_per_min,
        )
        if self.tank.is_auto_tracking:
            self.tank.current_volume_m3 = self.result.current_tank_volume_m3
        return self.result

    # -- navigation ---------------------------------------------------------

    @property
    def current_stage(self) -> Stage | None:
        if 0 <= self.cursor.stage_index < len(self.stages):
            return self.stages[self.cursor.stage_index]
        return None

    @property
    def is_at_start(self) -> bool:
        return self.cursor.stage_index == 0 and self.cursor.progress <= PROGRESS_EPS

    @property
    def is_at_end(self) -> bool:
        return (
            self.cursor.stage_index >= len(self.stages) - 1
            and self.cursor.progress >= 1.0 - PROGRESS_EPS
        )

    def next_stage(self) -> SimulationResult:
        """Finish the current stage, or move to the start of the next one."""
        idx = self.cursor.stage_index
        if self.cursor.progress < 1.0 - PROGRESS_EPS:
            self.cursor = SimulationCursor(idx, 1.0)
        elif idx < len(self.stages) - 1:
            self.tank.readings[idx] = self.tank.current_volume_m3
            self.cursor = SimulationCursor(idx + 1, 0.0)
            self.tank.is_auto_tracking = True
        return self.recompute()

    def previous_stage(self) -> SimulationResult:
        """Rewind to the start of the current stage, or to the end of the previous one."""
        idx = self.cursor.stage_index
        if self.cursor.progress > PROGRESS_EPS:
            self.cursor = SimulationCursor(idx, 0.0)
        elif idx > 0:
            self.cursor = SimulationCursor(idx - 1, 1.0)
        return self.recompute()

    def set_progress(self, progress: float) -> SimulationResult:
        self.cursor = SimulationCursor(self.cursor.stage_index, progress)
        return self.recompute()

    def jump_to_stage(self, index: int) -> SimulationResult:
        if 0 <= index < len(self.stages):
            self.cursor = SimulationCursor(index, 0.0)
            self.tank.is_auto_tracking = True
        return self.recompute()

    # -- tank ---------------------------------------------------------------

    def set_initial_tank_volume(self, volume_m3: float) -> SimulationResult:
        self.tank.initial_volume_m3 = float(volume_m3)
        return self.recompute()

    def record_tank_volume(self, volume_m3: float) -> SimulationResult:
        """Override the tank reading; the streams are reconciled against it."""
        self.tank.is_auto_tracking = False
        self.tank.current_volume_m3 = float(volume_m3)
        if self.current_stage is not None:
            self.tank.readings[self.cursor.stage_index] = float(volume_m3)
        return self.recompute()

    def reset_tank_volume_to_expected(self) -> SimulationResult:
        self.tank.is_auto_tracking = True
        self.tank.readings.pop(self.cursor.stage_index, None)
        return self.recompute()

    # -- pumping and zones --------------------------------------------------

    def set_pump_rate(self, rate_m3_per_min: float) -> SimulationResult:
        self.pump_rate_m3_per_min = self._clamp_rate(rate_m3_per_min)
        return self.recompute()

    def add_loss_zone(self, md: float) -> LossZoneOutcome:
        """Add a loss zone at ``md``; the outcome says why when none is added."""

        if not 0.0 < md < self.shoe_md:
            return LossZoneOutcome(zone=None, reason="depth outside the annulus")
        if self.frac_lookup is None:
            return LossZoneOutcome(zone=None, reason="no pressure window")
        outcome = create_loss_zone(md, self.tvd or (lambda x: x), self.frac_lookup)
        if outcome.created:
            self.loss_zones.append(outcome.zone)
            self.recompute()
        return outcome

    def remove_loss_zone(self, index: int) -> SimulationResult:
        if 0 <= index < len(self.loss_zones):
            del self.loss_zones[index]
        return self.recompute()

    def set_loss_zone_active(self, index: int, is_active: bool) -> SimulationResult:
        if 0 <= index < len(self.loss_zones):
            zone = self.loss_zones[index]
            self.loss_zones[index] = LossZone(
                depth_m=zone.depth_m,
                tvd_m=zone.tvd_m,
                frac_kPa=zone.frac_kPa,
                frac_gradient_kPa_per_m=zone.frac_gradient_kPa_per_m,
                is_active=is_active,
            )
        return self.recompute()

    # -- reporting ----------------------------------------------------------

    @property
    def cumulative_pumped_m3(self) -> float:
        return cumulative_pumped(self.stages, self.cursor)

    @property
    def actual_returned_m3(self) -> float:
        return actual_returned(self.tank)

    @property
    def overall_return_ratio(self) -> float:
        return overall_return_ratio(self.cumulative_pumped_m3, self.actual_returned_m3)

    @property
    def return_difference_m3(self) -> float:
        return return_difference(self.cumulative_pumped_m3, self.actual_returned_m3)

    @property
    def tank_volume_difference_m3(self) -> float:
        return self.tank.current_volume_m3 - self.result.expected_tank_volume_m3

    def return_ratio_for_stage(self, index: int) -> float | None:
        return return_ratio_for_stage(self.stages, self.tank, index)

    def summary(self) -> SimulationSummary:
        stage = self.current_stage
        return SimulationSummary(
            total_pumped_m3=self.cumulative_pumped_m3,
            expected_return_m3=self.cumulative_pumped_m3,
            actual_return_m3=self.actual_returned_m3,
            return_ratio=self.overall_return_ratio,
            volume_difference_m3=self.return_difference_m3,
            total_losses_m3=self.result.total_losses_m3,
            current_stage_index=self.cursor.stage_index,
            total_stages=len(self.stages),
            current_stage_name=stage.name if stage else "",
            is_operation=stage.is_operation if stage else False,
        )

    def stage_table(self) -> pd.DataFrame:
        """Pump program with pumped volume, tank readings and return ratios."""
        pumped = stage_pumped_volumes(self.stages, self.cursor)
        rows = []
        for i, (stage, vol) in enumerate(zip(self.stages, pumped)):
            rows.append(
                {
                    "Stage": stage.name,
                    "Type": stage.stage_type,
                    "Volume (m³)": stage.volume_m3,
                    "Density (kg/m³)": stage.density_kgm3,
                    "Pumped (m³)": vol,
                    "Tank reading (m³)": self.tank.readings.get(i),
                    "Return ratio": self.return_ratio_for_stage(i),
                }
            )
        return pd.DataFrame(rows)


__all__ = [
    "Stage",
    "SimulationCursor",
    "TankState",
    "SimulationResult",
    "SimulationSummary",
    "stage_pumped_volumes",
    "cumulative_pumped",
    "expected_tank_volume",
    "actual_returned",
    "overall_return_ratio",
    "return_difference",
    "return_ratio_for_stage",
    "simulate",
    "CementJobSimulation",
]
