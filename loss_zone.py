"""Loss-zone pressure evaluation and the per-parcel valve decision.

Pressure above the zone is evaluated with a deliberately cheap linear
volume→length mapping so that the whole job can be replayed on every scrub
tick.  Annular friction uses a laminar Bingham-plastic gradient per
constant-geometry interval.

Each parcel arriving at the zone is judged once, against the above-zone
column as left by the previous parcel:

* ``saturated`` – pressure already at or above frac, all of it is lost;
* ``opening``   – the volume that can be added before frac is reached is
  negligible, all of it is lost;
* ``pass``      – the parcel fits under frac, nothing is lost;
* ``split``     – the first part passes, the remainder is lost.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import math
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

from parcel_utils import (
    Parcel,
    push_to_bottom_and_overflow_top,
    split_parcel,
    volume_weighted_rheology,
)

if TYPE_CHECKING:
    from geometry_utils import GeometryProvider

logger = logging.getLogger(__name__)

G = 9.80665
MIN_CAPACITY_M3 = 0.001
OPENING_THRESHOLD_M3 = 0.01

BRANCH_SATURATED = "saturated"
BRANCH_OPENING = "opening"
BRANCH_PASS = "pass"
BRANCH_SPLIT = "split"


@dataclass(frozen=True)
class LossZone:
    """Depth at which fluid escapes once the fracture pressure is reached."""

    depth_m: float
    tvd_m: float
    frac_kPa: float
    frac_gradient_kPa_per_m: float
    is_active: bool = True

    @property
    def frac_emw_kgm3(self) -> float:
        if self.tvd_m <= 0:
            return 0.0
        return self.frac_kPa * 1000.0 / (G * self.tvd_m)


@dataclass(frozen=True)
class LossZoneOutcome:
    """Result of a loss-zone creation request."""

    zone: LossZone | None
    reason: str = ""

    @property
    def created(self) -> bool:
        return self.zone is not None


@dataclass(frozen=True)
class ZonePressure:
    hydrostatic_kPa: float
    friction_kPa: float
    frac_kPa: float

    @property
    def total_kPa(self) -> float:
        return self.hydrostatic_kPa + self.friction_kPa

    @property
    def margin_kPa(self) -> float:
        return self.frac_kPa - self.total_kPa


@dataclass(frozen=True)
class ValveDecision:
    branch: str
    parcel_name: str
    incoming_m3: float
    passed_m3: float
    lost_m3: float
    threshold_m3: float
    total_kPa: float
    frac_kPa: float


@dataclass
class ZoneRouting:
    """Streams produced by routing parcels through a loss zone."""

    above: list[Parcel]
    returns: list[Parcel] = field(default_factory=list)
    losses: list[Parcel] = field(default_factory=list)
    decisions: list[ValveDecision] = field(default_factory=list)


@dataclass(frozen=True)
class AnnulusSectionInfo:
    name: str
    top_md_m: float
    bottom_md_m: float
    velocity_m_per_min: float
    is_over_speed_limit: bool = False


def active_loss_zone(zones: Iterable[LossZone]) -> LossZone | None:
    """Return the deepest active zone, the only one the engine honours."""

    active = [z for z in zones if z.is_active]
    if not active:
        return None
    return max(active, key=lambda z: z.depth_m)


def create_loss_zone(
    md: float,
    tvd_lookup: Callable[[float], float],
    frac_lookup: Callable[[float], float | None],
) -> LossZoneOutcome:
    """Build a loss zone at ``md`` using the pressure window at its TVD.

    No zone is created when the window has no fracture pressure there; the
    outcome then carries the reason instead.
    """

    tvd = float(tvd_lookup(md))
    frac = frac_lookup(tvd)
    if frac is None:
        reason = "no fracture pressure at this depth"
        logger.warning("Loss zone at %.1f m MD (%.1f m TVD) not created: %s", md, tvd, reason)
        return LossZoneOutcome(zone=None, reason=reason)
    gradient = frac / tvd if tvd > 0 else 0.0
    zone = LossZone(depth_m=float(md), tvd_m=tvd, frac_kPa=float(frac), frac_gradient_kPa_per_m=gradient)
    logger.info("Loss zone added at %.1f m MD, frac %.0f kPa", zone.depth_m, zone.frac_kPa)
    return LossZoneOutcome(zone=zone)


def _linear_factors(zone: LossZone, capacity_m3: float) -> tuple[float, float]:
    """Return ``(length_per_volume, tvd_ratio)`` for the above-zone interval."""

    length_per_volume = zone.depth_m / max(capacity_m3, MIN_CAPACITY_M3)
    tvd_ratio = zone.tvd_m / zone.depth_m if zone.depth_m > 0 else 0.0
    return length_per_volume, tvd_ratio


def hydrostatic_above_zone_kPa(
    parcels: Sequence[Parcel],
    zone: LossZone,
    capacity_m3: float,
) -> float:
    """Hydrostatic pressure of the above-zone column at the zone (kPa)."""

    lpv, tvd_ratio = _linear_factors(zone, capacity_m3)
    pressure_pa = 0.0
    for parcel in parcels:
        vol = max(parcel.volume_m3, 0.0)
        pressure_pa += parcel.density_kgm3 * G * (vol * lpv * tvd_ratio)
    return pressure_pa / 1000.0


def annular_friction_kPa(
    geometry: "GeometryProvider",
    top_md: float,
    bottom_md: float,
    pump_rate_m3_per_min: float,
    plastic_viscosity_cP: float,
    yield_point_Pa: float,
) -> float:
    """Laminar Bingham-plastic annular pressure loss between two depths (kPa)."""

    rate_m3_s = max(float(pump_rate_m3_per_min or 0.0), 0.0) / 60.0
    pv_pa_s = max(plastic_viscosity_cP, 0.0) / 1000.0
    yp = max(yield_point_Pa, 0.0)
    total_pa = 0.0
    for top, bottom in geometry.annulus_intervals(top_md, bottom_md):
        mid = 0.5 * (top + bottom)
        hole = geometry.hole_id_m(mid)
        pipe = geometry.pipe_od_m(mid)
        dh = hole - pipe
        if dh <= 1e-6:
            continue
        area = math.pi * (hole * hole - pipe * pipe) / 4.0
        if area <= 1e-9:
            continue
        velocity = rate_m3_s / area
        gradient = 4.0 * yp / dh + 8.0 * pv_pa_s * velocity / (dh * dh)
        total_pa += gradient * (bottom - top)
    return total_pa / 1000.0


def pressure_at_zone(
    above_parcels: Sequence[Parcel],
    zone: LossZone,
    capacity_m3: float,
    geometry: "GeometryProvider",
    pump_rate_m3_per_min: float,
) -> ZonePressure:
    """Hydrostatic plus annular friction pressure acting on ``zone``."""

    hydrostatic = hydrostatic_above_zone_kPa(above_parcels, zone, capacity_m3)
    pv, yp = volume_weighted_rheology(above_parcels)
    friction = annular_friction_kPa(geometry, 0.0, zone.depth_m, pump_rate_m3_per_min, pv, yp)
    return ZonePressure(hydrostatic_kPa=hydrostatic, friction_kPa=friction, frac_kPa=zone.frac_kPa)


def displaced_density(above_parcels: Sequence[Parcel]) -> float | None:
    """Density of the fluid leaving the above-zone column at surface."""

    for parcel in reversed(above_parcels):
        if parcel.volume_m3 > 1e-12:
            return parcel.density_kgm3
    return None


def volume_to_transition(
    incoming: Parcel,
    above_parcels: Sequence[Parcel],
    zone: LossZone,
    capacity_m3: float,
    total_kPa: float,
) -> float:
    """Volume of ``incoming`` that can pass before the zone reaches frac.

    Returns ``math.inf`` when the incoming fluid is no heavier than the
    fluid it displaces, since pushing it in cannot raise the pressure.
    """

    displaced = displaced_density(above_parcels)
    if displaced is None or incoming.density_kgm3 <= displaced:
        return math.inf
    delta_rho = incoming.density_kgm3 - displaced
    lpv, tvd_ratio = _linear_factors(zone, capacity_m3)
    denom = delta_rho * G * lpv * tvd_ratio
    if denom <= 0:
        return math.inf
    margin_pa = (zone.frac_kPa - total_kPa) * 1000.0
    return max(margin_pa, 0.0) / denom


def valve_decision(
    incoming: Parcel,
    above_parcels: Sequence[Parcel],
    zone: LossZone,
    capacity_m3: float,
    pressure: ZonePressure,
) -> ValveDecision:
    """Decide how much of ``incoming`` passes the zone and how much is lost."""

    volume = max(incoming.volume_m3, 0.0)
    total = pressure.total_kPa

    def decided(branch: str, passed: float, threshold: float) -> ValveDecision:
        return ValveDecision(
            branch=branch,
            parcel_name=incoming.name,
            incoming_m3=volume,
            passed_m3=passed,
            lost_m3=volume - passed,
            threshold_m3=threshold,
            total_kPa=total,
            frac_kPa=zone.frac_kPa,
        )

    if total >= zone.frac_kPa:
        return decided(BRANCH_SATURATED, 0.0, 0.0)
    threshold = volume_to_transition(incoming, above_parcels, zone, capacity_m3, total)
    if threshold <= OPENING_THRESHOLD_M3:
        return decided(BRANCH_OPENING, 0.0, threshold)
    if threshold >= volume:
        return decided(BRANCH_PASS, volume, threshold)
    return decided(BRANCH_SPLIT, threshold, threshold)


def route_through_loss_zone(
    inbound: Iterable[Parcel],
    above_parcels: Sequence[Parcel],
    zone: LossZone,
    capacity_m3: float,
    geometry: "GeometryProvider",
    pump_rate_m3_per_min: float,
) -> ZoneRouting:
    """Route parcels arriving at ``zone`` into the column above it or the formation.

    Parcels are judged in arrival order, each against the above-zone column
    as modified by the previous one.  Fluid pushed out of the top of the
    column is collected as surface returns.
    """

    routing = ZoneRouting(above=list(above_parcels))
    for parcel in inbound:
        if parcel.volume_m3 <= 1e-12:
            continue
        pressure = pressure_at_zone(routing.above, zone, capacity_m3, geometry, pump_rate_m3_per_min)
        decision = valve_decision(parcel, routing.above, zone, capacity_m3, pressure)
        routing.decisions.append(decision)
        logger.debug(
            "%s %.3f m3 at %.0f/%.0f kPa: %s (passed %.3f, lost %.3f)",
            parcel.name,
            decision.incoming_m3,
            decision.total_kPa,
            decision.frac_kPa,
            decision.branch,
            decision.passed_m3,
            decision.lost_m3,
        )
        passed, lost = split_parcel(parcel, decision.passed_m3)
        if passed.volume_m3 > 1e-12:
            routing.above, out = push_to_bottom_and_overflow_top(routing.above, passed, capacity_m3)
            routing.returns.extend(out)
        if lost.volume_m3 > 1e-12:
            routing.losses.append(lost)
    return routing


def annular_velocity_report(
    geometry: "GeometryProvider",
    top_md: float,
    bottom_md: float,
    pump_rate_m3_per_min: float,
    max_velocity_m_per_min: float | None = None,
) -> list[AnnulusSectionInfo]:
    """Annular velocity for each constant-geometry interval."""

    section_name = getattr(geometry, "annulus_section_name", None)
    rate = max(float(pump_rate_m3_per_min or 0.0), 0.0)
    infos: list[AnnulusSectionInfo] = []
    for top, bottom in geometry.annulus_intervals(top_md, bottom_md):
        mid = 0.5 * (top + bottom)
        hole = geometry.hole_id_m(mid)
        pipe = geometry.pipe_od_m(mid)
        area = max(0.0, math.pi * (hole * hole - pipe * pipe) / 4.0)
        velocity = rate / area if area > 1e-9 else 0.0
        over = max_velocity_m_per_min is not None and velocity > max_velocity_m_per_min
        infos.append(
            AnnulusSectionInfo(
                name=section_name(mid) if section_name else "",
                top_md_m=top,
                bottom_md_m=bottom,
                velocity_m_per_min=velocity,
                is_over_speed_limit=over,
            )
        )
    return infos


__all__ = [
    "G",
    "LossZone",
    "LossZoneOutcome",
    "ZonePressure",
    "ValveDecision",
    "ZoneRouting",
    "AnnulusSectionInfo",
    "active_loss_zone",
    "create_loss_zone",
    "hydrostatic_above_zone_kPa",
    "annular_friction_kPa",
    "pressure_at_zone",
    "displaced_density",
    "volume_to_transition",
    "valve_decision",
    "route_through_loss_zone",
    "annular_velocity_report",
]
