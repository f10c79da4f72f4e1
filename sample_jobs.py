"""Sample well and pump program used by the viewer and the walkthrough script."""

from __future__ import annotations

from cement_simulation import (
    STAGE_DISPLACEMENT,
    STAGE_LEAD_CEMENT,
    STAGE_OPERATION,
    STAGE_PRE_FLUSH,
    STAGE_SPACER,
    STAGE_TAIL_CEMENT,
    CementJobSimulation,
    Stage,
)
from geometry_utils import (
    AnnulusSection,
    PressureWindow,
    PressureWindowPoint,
    SectionGeometry,
    StringSection,
    TvdSampler,
)
from parcel_utils import Parcel

SHOE_MD = 2500.0
FLOAT_COLLAR_MD = 2475.0


def sample_geometry() -> SectionGeometry:
    """Intermediate casing run to 2500 m inside a previous casing and open hole."""

    annulus = [
        AnnulusSection("Surface casing", 0.0, 800.0, 0.3153),
        AnnulusSection("Open hole", 800.0, 1700.0, 0.3112),
    ]
    string = [StringSection("244.5 mm casing", 0.0, SHOE_MD, 0.2445, 0.2204)]
    return SectionGeometry(annulus, string, current_string_bottom_md=SHOE_MD)


def sample_survey() -> TvdSampler:
    return TvdSampler(
        md=[0.0, 600.0, 1200.0, 1800.0, 2500.0],
        tvd=[0.0, 600.0, 1180.0, 1700.0, 2280.0],
    )


def sample_pressure_window() -> PressureWindow:
    return PressureWindow(
        [
            PressureWindowPoint(0.0, pore_kPa=0.0, frac_kPa=0.0),
            PressureWindowPoint(1000.0, pore_kPa=10500.0, frac_kPa=15800.0),
            PressureWindowPoint(2300.0, pore_kPa=24500.0, frac_kPa=36500.0),
        ]
    )


def sample_stages() -> list[Stage]:
    return [
        Stage.from_type(STAGE_PRE_FLUSH, "Pre-flush", 4.0, 1030.0, color="#9ecae1"),
        Stage.from_type(STAGE_SPACER, "Spacer", 8.0, 1350.0, color="#fdae6b"),
        Stage.from_type(STAGE_OPERATION, "Drop bottom plug", 0.0, 0.0),
        Stage.from_type(STAGE_LEAD_CEMENT, "Lead cement", 45.0, 1500.0, color="#bdbdbd"),
        Stage.from_type(STAGE_TAIL_CEMENT, "Tail cement", 15.0, 1900.0, color="#636363"),
        Stage.from_type(STAGE_OPERATION, "Drop top plug", 0.0, 0.0),
        Stage.from_type(STAGE_DISPLACEMENT, "Water displacement", 92.0, 1000.0, color="#6baed6"),
    ]


def sample_mud() -> Parcel:
    return Parcel(volume_m3=0.0, name="Mud", density_kgm3=1250.0, plastic_viscosity_cP=25.0,
                  yield_point_Pa=9.0, color="#8c6d31")


def sample_job(initial_tank_volume_m3: float = 60.0) -> CementJobSimulation:
    window = sample_pressure_window()
    return CementJobSimulation(
        sample_stages(),
        sample_geometry(),
        mud=sample_mud(),
        string_bottom_md=FLOAT_COLLAR_MD,
        shoe_md=SHOE_MD,
        tvd=sample_survey(),
        frac_lookup=window.frac_kPa,
        initial_tank_volume_m3=initial_tank_volume_m3,
        max_velocity_m_per_min=60.0,
    )


__all__ = [
    "sample_geometry",
    "sample_survey",
    "sample_pressure_window",
    "sample_stages",
    "sample_mud",
    "sample_job",
]
