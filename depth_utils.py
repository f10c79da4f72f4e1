"""Translate volume-based parcel columns into measured-depth segments.

The helpers here never assume anything about the well geometry beyond the
monotonicity of the injected volume function: a longer interval never holds
less fluid.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

import pandas as pd

from parcel_utils import Parcel

if TYPE_CHECKING:
    from geometry_utils import GeometryProvider

BISECT_TOL_M = 1e-6
BISECT_MAX_ITER = 50
MIN_SEGMENT_HEIGHT_M = 0.5
MERGE_TOL_M = 1e-6


@dataclass(frozen=True)
class FluidSegment:
    """Depth interval occupied by one fluid."""

    top_md_m: float
    bottom_md_m: float
    name: str
    density_kgm3: float
    is_cement: bool = False
    top_tvd_m: float = 0.0
    bottom_tvd_m: float = 0.0
    color: str | None = None

    @property
    def length_m(self) -> float:
        return self.bottom_md_m - self.top_md_m


def _identity(md: float) -> float:
    return md


def bisect_length(
    volume_between: Callable[[float, float], float],
    target_volume: float,
    reference_md: float,
    span: float,
    *,
    upward: bool = True,
) -> float:
    """Return the interval length holding ``target_volume``.

    With ``upward=True`` the bottom of the interval is fixed at
    ``reference_md`` and the top moves up (never above surface); otherwise
    the top is fixed and the bottom moves down.  The search brackets
    ``[0, span]`` and stops after ``BISECT_MAX_ITER`` halvings or once the
    bracket is narrower than ``BISECT_TOL_M``; the bracket midpoint is
    returned.
    """

    try:
        target = float(target_volume)
    except (TypeError, ValueError):
        return 0.0
    if target <= 1e-12:
        return 0.0

    lo = 0.0
    hi = max(float(span or 0.0), 0.0)
    iterations = 0
    while (hi - lo) > BISECT_TOL_M and iterations < BISECT_MAX_ITER:
        iterations += 1
        mid = 0.5 * (lo + hi)
        if upward:
            vol = volume_between(max(0.0, reference_md - mid), reference_md)
        else:
            vol = volume_between(reference_md, reference_md + mid)
        if vol < target:
            lo = mid
        else:
            hi = mid
    return 0.5 * (lo + hi)


def length_for_annulus_volume_from_bottom(
    geometry: "GeometryProvider",
    volume_m3: float,
    bottom_md: float,
    used_from_bottom: float = 0.0,
    top_limit_md: float = 0.0,
) -> float:
    """Return the annular length above ``bottom_md - used_from_bottom`` holding ``volume_m3``."""

    start_md = max(0.0, bottom_md - used_from_bottom)
    return bisect_length(
        geometry.volume_in_annulus_m3,
        volume_m3,
        start_md,
        max(start_md - top_limit_md, 0.0),
        upward=True,
    )


def segments_from_string_parcels(
    parcels: Sequence[Parcel],
    max_depth: float,
    geometry: "GeometryProvider",
    tvd: Callable[[float], float] | None = None,
    min_segment_height: float = MIN_SEGMENT_HEIGHT_M,
) -> list[FluidSegment]:
    """Convert a shallow-first string column into segments from surface down."""

    tvd = tvd or _identity
    segments: list[FluidSegment] = []
    current_top = 0.0
    for parcel in parcels:
        vol = max(parcel.volume_m3, 0.0)
        if vol <= 1e-12:
            continue
        length = geometry.length_for_string_volume_m(current_top, vol)
        if length <= 1e-12:
            continue
        bottom = min(current_top + length, max_depth)
        # slivers still advance the running depth
        if bottom > current_top + min_segment_height:
            segments.append(
                FluidSegment(
                    top_md_m=current_top,
                    bottom_md_m=bottom,
                    name=parcel.name,
                    density_kgm3=parcel.density_kgm3,
                    is_cement=parcel.is_cement,
                    top_tvd_m=tvd(current_top),
                    bottom_tvd_m=tvd(bottom),
                    color=parcel.color,
                )
            )
        current_top = bottom
        if current_top >= max_depth - 1e-9:
            break
    return segments


def segments_from_annulus_parcels(
    parcels: Sequence[Parcel],
    bottom_md: float,
    geometry: "GeometryProvider",
    tvd: Callable[[float], float] | None = None,
    top_md: float = 0.0,
    min_segment_height: float = MIN_SEGMENT_HEIGHT_M,
) -> list[FluidSegment]:
    """Convert a deep-first annulus column into segments from ``bottom_md`` up.

    The result is sorted shallow to deep.
    """

    tvd = tvd or _identity
    segments: list[FluidSegment] = []
    used_from_bottom = 0.0
    span = bottom_md - top_md
    for parcel in parcels:
        vol = max(parcel.volume_m3, 0.0)
        if vol <= 1e-12:
            continue
        length = length_for_annulus_volume_from_bottom(
            geometry, vol, bottom_md, used_from_bottom, top_limit_md=top_md
        )
        if length <= 1e-12:
            continue
        seg_top = max(top_md, bottom_md - used_from_bottom - length)
        seg_bottom = max(top_md, bottom_md - used_from_bottom)
        if seg_bottom > seg_top + min_segment_height:
            segments.append(
                FluidSegment(
                    top_md_m=seg_top,
                    bottom_md_m=seg_bottom,
                    name=parcel.name,
                    density_kgm3=parcel.density_kgm3,
                    is_cement=parcel.is_cement,
                    top_tvd_m=tvd(seg_top),
                    bottom_tvd_m=tvd(seg_bottom),
                    color=parcel.color,
                )
            )
        used_from_bottom += length
        if used_from_bottom >= span - 1e-9:
            break
    return sorted(segments, key=lambda s: s.top_md_m)


def merge_adjacent_segments(
    segments: Iterable[FluidSegment],
    tol: float = MERGE_TOL_M,
) -> list[FluidSegment]:
    """Coalesce touching segments of the same fluid for display."""

    merged: list[FluidSegment] = []
    for seg in sorted(segments, key=lambda s: s.top_md_m):
        if merged:
            prev = merged[-1]
            if prev.name == seg.name and abs(prev.bottom_md_m - seg.top_md_m) <= tol:
                merged[-1] = replace(
                    prev,
                    bottom_md_m=seg.bottom_md_m,
                    bottom_tvd_m=seg.bottom_tvd_m,
                )
                continue
        merged.append(seg)
    return merged


def cement_tops(segments: Iterable[FluidSegment]) -> list[FluidSegment]:
    """Return only the cement segments, shallow first."""

    return sorted((s for s in segments if s.is_cement), key=lambda s: s.top_md_m)


SEGMENT_COLUMNS = [
    "Fluid",
    "Top MD (m)",
    "Bottom MD (m)",
    "Top TVD (m)",
    "Bottom TVD (m)",
    "Length (m)",
    "Density (kg/m³)",
    "Cement",
]


def segments_to_frame(segments: Iterable[FluidSegment]) -> pd.DataFrame:
    """Return ``segments`` as a table with unit-labelled columns."""

    rows = [
        {
            "Fluid": s.name,
            "Top MD (m)": s.top_md_m,
            "Bottom MD (m)": s.bottom_md_m,
            "Top TVD (m)": s.top_tvd_m,
            "Bottom TVD (m)": s.bottom_tvd_m,
            "Length (m)": s.length_m,
            "Density (kg/m³)": s.density_kgm3,
            "Cement": s.is_cement,
        }
        for s in segments
    ]
    return pd.DataFrame(rows, columns=SEGMENT_COLUMNS)


__all__ = [
    "FluidSegment",
    "bisect_length",
    "length_for_annulus_volume_from_bottom",
    "segments_from_string_parcels",
    "segments_from_annulus_parcels",
    "merge_adjacent_segments",
    "cement_tops",
    "segments_to_frame",
]
