"""Wellbore geometry, survey and pressure-window collaborators.

The simulation engine only talks to :class:`GeometryProvider`; the
section-based :class:`SectionGeometry` below is the implementation used by
the job controller, the viewer and the tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import Iterable, Protocol, Sequence

import numpy as np

from depth_utils import bisect_length

G = 9.80665


class GeometryProvider(Protocol):
    """Geometry queries consumed by the simulation engine.

    All depths are measured depths in metres and all volumes are m³.
    """

    def volume_in_annulus_m3(self, top_md: float, bottom_md: float) -> float: ...

    def volume_in_string_m3(self, top_md: float, bottom_md: float) -> float: ...

    def length_for_string_volume_m(self, from_md: float, volume_m3: float) -> float: ...

    def hole_id_m(self, md: float) -> float: ...

    def pipe_od_m(self, md: float) -> float: ...

    def annulus_intervals(self, top_md: float, bottom_md: float) -> list[tuple[float, float]]: ...


@dataclass(frozen=True)
class AnnulusSection:
    """Open hole or casing interval with a constant inner diameter."""

    name: str
    top_md: float
    length_m: float
    inner_diameter_m: float

    @property
    def bottom_md(self) -> float:
        return self.top_md + self.length_m


@dataclass(frozen=True)
class StringSection:
    """Drill-string or casing-string interval with constant pipe diameters."""

    name: str
    top_md: float
    length_m: float
    outer_diameter_m: float
    inner_diameter_m: float

    @property
    def bottom_md(self) -> float:
        return self.top_md + self.length_m


def _circle_area(diameter_m: float) -> float:
    d = max(float(diameter_m or 0.0), 0.0)
    return math.pi * d * d / 4.0


def _covering(sections: Sequence, md: float):
    for sec in sections:
        if sec.top_md <= md <= sec.bottom_md:
            return sec
    return None


class SectionGeometry:
    """Geometry provider backed by annulus and string section tables.

    ``current_string_bottom_md`` controls how far down pipe is present; below
    it the annulus is the full hole and the string holds no volume.
    """

    def __init__(
        self,
        annulus: Iterable[AnnulusSection],
        string: Iterable[StringSection],
        current_string_bottom_md: float | None = None,
    ) -> None:
        self.annulus = sorted(annulus, key=lambda s: s.top_md)
        self.string = sorted(string, key=lambda s: s.top_md)
        if current_string_bottom_md is None:
            current_string_bottom_md = max((s.bottom_md for s in self.string), default=0.0)
        self.current_string_bottom_md = float(current_string_bottom_md)

    @property
    def max_depth_m(self) -> float:
        return max(
            max((s.bottom_md for s in self.annulus), default=0.0),
            max((s.bottom_md for s in self.string), default=0.0),
        )

    def hole_id_m(self, md: float) -> float:
        sec = _covering(self.annulus, md)
        if sec is None:
            return 0.0
        return max(sec.inner_diameter_m, 0.0)

    def pipe_od_m(self, md: float) -> float:
        if md > self.current_string_bottom_md:
            return 0.0
        sec = _covering(self.string, md)
        if sec is None:
            return 0.0
        return max(sec.outer_diameter_m, 0.0)

    def pipe_id_m(self, md: float) -> float:
        if md > self.current_string_bottom_md:
            return 0.0
        sec = _covering(self.string, md)
        if sec is None:
            return 0.0
        return max(sec.inner_diameter_m, 0.0)

    def annulus_area_m2(self, md: float) -> float:
        return max(0.0, _circle_area(self.hole_id_m(md)) - _circle_area(self.pipe_od_m(md)))

    def annulus_section_name(self, md: float) -> str:
        sec = _covering(self.annulus, md)
        return sec.name if sec is not None else ""

    def _boundaries(self, top_md: float, bottom_md: float) -> list[float]:
        points = {top_md, bottom_md}
        for sec in (*self.annulus, *self.string):
            for md in (sec.top_md, sec.bottom_md):
                if top_md < md < bottom_md:
                    points.add(md)
        if top_md < self.current_string_bottom_md < bottom_md:
            points.add(self.current_string_bottom_md)
        return sorted(points)

    def annulus_intervals(self, top_md: float, bottom_md: float) -> list[tuple[float, float]]:
        """Return constant-geometry sub-intervals of ``[top_md, bottom_md]``."""
        top = max(float(top_md), 0.0)
        bottom = float(bottom_md)
        if bottom <= top:
            return []
        pts = self._boundaries(top, bottom)
        return [(a, b) for a, b in zip(pts[:-1], pts[1:]) if b > a]

    def volume_in_annulus_m3(self, top_md: float, bottom_md: float) -> float:
        total = 0.0
        for a, b in self.annulus_intervals(top_md, bottom_md):
            total += self.annulus_area_m2(0.5 * (a + b)) * (b - a)
        return total

    def volume_in_string_m3(self, top_md: float, bottom_md: float) -> float:
        bottom = min(float(bottom_md), self.current_string_bottom_md)
        total = 0.0
        for a, b in self.annulus_intervals(top_md, bottom):
            total += _circle_area(self.pipe_id_m(0.5 * (a + b))) * (b - a)
        return total

    def length_for_string_volume_m(self, from_md: float, volume_m3: float) -> float:
        span = max(self.current_string_bottom_md - float(from_md), 0.0)
        return bisect_length(
            self.volume_in_string_m3,
            volume_m3,
            float(from_md),
            span,
            upward=False,
        )


class TvdSampler:
    """MD→TVD interpolation over a survey table.

    Stations are sorted by MD and duplicates dropped; queries outside the
    table clamp to the first/last station.  An empty table maps MD to itself.
    """

    def __init__(self, md: Sequence[float] = (), tvd: Sequence[float] = ()) -> None:
        pairs = sorted(zip(md, tvd), key=lambda p: p[0])
        mds: list[float] = []
        tvds: list[float] = []
        for m, t in pairs:
            if mds and m <= mds[-1]:
                continue
            mds.append(float(m))
            tvds.append(float(m if t is None else t))
        self._md = np.array(mds, dtype=float)
        self._tvd = np.array(tvds, dtype=float)

    def __call__(self, md: float) -> float:
        return self.tvd(md)

    def tvd(self, md: float) -> float:
        if self._md.size == 0:
            return float(md)
        return float(np.interp(md, self._md, self._tvd))


@dataclass(frozen=True)
class PressureWindowPoint:
    depth_m: float
    pore_kPa: float | None = None
    frac_kPa: float | None = None


@dataclass
class PressureWindow:
    """Pore/fracture pressure table indexed by TVD."""

    points: list[PressureWindowPoint] = field(default_factory=list)

    def _interpolate(self, tvd_m: float, attr: str) -> float | None:
        pts = sorted(self.points, key=lambda p: p.depth_m)
        if not pts:
            return None
        if tvd_m <= pts[0].depth_m:
            return getattr(pts[0], attr)
        if tvd_m >= pts[-1].depth_m:
            return getattr(pts[-1], attr)
        for a, b in zip(pts[:-1], pts[1:]):
            if a.depth_m <= tvd_m <= b.depth_m:
                ya = getattr(a, attr)
                yb = getattr(b, attr)
                if ya is None or yb is None:
                    return None
                if b.depth_m == a.depth_m:
                    return ya
                t = (tvd_m - a.depth_m) / (b.depth_m - a.depth_m)
                return ya + t * (yb - ya)
        return None

    def pore_kPa(self, tvd_m: float) -> float | None:
        return self._interpolate(tvd_m, "pore_kPa")

    def frac_kPa(self, tvd_m: float) -> float | None:
        return self._interpolate(tvd_m, "frac_kPa")

    def max_density_kgm3(self, tvd_m: float) -> float | None:
        """Equivalent mud weight at which the formation would fracture."""
        frac = self.frac_kPa(tvd_m)
        if frac is None or tvd_m <= 0:
            return None
        return frac * 1000.0 / (G * tvd_m)


__all__ = [
    "GeometryProvider",
    "AnnulusSection",
    "StringSection",
    "SectionGeometry",
    "TvdSampler",
    "PressureWindowPoint",
    "PressureWindow",
]
