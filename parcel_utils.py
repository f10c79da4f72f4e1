"""Utility functions for handling fluid parcel columns.

A column is a plain list of :class:`Parcel` objects with a fixed capacity in
m³.  The drill-string column is ordered shallow-first (index ``0`` at
surface) while annulus columns are ordered deep-first (index ``0`` at the bit
or loss-zone boundary).  In both cases fluid enters at index ``0`` and leaves
from the end of the list, so the same push helper serves both orientations.

Parcels carry no positional information; depth is implied only by the index
within a column and is recovered with :mod:`depth_utils`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Sequence

import numpy as np

INSERT_TOL = 1e-12
OVERFLOW_TOL = 1e-9
DEFAULT_PV_CP = 20.0
DEFAULT_YP_PA = 8.0


@dataclass(frozen=True)
class Parcel:
    """Contiguous slug of a single fluid."""

    volume_m3: float
    name: str
    density_kgm3: float
    is_cement: bool = False
    plastic_viscosity_cP: float = DEFAULT_PV_CP
    yield_point_Pa: float = DEFAULT_YP_PA
    color: str | None = None

    def with_volume(self, volume_m3: float) -> "Parcel":
        """Return a copy of this parcel carrying ``volume_m3``."""
        return replace(self, volume_m3=float(volume_m3))


def _coerce_float(value, default: float = 0.0) -> float:
    """Convert *value* to ``float`` when possible, otherwise return ``default``."""

    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return float(default)


def _volume(parcel: Parcel) -> float:
    return max(_coerce_float(parcel.volume_m3), 0.0)


def total_volume(parcels: Iterable[Parcel]) -> float:
    """Return the summed non-negative volume of ``parcels``."""

    return sum(_volume(p) for p in parcels)


def split_parcel(parcel: Parcel, volume_m3: float) -> tuple[Parcel, Parcel]:
    """Split ``parcel`` into ``(first, rest)`` where ``first`` holds ``volume_m3``.

    The requested volume is clamped to the parcel volume so the two halves
    always sum to the original.  All other fields are copied unchanged.
    """

    vol = _volume(parcel)
    first = min(max(_coerce_float(volume_m3), 0.0), vol)
    return parcel.with_volume(first), parcel.with_volume(vol - first)


def fill_column(template: Parcel, capacity_m3: float) -> list[Parcel]:
    """Return a column completely filled with ``template`` fluid."""

    capacity = max(_coerce_float(capacity_m3), 0.0)
    if capacity <= INSERT_TOL:
        return []
    return [template.with_volume(capacity)]


def _push_and_overflow(
    parcels: Sequence[Parcel],
    incoming: Parcel,
    capacity_m3: float,
) -> tuple[list[Parcel], list[Parcel]]:
    column = list(parcels)
    add_volume = _volume(incoming)
    if add_volume <= INSERT_TOL:
        return column, []

    column.insert(0, incoming.with_volume(add_volume))

    overflowed: list[Parcel] = []
    overflow = total_volume(column) - max(_coerce_float(capacity_m3), 0.0)
    while overflow > OVERFLOW_TOL and column:
        last = column.pop()
        vol = _volume(last)
        if vol <= overflow + OVERFLOW_TOL:
            overflowed.append(last)
            overflow -= vol
        else:
            leaving, staying = split_parcel(last, overflow)
            overflowed.append(leaving)
            column.append(staying)
            overflow = 0.0
    return column, overflowed


def push_to_top_and_overflow(
    string_parcels: Sequence[Parcel],
    incoming: Parcel,
    capacity_m3: float,
) -> tuple[list[Parcel], list[Parcel]]:
    """Push ``incoming`` into the top of the string and expel at the bit.

    ``string_parcels`` is ordered shallow (index ``0``) to deep.  The returned
    overflow list holds the parcels in the order they left the bit.
    """

    return _push_and_overflow(string_parcels, incoming, capacity_m3)


def push_to_bottom_and_overflow_top(
    annulus_parcels: Sequence[Parcel],
    incoming: Parcel,
    capacity_m3: float,
) -> tuple[list[Parcel], list[Parcel]]:
    """Push ``incoming`` into the bottom of an annulus column.

    ``annulus_parcels`` is ordered deep (index ``0``) to shallow.  Fluid
    displaced out of the top is returned in the order it would reach the
    surface.
    """

    return _push_and_overflow(annulus_parcels, incoming, capacity_m3)


def push_many(
    parcels: Sequence[Parcel],
    incoming: Iterable[Parcel],
    capacity_m3: float,
) -> tuple[list[Parcel], list[Parcel]]:
    """Push each parcel of ``incoming`` in order, collecting all overflow."""

    column = list(parcels)
    overflowed: list[Parcel] = []
    for parcel in incoming:
        column, out = _push_and_overflow(column, parcel, capacity_m3)
        overflowed.extend(out)
    return column, overflowed


def take_from_start(
    parcels: Sequence[Parcel],
    volume_m3: float,
) -> tuple[list[Parcel], list[Parcel]]:
    """Remove ``volume_m3`` from the head of ``parcels``.

    Returns ``(remaining, taken)``; ``taken`` is ordered as removed.  When the
    column holds less than requested everything is taken.
    """

    remaining = max(_coerce_float(volume_m3), 0.0)
    column = list(parcels)
    taken: list[Parcel] = []
    while remaining > OVERFLOW_TOL and column:
        head = column.pop(0)
        vol = _volume(head)
        if vol <= remaining + OVERFLOW_TOL:
            taken.append(head)
            remaining -= vol
            continue
        first, rest = split_parcel(head, remaining)
        taken.append(first)
        column.insert(0, rest)
        remaining = 0.0
    return column, taken


def take_from_end(
    parcels: Sequence[Parcel],
    volume_m3: float,
) -> tuple[list[Parcel], list[Parcel]]:
    """Remove ``volume_m3`` from the tail of ``parcels``.

    Returns ``(remaining, taken)`` where ``taken`` lists the removed parcels
    starting with the last element of the original list.
    """

    remaining = max(_coerce_float(volume_m3), 0.0)
    column = list(parcels)
    taken: list[Parcel] = []
    while remaining > OVERFLOW_TOL and column:
        tail = column.pop()
        vol = _volume(tail)
        if vol <= remaining + OVERFLOW_TOL:
            taken.append(tail)
            remaining -= vol
            continue
        keep, cut = split_parcel(tail, vol - remaining)
        taken.append(cut)
        column.append(keep)
        remaining = 0.0
    return column, taken


def merge_parcels_by_name(parcels: Iterable[Parcel]) -> list[Parcel]:
    """Coalesce consecutive parcels sharing the same fluid name."""

    merged: list[Parcel] = []
    for parcel in parcels:
        vol = _volume(parcel)
        if vol <= INSERT_TOL:
            continue
        if merged and merged[-1].name == parcel.name:
            merged[-1] = merged[-1].with_volume(merged[-1].volume_m3 + vol)
        else:
            merged.append(parcel.with_volume(vol))
    return merged


def cement_volume(parcels: Iterable[Parcel]) -> float:
    """Return the total volume of cement parcels."""

    return sum(_volume(p) for p in parcels if p.is_cement)


def volume_weighted_rheology(
    parcels: Sequence[Parcel],
    default_pv: float = DEFAULT_PV_CP,
    default_yp: float = DEFAULT_YP_PA,
) -> tuple[float, float]:
    """Return volume-weighted ``(plastic_viscosity_cP, yield_point_Pa)``."""

    weights = np.array([_volume(p) for p in parcels], dtype=float)
    if weights.size == 0 or weights.sum() <= INSERT_TOL:
        return float(default_pv), float(default_yp)
    pv = np.array([_coerce_float(p.plastic_viscosity_cP, default_pv) for p in parcels], dtype=float)
    yp = np.array([_coerce_float(p.yield_point_Pa, default_yp) for p in parcels], dtype=float)
    return float(np.average(pv, weights=weights)), float(np.average(yp, weights=weights))


__all__ = [
    "Parcel",
    "total_volume",
    "split_parcel",
    "fill_column",
    "push_to_top_and_overflow",
    "push_to_bottom_and_overflow_top",
    "push_many",
    "take_from_start",
    "take_from_end",
    "merge_parcels_by_name",
    "cement_volume",
    "volume_weighted_rheology",
]
