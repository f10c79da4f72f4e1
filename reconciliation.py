"""Match simulated losses to the operator's tank reading.

With a loss zone the fluid is spread over three streams: surface returns,
the column above the zone (deep-first) and formation losses.  The conveyor
belt moves fluid around that loop without changing the total volume:

* more real loss than simulated: the latest returns are pushed back onto the
  top of the column and the same volume drops out of its bottom into losses;
* fewer real losses than simulated: the latest losses are pushed back into
  the bottom of the column and the same volume leaves its top as returns.

Without a loss zone a deficit simply shortens the tail of what has been
pumped before it reaches the annulus.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Sequence

from parcel_utils import Parcel, take_from_end, take_from_start, total_volume

logger = logging.getLogger(__name__)

ADJUST_THRESHOLD_M3 = 0.01


@dataclass(frozen=True)
class ConveyorResult:
    returns: list[Parcel]
    above: list[Parcel]
    losses: list[Parcel]
    moved_m3: float


def loss_adjustment(
    expected_tank_m3: float,
    current_tank_m3: float,
    simulated_losses_m3: float,
) -> float:
    """Return actual minus simulated losses.

    Actual losses are the shortfall of the tank against its 1:1 expectation.
    """

    actual_losses = -(current_tank_m3 - expected_tank_m3)
    return actual_losses - simulated_losses_m3


def reconcile_conveyor(
    returns: Sequence[Parcel],
    above: Sequence[Parcel],
    losses: Sequence[Parcel],
    adjustment_m3: float,
) -> ConveyorResult:
    """Redistribute volume among returns, the above-zone column and losses.

    ``above`` is ordered deep-first (index ``0`` at the zone).  A positive
    ``adjustment_m3`` moves fluid towards losses, a negative one back towards
    returns.  Movement stops when the adjustment is used up or the source
    stream runs dry; the combined volume of the three streams is unchanged.
    """

    returns = list(returns)
    above = list(above)
    losses = list(losses)
    moved = 0.0

    if adjustment_m3 > ADJUST_THRESHOLD_M3:
        remaining = adjustment_m3
        while remaining > 1e-9 and returns:
            returns, taken = take_from_end(returns, remaining)
            for parcel in taken:
                vol = parcel.volume_m3
                above.append(parcel)
                above, dropped = take_from_start(above, vol)
                losses.extend(dropped)
                remaining -= vol
                moved += vol
        logger.debug("Conveyor moved %.3f m3 from returns to losses", moved)
    elif adjustment_m3 < -ADJUST_THRESHOLD_M3:
        remaining = -adjustment_m3
        while remaining > 1e-9 and losses:
            losses, taken = take_from_end(losses, remaining)
            for parcel in taken:
                vol = parcel.volume_m3
                above.insert(0, parcel)
                above, lifted = take_from_end(above, vol)
                returns.extend(lifted)
                remaining -= vol
                moved += vol
        logger.debug("Conveyor moved %.3f m3 from losses to returns", moved)

    return ConveyorResult(returns=returns, above=above, losses=losses, moved_m3=moved)


def trim_tail_for_deficit(
    expelled: Sequence[Parcel],
    deficit_m3: float,
) -> tuple[list[Parcel], list[Parcel]]:
    """Remove ``deficit_m3`` from the most recently pumped parcels.

    Returns ``(kept, trimmed)``.  Deficits at or below the adjustment
    threshold leave ``expelled`` untouched.
    """

    if deficit_m3 <= ADJUST_THRESHOLD_M3:
        return list(expelled), []
    kept, trimmed = take_from_end(expelled, min(deficit_m3, total_volume(expelled)))
    logger.debug("Trimmed %.3f m3 off the pumped tail", total_volume(trimmed))
    return kept, trimmed


__all__ = [
    "ConveyorResult",
    "loss_adjustment",
    "reconcile_conveyor",
    "trim_tail_for_deficit",
]
