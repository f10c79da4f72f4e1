import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from parcel_utils import (
    Parcel,
    cement_volume,
    fill_column,
    merge_parcels_by_name,
    push_many,
    push_to_bottom_and_overflow_top,
    push_to_top_and_overflow,
    split_parcel,
    take_from_end,
    take_from_start,
    total_volume,
    volume_weighted_rheology,
)

MUD = Parcel(0.0, "Mud", 1200.0)
SPACER = Parcel(0.0, "Spacer", 1100.0, plastic_viscosity_cP=30.0, yield_point_Pa=12.0)
CEMENT = Parcel(0.0, "Tail", 1900.0, is_cement=True, plastic_viscosity_cP=80.0, yield_point_Pa=15.0)


def _summary(parcels):
    return [(p.name, pytest.approx(p.volume_m3, abs=1e-12)) for p in parcels]


def test_pumping_spacer_into_full_string_expels_mud_at_bit():
    string = fill_column(MUD, 10.0)

    string, expelled = push_to_top_and_overflow(string, SPACER.with_volume(3.0), 10.0)

    assert _summary(string) == [("Spacer", 3.0), ("Mud", 7.0)]
    assert _summary(expelled) == [("Mud", 3.0)]


def test_spacer_at_bit_displaces_mud_out_of_annulus():
    annulus = fill_column(MUD, 20.0)

    annulus, overflow = push_to_bottom_and_overflow_top(annulus, SPACER.with_volume(3.0), 20.0)

    assert _summary(annulus) == [("Spacer", 3.0), ("Mud", 17.0)]
    assert _summary(overflow) == [("Mud", 3.0)]
    assert cement_volume(overflow) == 0.0


def test_overflow_is_returned_oldest_first_and_splits_the_last_parcel():
    column = [CEMENT.with_volume(2.0), SPACER.with_volume(3.0), MUD.with_volume(5.0)]

    column, overflow = push_to_top_and_overflow(column, MUD.with_volume(6.0), 10.0)

    assert _summary(overflow) == [("Mud", 5.0), ("Spacer", 1.0)]
    assert _summary(column) == [("Mud", 6.0), ("Tail", 2.0), ("Spacer", 2.0)]


def test_push_larger_than_capacity_passes_incoming_fluid_through():
    column = fill_column(MUD, 10.0)

    column, overflow = push_to_top_and_overflow(column, SPACER.with_volume(25.0), 10.0)

    assert _summary(column) == [("Spacer", 10.0)]
    assert _summary(overflow) == [("Mud", 10.0), ("Spacer", 15.0)]


@pytest.mark.parametrize("used, incoming", [(0.0, 3.0), (4.0, 3.0), (4.0, 8.0), (10.0, 0.5), (9.999, 12.0)])
def test_overflow_volume_matches_free_space(used, incoming):
    capacity = 10.0
    column = [MUD.with_volume(used)] if used > 0 else []

    column, overflow = push_to_top_and_overflow(column, SPACER.with_volume(incoming), capacity)

    expected_overflow = max(0.0, incoming - (capacity - used))
    assert total_volume(overflow) == pytest.approx(expected_overflow, abs=1e-9)
    assert total_volume(overflow) + total_volume(column) == pytest.approx(used + incoming, abs=1e-9)


def test_column_stays_at_capacity_through_a_pump_sequence():
    capacity = 12.5
    column = fill_column(MUD, capacity)
    volumes = [0.3, 4.0, 7.77, 0.001, 13.0, 2.2, 1e-7, 5.5]
    fluids = [SPACER, CEMENT, MUD]

    for i, vol in enumerate(volumes):
        column, _ = push_to_bottom_and_overflow_top(column, fluids[i % 3].with_volume(vol), capacity)
        assert total_volume(column) == pytest.approx(capacity, abs=1e-9)


def test_zero_volume_parcels_are_not_inserted():
    column = fill_column(MUD, 5.0)

    after, overflow = push_to_top_and_overflow(column, SPACER.with_volume(1e-13), 5.0)

    assert after == column
    assert overflow == []


def test_push_does_not_mutate_input_column():
    column = fill_column(MUD, 5.0)
    snapshot = list(column)

    push_to_top_and_overflow(column, SPACER.with_volume(2.0), 5.0)

    assert column == snapshot


def test_push_many_collects_overflow_in_order():
    column = fill_column(MUD, 4.0)

    column, overflow = push_many(column, [SPACER.with_volume(3.0), CEMENT.with_volume(3.0)], 4.0)

    assert _summary(column) == [("Tail", 3.0), ("Spacer", 1.0)]
    assert _summary(overflow) == [("Mud", 3.0), ("Mud", 1.0), ("Spacer", 2.0)]


def test_split_parcel_copies_identity_and_conserves_volume():
    first, rest = split_parcel(CEMENT.with_volume(5.0), 1.25)

    assert first.volume_m3 + rest.volume_m3 == pytest.approx(5.0)
    for part in (first, rest):
        assert part.name == "Tail"
        assert part.is_cement
        assert part.density_kgm3 == 1900.0
        assert part.plastic_viscosity_cP == 80.0
        assert part.yield_point_Pa == 15.0


def test_take_from_start_and_end_split_as_needed():
    column = [CEMENT.with_volume(2.0), SPACER.with_volume(3.0), MUD.with_volume(5.0)]

    rest, taken = take_from_start(column, 2.5)
    assert _summary(taken) == [("Tail", 2.0), ("Spacer", 0.5)]
    assert _summary(rest) == [("Spacer", 2.5), ("Mud", 5.0)]

    rest, taken = take_from_end(column, 6.0)
    assert _summary(taken) == [("Mud", 5.0), ("Spacer", 1.0)]
    assert _summary(rest) == [("Tail", 2.0), ("Spacer", 2.0)]


def test_take_more_than_available_empties_the_column():
    rest, taken = take_from_end([MUD.with_volume(1.0)], 3.0)

    assert rest == []
    assert total_volume(taken) == pytest.approx(1.0)


def test_merge_parcels_by_name_only_merges_neighbours():
    merged = merge_parcels_by_name(
        [MUD.with_volume(1.0), MUD.with_volume(2.0), SPACER.with_volume(1.0), MUD.with_volume(0.5)]
    )

    assert _summary(merged) == [("Mud", 3.0), ("Spacer", 1.0), ("Mud", 0.5)]


def test_volume_weighted_rheology():
    pv, yp = volume_weighted_rheology([SPACER.with_volume(1.0), CEMENT.with_volume(3.0)])

    assert pv == pytest.approx((30.0 * 1.0 + 80.0 * 3.0) / 4.0)
    assert yp == pytest.approx((12.0 * 1.0 + 15.0 * 3.0) / 4.0)


def test_volume_weighted_rheology_defaults_when_empty():
    assert volume_weighted_rheology([]) == (20.0, 8.0)
