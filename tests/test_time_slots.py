import pytest

from carwash.domain.scheduling.time_slots import (
    InvalidTimeSlot,
    TimeSlot,
    parse_bookable_slot,
    slot_grid,
)


@pytest.mark.parametrize("raw", ["14:30", "2:30 PM", "2:30PM", " 2:30 pm ", "02:30 PM"])
def test_both_formats_parse_to_the_same_slot(raw):
    assert TimeSlot.parse(raw) == TimeSlot(14 * 60 + 30)


def test_midnight_and_noon_in_12_hour_format():
    assert TimeSlot.parse("12:00 AM").minutes == 0
    assert TimeSlot.parse("12:00 PM").minutes == 12 * 60


@pytest.mark.parametrize("raw", ["", "25:00", "9", "half past two", "13:00 PM"])
def test_unparsable_slot_is_rejected(raw):
    with pytest.raises(InvalidTimeSlot):
        TimeSlot.parse(raw)


def test_formatting():
    slot = TimeSlot.parse("9:00 AM")
    assert slot.to_24h() == "09:00"
    assert slot.to_12h() == "9:00 AM"
    assert slot.keys() == ("09:00", "9:00 AM")
    assert str(TimeSlot.parse("17:00")) == "17:00"


def test_default_grid_runs_from_opening_to_closing_every_half_hour():
    grid = slot_grid()
    assert grid[0].to_24h() == "09:00"
    assert grid[-1].to_24h() == "17:00"
    assert len(grid) == 17
    assert all(b.minutes - a.minutes == 30 for a, b in zip(grid, grid[1:]))


def test_custom_grid():
    grid = slot_grid("10:00", "11:00", 20)
    assert [s.to_24h() for s in grid] == ["10:00", "10:20", "10:40", "11:00"]


@pytest.mark.parametrize("raw", ["14:15", "8:30 AM", "17:30", "6:00 PM"])
def test_slots_off_the_grid_are_not_bookable(raw):
    with pytest.raises(InvalidTimeSlot):
        parse_bookable_slot(raw)


def test_bookable_slot():
    assert parse_bookable_slot("2:30 PM") == TimeSlot.parse("14:30")
