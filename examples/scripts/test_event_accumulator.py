"""
Event accumulator tests: first-hit-wins and the 0.0 unset value.
"""

import pytest

from xray_scoring.scoring.event import UNSET, EventAccumulator
from xray_scoring.scoring.run import RunStatistics


@pytest.fixture
def statistics():
    return RunStatistics()


@pytest.fixture
def accumulator(statistics):
    accumulator = EventAccumulator(statistics)
    accumulator.begin_event()
    return accumulator


def test_first_primary_wins(accumulator):
    accumulator.record_primary(4.5)
    accumulator.record_primary(6.0)
    assert accumulator.record.primary_energy == 4.5


def test_first_fluorescence_wins(accumulator):
    accumulator.record_fluorescence(4.51)
    accumulator.record_fluorescence(4.93)
    assert accumulator.record.fluorescence_energy == 4.51


def test_fields_are_independent(accumulator):
    accumulator.record_primary(5.9)
    assert accumulator.record.fluorescence_energy == UNSET
    accumulator.record_fluorescence(4.51)
    assert accumulator.record.as_tuple() == (5.9, 4.51)


def test_zero_energy_leaves_field_unset(accumulator):
    accumulator.record_primary(0.0)
    assert accumulator.record.primary is None
    assert accumulator.record.primary_energy == UNSET

    # A later nonzero value is still accepted
    accumulator.record_primary(3.0)
    assert accumulator.record.primary_energy == 3.0


def test_begin_event_resets(accumulator):
    accumulator.record_primary(4.5)
    accumulator.record_fluorescence(4.5)
    accumulator.end_event()

    record = accumulator.begin_event()
    assert record.as_tuple() == (UNSET, UNSET)


def test_end_event_folds_even_without_hits(accumulator, statistics):
    record = accumulator.end_event()

    assert record.as_tuple() == (0.0, 0.0)
    assert statistics.n_events == 1
    assert statistics['EDet'].entries == 1
    assert statistics['EDetFluo'].entries == 1
    # Unset events land in the first bin
    assert statistics['EDet'].bin_contents[0] == 1.0


def test_n_events_give_n_entries(statistics):
    accumulator = EventAccumulator(statistics)
    for i in range(25):
        accumulator.begin_event()
        if i % 2:
            accumulator.record_primary(1.0 + 0.1 * i)
        accumulator.end_event()

    assert statistics['EDet'].entries == 25
    assert statistics['EDetFluo'].entries == 25


def test_recording_outside_event_raises(statistics):
    accumulator = EventAccumulator(statistics)
    assert not accumulator.in_event
    with pytest.raises(RuntimeError):
        accumulator.record_primary(4.5)
    with pytest.raises(RuntimeError):
        accumulator.end_event()
