"""
Per-event accumulation with first-hit-wins semantics.

A photon crossing the detector usually produces several steps inside it.
Only the first registration of each observable counts, so every field is
written at most once per event.

An energy of exactly 0.0 is never recorded: it leaves the field unset and a
later nonzero value is still accepted. Unset fields read back as UNSET (0.0),
so a genuine 0.0 hit and "no hit" look the same in the histograms.
"""

from typing import Optional

from xray_scoring.scoring.run import RunStatistics

UNSET = 0.0


class EventRecord:
    """Observables of one event. None means not yet recorded."""

    __slots__ = ('primary', 'fluorescence')

    def __init__(self):
        self.primary: Optional[float] = None
        self.fluorescence: Optional[float] = None

    @property
    def primary_energy(self) -> float:
        """Energy incident on the detector [keV], UNSET if none."""
        return UNSET if self.primary is None else self.primary

    @property
    def fluorescence_energy(self) -> float:
        """Energy incident from a photoelectric-effect photon [keV], UNSET if none."""
        return UNSET if self.fluorescence is None else self.fluorescence

    def as_tuple(self):
        return self.primary_energy, self.fluorescence_energy

    def __repr__(self) -> str:
        return (f"EventRecord(primary={self.primary_energy:g}, "
                f"fluorescence={self.fluorescence_energy:g})")


class EventAccumulator:
    """
    Collects the observables of the event in flight and hands them to the
    run statistics when the event ends.

    Example:
        accumulator = EventAccumulator(statistics)
        accumulator.begin_event()
        accumulator.record_primary(4.5)
        accumulator.record_primary(6.0)   # ignored, primary already set
        accumulator.end_event()           # folds (4.5, 0.0)
    """

    def __init__(self, statistics: RunStatistics):
        """
        Parameters:
            statistics: Run statistics receiving one fold per event
        """
        self.statistics = statistics
        self._record: Optional[EventRecord] = None

    @property
    def record(self) -> EventRecord:
        if self._record is None:
            raise RuntimeError("No event in progress: call begin_event() first")
        return self._record

    @property
    def in_event(self) -> bool:
        return self._record is not None

    def begin_event(self) -> EventRecord:
        """Reset both fields to unset."""
        self._record = EventRecord()
        return self._record

    def record_primary(self, energy: float):
        record = self.record
        if record.primary is None and energy != UNSET:
            record.primary = energy

    def record_fluorescence(self, energy: float):
        record = self.record
        if record.fluorescence is None and energy != UNSET:
            record.fluorescence = energy

    def end_event(self) -> EventRecord:
        """Fold the event into the run statistics, even if nothing was recorded."""
        record = self.record
        self.statistics.fold_event(record.primary_energy, record.fluorescence_energy)
        self._record = None
        return record
