"""
Run-level aggregation of per-event observables.

Each worker owns one RunStatistics for the duration of a run. Nothing is
shared while events are processed; at the end of the run the coordinator
reduces all worker statistics with RunStatistics.merged() and persists the
result.
"""

from collections import OrderedDict
from typing import Iterable, NamedTuple, Optional, Sequence

import numpy as np

from xray_scoring.core.errors import ConfigurationError
from xray_scoring.core.units import format_energy, keV
from xray_scoring.scoring.histogram import Histogram1D


class HistogramSpec(NamedTuple):
    """Binning of one run histogram (energies in keV)."""

    name: str
    title: str
    n_bins: int
    low: float
    high: float


DEFAULT_HISTOGRAMS = (
    HistogramSpec('EDet', 'Photon Energy Incident on the Detector',
                  1000, 0.0, 7.0 * keV),
    HistogramSpec('EDetFluo', 'Photo-Electric Effect Photon Energy Incident on the Detector',
                  1000, 0.0, 7.0 * keV),
)


class RunStatistics:
    """
    Histogram set for one run on one worker.

    The first histogram receives the primary (first-hit) energy of each
    event, the second the fluorescence energy.
    """

    def __init__(self, specs: Sequence[HistogramSpec] = DEFAULT_HISTOGRAMS):
        """
        Parameters:
            specs: Exactly two histogram specs, (primary, fluorescence)

        Raises:
            ConfigurationError: wrong number of specs, duplicate names or
                invalid binning
        """
        specs = tuple(HistogramSpec(*spec) for spec in specs)
        if len(specs) != 2:
            raise ConfigurationError(f"Expected 2 histogram specs (primary, fluorescence), "
                                     f"got {len(specs)}")
        if specs[0].name == specs[1].name:
            raise ConfigurationError(f"Histogram names must be unique, got '{specs[0].name}' twice")

        self.specs = specs
        self.histograms = OrderedDict()
        for spec in specs:
            try:
                self.histograms[spec.name] = Histogram1D(*spec)
            except ValueError as exc:
                raise ConfigurationError(str(exc)) from exc

        self.primary, self.fluorescence = self.histograms.values()
        self.n_events = 0

    def fold_event(self, primary_energy: float, fluorescence_energy: float):
        """Insert one event: one sample into each histogram."""
        self.primary.fill(primary_energy)
        self.fluorescence.fill(fluorescence_energy)
        self.n_events += 1

    def fold_events(self, primary_energies: np.ndarray, fluorescence_energies: np.ndarray):
        """Insert many events at once; equivalent to repeated fold_event()."""
        if len(primary_energies) != len(fluorescence_energies):
            raise ValueError(f"Got {len(primary_energies)} primary and "
                             f"{len(fluorescence_energies)} fluorescence energies")
        self.primary.fill_array(primary_energies)
        self.fluorescence.fill_array(fluorescence_energies)
        self.n_events += len(primary_energies)

    def __getitem__(self, name: str) -> Histogram1D:
        return self.histograms[name]

    def __iter__(self):
        return iter(self.histograms.values())

    @property
    def has_samples(self) -> bool:
        return any(histogram.entries > 0 for histogram in self.histograms.values())

    def merge(self, other: 'RunStatistics'):
        """
        Add another worker's statistics in-place.

        Raises:
            ValueError: histogram names or binning differ
        """
        if list(self.histograms) != list(other.histograms):
            raise ValueError(f"Cannot merge histogram sets {list(other.histograms)} "
                             f"into {list(self.histograms)}")
        for name, histogram in self.histograms.items():
            histogram.add(other.histograms[name])
        self.n_events += other.n_events

    @classmethod
    def merged(cls, parts: Iterable['RunStatistics'],
               specs: Optional[Sequence[HistogramSpec]] = None) -> 'RunStatistics':
        """
        Reduce per-worker statistics into a new result set.

        Parameters:
            parts: Worker statistics (left untouched)
            specs: Binning of the result; defaults to that of the first part
        """
        parts = list(parts)
        if specs is None:
            specs = parts[0].specs if parts else DEFAULT_HISTOGRAMS
        result = cls(specs)
        for part in parts:
            result.merge(part)
        return result

    def summary(self) -> dict:
        """Per-histogram entries, mean and rms [keV]."""
        return {
            name: {
                'entries': histogram.entries,
                'mean': histogram.mean(),
                'rms': histogram.rms(),
            }
            for name, histogram in self.histograms.items()
        }

    def report(self, is_master: bool = True) -> bool:
        """
        Print mean and rms of every histogram.

        Returns:
            False when there is nothing to report (no samples yet)
        """
        if not self.has_samples:
            return False

        print("\n ----> print histograms statistic ", end="")
        if is_master:
            print("for the entire run \n")
        else:
            print("for the local thread \n")

        for name, histogram in self.histograms.items():
            print(f" {name} : mean = {format_energy(histogram.mean())} "
                  f"rms = {format_energy(histogram.rms())}")
        return True

    def __repr__(self) -> str:
        names = ", ".join(self.histograms)
        return f"RunStatistics([{names}], events={self.n_events})"


class RunAggregator:
    """
    Owns the RunStatistics of one worker across begin/end of run.

    Example:
        aggregator = RunAggregator(writer=HDF5HistogramWriter('output'))
        aggregator.begin_run()
        aggregator.fold_event(4.5, 4.5)
        result = aggregator.end_run(is_master=True)
    """

    def __init__(self, writer=None, file_stem: str = 'XRay',
                 specs: Sequence[HistogramSpec] = DEFAULT_HISTOGRAMS,
                 verbose: bool = True):
        """
        Parameters:
            writer: Persistence collaborator with persist(statistics, file_stem).
                None keeps results in memory only.
            file_stem: Output file name without extension
            specs: Histogram binning, fixed for every run
            verbose: Print the end-of-run report
        """
        self.writer = writer
        self.file_stem = file_stem
        self.specs = tuple(specs)
        self.verbose = verbose

        self._statistics: Optional[RunStatistics] = None
        self.output_path = None

    @property
    def statistics(self) -> RunStatistics:
        if self._statistics is None:
            raise RuntimeError("No run in progress: call begin_run() first")
        return self._statistics

    @property
    def in_run(self) -> bool:
        return self._statistics is not None

    def begin_run(self) -> RunStatistics:
        """Create fresh histograms for a new run."""
        self._statistics = RunStatistics(self.specs)
        self.output_path = None
        return self._statistics

    def fold_event(self, primary_energy: float, fluorescence_energy: float):
        self.statistics.fold_event(primary_energy, fluorescence_energy)

    def end_run(self, is_master: bool = True,
                worker_results: Sequence[RunStatistics] = ()) -> RunStatistics:
        """
        Finish the run: merge, report, persist and release.

        Parameters:
            is_master: True on the coordinator (or in sequential mode).
                Workers only report their local statistics.
            worker_results: Worker statistics merged into the coordinator's
                before reporting

        Returns:
            The final statistics of this role
        """
        statistics = self.statistics
        for part in worker_results:
            statistics.merge(part)

        if self.verbose:
            statistics.report(is_master=is_master)

        if is_master and self.writer is not None:
            self.output_path = self.writer.persist(statistics, self.file_stem)

        self._statistics = None
        return statistics
