"""
Fixed-binning 1D histogram.

Bin layout of the counts array (n_bins + 2 entries):
    counts[0]            underflow   x < low
    counts[1:n_bins+1]   in range    low <= x < high
    counts[n_bins+1]     overflow    x >= high

Mean and rms are computed from in-range fills only; `entries` counts every
fill, including under/overflow.
"""

import numpy as np
import numba
from typing import Optional


@numba.njit(cache=True)
def fill_histogram(counts: np.ndarray, moments: np.ndarray, values: np.ndarray,
                   weights: np.ndarray, low: float, high: float, n_bins: int) -> None:
    """
    Add weighted samples to a histogram in-place.

    Parameters:
        counts: Bin contents including under/overflow (n_bins + 2)
        moments: In-range running sums [Σw, Σw·x, Σw·x²]
        values: Sample values
        weights: Sample weights
        low: Lower edge of the first bin
        high: Upper edge of the last bin
        n_bins: Number of in-range bins
    """
    scale = n_bins / (high - low)
    for i in range(len(values)):
        x = values[i]
        w = weights[i]
        if x < low:
            counts[0] += w
        elif x >= high:
            counts[n_bins + 1] += w
        else:
            index = int((x - low) * scale)
            # Guard against rounding just below high
            if index >= n_bins:
                index = n_bins - 1
            counts[index + 1] += w
            moments[0] += w
            moments[1] += w * x
            moments[2] += w * x * x


class Histogram1D:
    """
    Weighted histogram with a fixed number of equal-width bins.

    Example:
        h = Histogram1D('EDet', 'Photon energy', n_bins=1000, low=0.0, high=7.0)
        h.fill(4.5)
        h.mean(), h.rms()
    """

    def __init__(self, name: str, title: str, n_bins: int, low: float, high: float):
        """
        Parameters:
            name: Short identifier used as storage key
            title: Human readable description
            n_bins: Number of equal-width bins
            low: Lower edge of the range
            high: Upper edge of the range

        Raises:
            ValueError: n_bins < 1 or high <= low
        """
        if n_bins < 1:
            raise ValueError(f"Histogram '{name}' needs at least one bin, got {n_bins}")
        if not high > low:
            raise ValueError(f"Histogram '{name}' range is empty: [{low}, {high}]")

        self.name = name
        self.title = title
        self._n_bins = int(n_bins)
        self._low = float(low)
        self._high = float(high)

        self.counts = np.zeros(self._n_bins + 2)
        self.moments = np.zeros(3)
        self.entries = 0

    # Binning is read-only once the histogram exists
    @property
    def n_bins(self) -> int:
        return self._n_bins

    @property
    def low(self) -> float:
        return self._low

    @property
    def high(self) -> float:
        return self._high

    @property
    def bin_width(self) -> float:
        return (self._high - self._low) / self._n_bins

    @property
    def bin_edges(self) -> np.ndarray:
        return np.linspace(self._low, self._high, self._n_bins + 1)

    @property
    def bin_centers(self) -> np.ndarray:
        edges = self.bin_edges
        return (edges[:-1] + edges[1:]) / 2.0

    @property
    def bin_contents(self) -> np.ndarray:
        """In-range bin contents (no under/overflow)."""
        return self.counts[1:self._n_bins + 1]

    @property
    def underflow(self) -> float:
        return float(self.counts[0])

    @property
    def overflow(self) -> float:
        return float(self.counts[self._n_bins + 1])

    @property
    def sum_of_weights(self) -> float:
        """Total in-range weight."""
        return float(self.moments[0])

    def fill(self, value: float, weight: float = 1.0):
        self.fill_array(np.array([value], dtype=np.float64),
                        np.array([weight], dtype=np.float64))

    def fill_array(self, values: np.ndarray, weights: Optional[np.ndarray] = None):
        """
        Fill many samples at once (unit weights by default).

        Raises:
            ValueError: NaN values or weights, or mismatched lengths
        """
        values = np.ascontiguousarray(values, dtype=np.float64)
        # NaN has no bin; the kernel does not bounds-check
        if np.isnan(values).any():
            raise ValueError(f"Histogram '{self.name}' cannot be filled with NaN")
        if weights is None:
            weights = np.ones(len(values))
        else:
            weights = np.ascontiguousarray(weights, dtype=np.float64)
            if len(weights) != len(values):
                raise ValueError(f"Got {len(values)} values but {len(weights)} weights")
            if np.isnan(weights).any():
                raise ValueError(f"Histogram '{self.name}' got NaN weights")

        fill_histogram(self.counts, self.moments, values, weights,
                       self._low, self._high, self._n_bins)
        self.entries += len(values)

    def mean(self) -> float:
        """Weighted mean of in-range fills (0 if none)."""
        sw = self.moments[0]
        if sw == 0.0:
            return 0.0
        return float(self.moments[1] / sw)

    def rms(self) -> float:
        """Weighted standard deviation of in-range fills (0 if none)."""
        sw = self.moments[0]
        if sw == 0.0:
            return 0.0
        mean = self.moments[1] / sw
        return float(np.sqrt(abs(self.moments[2] / sw - mean * mean)))

    def is_compatible(self, other: 'Histogram1D') -> bool:
        return (self._n_bins == other._n_bins
                and self._low == other._low
                and self._high == other._high)

    def add(self, other: 'Histogram1D'):
        """
        Add another histogram's contents in-place.

        Raises:
            ValueError: binning differs
        """
        if not self.is_compatible(other):
            raise ValueError(
                f"Cannot merge '{other.name}' ({other.n_bins} bins over "
                f"[{other.low}, {other.high}]) into '{self.name}' ({self.n_bins} bins "
                f"over [{self.low}, {self.high}])")
        self.counts += other.counts
        self.moments += other.moments
        self.entries += other.entries

    def __iadd__(self, other: 'Histogram1D') -> 'Histogram1D':
        self.add(other)
        return self

    def copy(self) -> 'Histogram1D':
        clone = Histogram1D(self.name, self.title, self._n_bins, self._low, self._high)
        clone.counts[:] = self.counts
        clone.moments[:] = self.moments
        clone.entries = self.entries
        return clone

    def reset(self):
        self.counts[:] = 0.0
        self.moments[:] = 0.0
        self.entries = 0

    def __repr__(self) -> str:
        return (f"Histogram1D({self.name}, bins={self._n_bins}, "
                f"range=[{self._low:g}, {self._high:g}], entries={self.entries})")
