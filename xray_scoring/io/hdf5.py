"""
HDF5 persistence for run histograms.

File layout (<file_stem>.h5):
    /                 attrs: n_events, unit, histograms (comma separated, in order)
    /<name>/counts    bin contents, underflow first and overflow last
    /<name>/edges     n_bins + 1 bin edges [keV]
    /<name>/moments   in-range [Σw, Σw·x, Σw·x²]
    /<name>           attrs: title, n_bins, low, high, entries, mean, rms
"""

from pathlib import Path

import h5py
import numpy as np

from xray_scoring.scoring.run import HistogramSpec, RunStatistics


class HDF5HistogramWriter:
    """Writes a RunStatistics result set to <directory>/<file_stem>.h5."""

    EXTENSION = '.h5'

    def __init__(self, directory='.'):
        self.directory = Path(directory)

    def path_for(self, file_stem: str) -> Path:
        return self.directory / f"{file_stem}{self.EXTENSION}"

    def persist(self, statistics: RunStatistics, file_stem: str) -> Path:
        """Write all histograms and summary statistics; overwrites an existing file."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(file_stem)

        with h5py.File(path, 'w') as f:
            f.attrs['n_events'] = statistics.n_events
            f.attrs['unit'] = 'keV'
            f.attrs['histograms'] = ','.join(statistics.histograms)

            for histogram in statistics:
                group = f.create_group(histogram.name)
                group.create_dataset('counts', data=histogram.counts)
                group.create_dataset('edges', data=histogram.bin_edges)
                group.create_dataset('moments', data=histogram.moments)
                group.attrs['title'] = histogram.title
                group.attrs['n_bins'] = histogram.n_bins
                group.attrs['low'] = histogram.low
                group.attrs['high'] = histogram.high
                group.attrs['entries'] = histogram.entries
                group.attrs['mean'] = histogram.mean()
                group.attrs['rms'] = histogram.rms()

        return path


def load_histograms(path) -> RunStatistics:
    """Read a file written by HDF5HistogramWriter back into a RunStatistics."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Histogram file not found: {path}")

    with h5py.File(path, 'r') as f:
        names = f.attrs['histograms'].split(',')
        specs = [
            HistogramSpec(name, f[name].attrs['title'], int(f[name].attrs['n_bins']),
                          float(f[name].attrs['low']), float(f[name].attrs['high']))
            for name in names
        ]
        statistics = RunStatistics(specs)
        statistics.n_events = int(f.attrs['n_events'])

        for name in names:
            histogram = statistics[name]
            histogram.counts[:] = np.asarray(f[name]['counts'])
            histogram.moments[:] = np.asarray(f[name]['moments'])
            histogram.entries = int(f[name].attrs['entries'])

    return statistics
