"""Spectrum plots of run histograms."""

from pathlib import Path
from typing import Union

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from xray_scoring.core.units import format_energy
from xray_scoring.io.hdf5 import load_histograms
from xray_scoring.scoring.run import RunStatistics


def plot_energy_spectra(result: Union[RunStatistics, str, Path], output_path,
                        log_scale: bool = True, dpi: int = 150) -> Path:
    """
    Plot every histogram of a result set as a step spectrum.

    Parameters:
        result: RunStatistics or path to a persisted .h5 file
        output_path: Image file to write
        log_scale: Logarithmic y axis
        dpi: Output resolution

    Returns:
        Path of the written image
    """
    statistics = result if isinstance(result, RunStatistics) else load_histograms(result)
    output_path = Path(output_path)

    histograms = list(statistics)
    fig, axes = plt.subplots(len(histograms), 1, figsize=(10, 4 * len(histograms)),
                             squeeze=False)

    for ax, histogram in zip(axes[:, 0], histograms):
        ax.stairs(histogram.bin_contents, histogram.bin_edges, linewidth=1.5)
        ax.set_title(histogram.title, fontsize=12)
        ax.set_xlabel('Energy [keV]', fontsize=11)
        ax.set_ylabel('Events / bin', fontsize=11)
        ax.grid(True, alpha=0.3)
        if log_scale and histogram.bin_contents.any():
            ax.set_yscale('log')
        ax.text(0.98, 0.95,
                f"entries = {histogram.entries}\n"
                f"mean = {format_energy(histogram.mean())}\n"
                f"rms = {format_energy(histogram.rms())}",
                transform=ax.transAxes, ha='right', va='top', fontsize=9,
                bbox=dict(boxstyle='round', facecolor='white', alpha=0.8))

    fig.tight_layout()
    fig.savefig(output_path, dpi=dpi)
    plt.close(fig)
    return output_path
