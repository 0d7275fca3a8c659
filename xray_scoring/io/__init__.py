"""IO module: Run configuration, HDF5 output, spectrum plots."""

from xray_scoring.io.config import RunConfig, load_config
from xray_scoring.io.hdf5 import HDF5HistogramWriter, load_histograms

__all__ = ["RunConfig", "load_config", "HDF5HistogramWriter", "load_histograms"]
