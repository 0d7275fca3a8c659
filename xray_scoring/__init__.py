"""
XRAY_SCORING: Detector scoring for X-ray fluorescence Monte Carlo

Replays the steps of a photon transport simulation, records the first
photon energy incident on the detector and the first photoelectric
(fluorescence) photon energy per event, and histograms both per run.

Modules:
    core: Geometry, step records, units
    scoring: Step classifier, event accumulator, run histograms
    transport: User actions and the scoring engine
    io: Run configuration, HDF5 output, plotting
"""

__version__ = "0.1.0"

from xray_scoring.core.geometry import DetectorGeometry
from xray_scoring.core.step import Step, StepArray
from xray_scoring.scoring.run import RunStatistics
from xray_scoring.transport.engine import ScoringEngine

__all__ = [
    "DetectorGeometry",
    "Step",
    "StepArray",
    "RunStatistics",
    "ScoringEngine",
]
