"""Core module: Geometry, step records, units."""

from xray_scoring.core.errors import ConfigurationError
from xray_scoring.core.geometry import DetectorGeometry, VolumeHandle
from xray_scoring.core.step import Step, StepArray

__all__ = ["ConfigurationError", "DetectorGeometry", "VolumeHandle", "Step", "StepArray"]
