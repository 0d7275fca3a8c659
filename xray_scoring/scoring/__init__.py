"""Scoring module: Step classification, event accumulation, run histograms."""

from xray_scoring.scoring.histogram import Histogram1D
from xray_scoring.scoring.run import RunStatistics, RunAggregator
from xray_scoring.scoring.event import EventAccumulator
from xray_scoring.scoring.classifier import StepClassifier

__all__ = ["Histogram1D", "RunStatistics", "RunAggregator", "EventAccumulator", "StepClassifier"]
