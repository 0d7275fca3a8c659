"""
User action callbacks invoked by the engine.

The engine calls, per worker:
    on_begin_run()
        on_begin_event(event_id)
            on_step(step)  ...
        on_end_event()
        ...
    on_end_run(is_master)
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from xray_scoring.core.geometry import DetectorGeometry
from xray_scoring.core.step import Step
from xray_scoring.scoring.classifier import StepClassifier
from xray_scoring.scoring.event import EventAccumulator
from xray_scoring.scoring.run import DEFAULT_HISTOGRAMS, HistogramSpec, RunAggregator, RunStatistics


class UserActions(ABC):
    """Callback interface registered with the engine."""

    @abstractmethod
    def on_begin_run(self):
        pass

    @abstractmethod
    def on_begin_event(self, event_id: int):
        pass

    @abstractmethod
    def on_step(self, step: Step):
        pass

    @abstractmethod
    def on_end_event(self):
        pass

    @abstractmethod
    def on_end_run(self, is_master: bool, worker_results: Sequence[RunStatistics] = ()):
        pass


class ScoringActions(UserActions):
    """
    Wires StepClassifier -> EventAccumulator -> RunAggregator for one worker.

    Example:
        actions = ScoringActions(DetectorGeometry(), writer=HDF5HistogramWriter('out'))
        actions.on_begin_run()
        actions.on_begin_event(0)
        actions.on_step(Step(detector, 4.5, 'phot'))
        actions.on_end_event()
        result = actions.on_end_run(is_master=True)
    """

    def __init__(self, geometry: DetectorGeometry,
                 sensitive_volume: str = 'Detector',
                 specs: Sequence[HistogramSpec] = DEFAULT_HISTOGRAMS,
                 writer=None, file_stem: str = 'XRay', verbose: bool = True):
        """
        Parameters:
            geometry: Geometry providing the sensitive volume
            sensitive_volume: Name of the scored volume
            specs: Histogram binning (primary, fluorescence)
            writer: Persistence collaborator, used by the master only
            file_stem: Output file name without extension
            verbose: Print the end-of-run report

        Raises:
            ConfigurationError: sensitive volume not in the geometry
        """
        self.geometry = geometry
        # Resolved once; steps are compared by handle
        self.sensitive_volume = geometry.get_volume_handle(sensitive_volume)
        self.aggregator = RunAggregator(writer=writer, file_stem=file_stem,
                                        specs=specs, verbose=verbose)

        self.accumulator: Optional[EventAccumulator] = None
        self.classifier: Optional[StepClassifier] = None

    @classmethod
    def from_config(cls, geometry: DetectorGeometry, config, writer=None,
                    verbose: Optional[bool] = None) -> 'ScoringActions':
        """Build from a RunConfig; verbose overrides config.verbose when given."""
        return cls(geometry,
                   sensitive_volume=config.sensitive_volume,
                   specs=config.histograms,
                   writer=writer,
                   file_stem=config.file_stem,
                   verbose=config.verbose if verbose is None else verbose)

    def on_begin_run(self):
        statistics = self.aggregator.begin_run()
        self.accumulator = EventAccumulator(statistics)
        self.classifier = StepClassifier(self.sensitive_volume, self.accumulator)

    def _require_run(self):
        if self.accumulator is None:
            raise RuntimeError("No run in progress: call on_begin_run() first")

    def on_begin_event(self, event_id: int):
        self._require_run()
        self.accumulator.begin_event()

    def on_step(self, step: Step):
        self._require_run()
        return self.classifier.on_step(step)

    def on_end_event(self):
        self._require_run()
        return self.accumulator.end_event()

    def on_end_run(self, is_master: bool = True,
                   worker_results: Sequence[RunStatistics] = ()) -> RunStatistics:
        """Merge worker results (master), report, persist (master) and release."""
        statistics = self.aggregator.end_run(is_master=is_master,
                                             worker_results=worker_results)
        self.accumulator = None
        self.classifier = None
        return statistics
