"""
Step classification: is the step scored, and was the track created by the
photoelectric effect?

Two forms:
    StepClassifier      per-step callback, feeds an EventAccumulator
    first_hit_energies  numba kernel over a whole step array, gives the same
                        per-event values as replaying the steps one by one
"""

import numpy as np
import numba
from typing import NamedTuple, Optional, Tuple

from xray_scoring.core.geometry import VolumeHandle
from xray_scoring.core.step import PHOTOELECTRIC, PROCESS_CODES, Step
from xray_scoring.scoring.event import EventAccumulator


class StepObservation(NamedTuple):
    """What a scored step contributes. Not retained past the step."""

    volume: VolumeHandle
    energy: float
    from_photoelectric: bool


class StepClassifier:
    """
    Scores steps ending in the sensitive volume.

    Example:
        classifier = StepClassifier(geometry.get_volume_handle('Detector'), accumulator)
        classifier.on_step(Step(detector, 4.5, 'phot'))
    """

    def __init__(self, sensitive_volume: VolumeHandle,
                 accumulator: Optional[EventAccumulator] = None):
        """
        Parameters:
            sensitive_volume: Handle of the scored volume, resolved once
            accumulator: Receives observations in on_step()
        """
        self.sensitive_volume = sensitive_volume
        self.accumulator = accumulator

    def classify(self, step: Step) -> Optional[StepObservation]:
        """Return an observation for steps ending in the sensitive volume, else None."""
        if step.post_volume != self.sensitive_volume:
            return None
        return StepObservation(step.post_volume, step.total_energy,
                               step.creator_process == PHOTOELECTRIC)

    def on_step(self, step: Step) -> Optional[StepObservation]:
        observation = self.classify(step)
        if observation is None:
            return None

        self.accumulator.record_primary(observation.energy)
        if observation.from_photoelectric:
            self.accumulator.record_fluorescence(observation.energy)
        return observation


# ============================================================================
# Vectorized kernels
# ============================================================================

@numba.njit(cache=True)
def _classify_kernel(volume_ids: np.ndarray, process_codes: np.ndarray,
                     sensitive_id: int, phot_code: int,
                     in_volume: np.ndarray, from_phot: np.ndarray):
    for i in range(len(volume_ids)):
        hit = volume_ids[i] == sensitive_id
        in_volume[i] = hit
        from_phot[i] = hit and process_codes[i] == phot_code


def classify_steps(steps: np.ndarray, sensitive_volume: VolumeHandle) -> Tuple[np.ndarray, np.ndarray]:
    """
    Classify a whole STEP_DTYPE array.

    Returns:
        (in_volume, from_photoelectric): boolean masks; from_photoelectric
        is only set for steps that are also in the sensitive volume
    """
    n = len(steps)
    in_volume = np.zeros(n, dtype=np.bool_)
    from_phot = np.zeros(n, dtype=np.bool_)
    _classify_kernel(np.ascontiguousarray(steps['volume_id']),
                     np.ascontiguousarray(steps['creator_process']),
                     sensitive_volume.volume_id, PROCESS_CODES[PHOTOELECTRIC],
                     in_volume, from_phot)
    return in_volume, from_phot


@numba.njit(cache=True)
def _first_hit_kernel(event_ids: np.ndarray, volume_ids: np.ndarray,
                      energies: np.ndarray, process_codes: np.ndarray,
                      sensitive_id: int, phot_code: int,
                      primary: np.ndarray, fluorescence: np.ndarray):
    # Both outputs start at 0.0 (unset); 0.0 energies never overwrite
    for i in range(len(event_ids)):
        if volume_ids[i] != sensitive_id:
            continue
        event = event_ids[i]
        energy = energies[i]
        if primary[event] == 0.0:
            primary[event] = energy
        if process_codes[i] == phot_code and fluorescence[event] == 0.0:
            fluorescence[event] = energy


def first_hit_energies(steps: np.ndarray, n_events: int,
                       sensitive_volume: VolumeHandle) -> Tuple[np.ndarray, np.ndarray]:
    """
    Per-event (primary, fluorescence) energies of a STEP_DTYPE array.

    Steps must be in event order within each event. Events without a scored
    step get 0.0.
    """
    primary = np.zeros(n_events)
    fluorescence = np.zeros(n_events)
    _first_hit_kernel(np.ascontiguousarray(steps['event_id']),
                      np.ascontiguousarray(steps['volume_id']),
                      np.ascontiguousarray(steps['total_energy']),
                      np.ascontiguousarray(steps['creator_process']),
                      sensitive_volume.volume_id, PROCESS_CODES[PHOTOELECTRIC],
                      primary, fluorescence)
    return primary, fluorescence
