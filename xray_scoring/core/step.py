"""
Transport step records using NumPy structured arrays.

Steps are produced by the external transport code and replayed through the
scoring callbacks. Arrays are sorted by event so each event is a contiguous
slice.
"""

from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import numpy as np

from xray_scoring.core.errors import ConfigurationError
from xray_scoring.core.geometry import VolumeHandle


STEP_DTYPE = np.dtype([
    ('event_id', np.int64),           # event the step belongs to
    ('volume_id', np.int32),          # post-step volume
    ('total_energy', np.float64),     # track total energy [keV]
    ('creator_process', np.int16),    # PROCESS_CODES value
], align=True)

NO_PROCESS = -1

# Creator process name -> code. Primaries have no creator process.
PROCESS_CODES = {
    'phot': 0,
    'compt': 1,
    'Rayl': 2,
    'conv': 3,
    'eIoni': 4,
    'eBrem': 5,
    'msc': 6,
    'annihil': 7,
    'hIoni': 8,
    'ionIoni': 9,
}

PROCESS_NAMES = {code: name for name, code in PROCESS_CODES.items()}

PHOTOELECTRIC = 'phot'


def process_code(name: Optional[str]) -> int:
    """Encode a creator process name ('phot' → 0, None → NO_PROCESS)."""
    if name is None:
        return NO_PROCESS
    if name not in PROCESS_CODES:
        raise ConfigurationError(f"Unknown creator process '{name}'. "
                                 f"Available: {list(PROCESS_CODES.keys())}")
    return PROCESS_CODES[name]


def process_name(code: int) -> Optional[str]:
    """Decode a creator process code; NO_PROCESS → None."""
    if code == NO_PROCESS:
        return None
    if int(code) not in PROCESS_NAMES:
        raise ConfigurationError(f"Unknown creator process code {code}. "
                                 f"Available: {PROCESS_CODES} (primaries: {NO_PROCESS})")
    return PROCESS_NAMES[int(code)]


def _check_step_fields(steps: np.ndarray):
    if np.any(steps['volume_id'] < 0):
        bad = int(steps['volume_id'][steps['volume_id'] < 0][0])
        raise ConfigurationError(f"Volume ids must be non-negative, got {bad}")

    if np.isnan(steps['total_energy']).any():
        raise ConfigurationError("Step energies must not be NaN")

    valid_codes = np.array([NO_PROCESS] + sorted(PROCESS_NAMES))
    unknown = ~np.isin(steps['creator_process'], valid_codes)
    if np.any(unknown):
        raise ConfigurationError(f"Unknown creator process code {int(steps['creator_process'][unknown][0])}. "
                                 f"Available: {PROCESS_CODES} (primaries: {NO_PROCESS})")


class Step:
    """Single transport step (for convenience)."""

    __slots__ = ('post_volume', 'total_energy', 'creator_process')

    def __init__(self, post_volume: VolumeHandle, total_energy: float,
                 creator_process: Optional[str] = None):
        """
        Parameters:
            post_volume: Volume at the post-step point
            total_energy: Total energy of the track [keV]
            creator_process: Name of the process that created the track,
                None for primaries
        """
        self.post_volume = post_volume
        self.total_energy = float(total_energy)
        self.creator_process = creator_process

    def __repr__(self) -> str:
        return (f"Step({self.post_volume.name}, E={self.total_energy:g} keV, "
                f"creator={self.creator_process})")


class StepArray:
    """
    Step storage for a whole run.

    Example:
        steps = StepArray.from_events([
            [Step(detector, 4.5, 'phot')],
            [Step(world, 6.0), Step(detector, 6.0)],
        ])
        for event_id, event_steps in steps.iter_events():
            ...
    """

    def __init__(self, steps: np.ndarray, n_events: Optional[int] = None):
        """
        Parameters:
            steps: Structured array with STEP_DTYPE, sorted by event_id
            n_events: Number of events in the run. Events without any step
                still count. Defaults to max(event_id) + 1.

        Raises:
            ConfigurationError: wrong dtype, unsorted or out-of-range event ids,
                negative volume ids, NaN energies or unknown creator process codes
        """
        if steps.dtype.names != STEP_DTYPE.names:
            raise ConfigurationError(f"Step array must have STEP_DTYPE fields {STEP_DTYPE.names}, "
                                     f"got {steps.dtype.names}")
        if steps.dtype != STEP_DTYPE:
            steps = steps.astype(STEP_DTYPE)

        event_ids = steps['event_id']
        if len(steps) > 0:
            if np.any(np.diff(event_ids) < 0):
                raise ConfigurationError("Step array must be sorted by event_id")
            if event_ids[0] < 0:
                raise ConfigurationError("Event ids must be non-negative")
            _check_step_fields(steps)

        inferred = int(event_ids[-1]) + 1 if len(steps) > 0 else 0
        if n_events is None:
            n_events = inferred
        elif n_events < inferred:
            raise ConfigurationError(f"n_events={n_events} but steps reference event {inferred - 1}")

        self.steps = steps
        self.n_events = int(n_events)

        # Slice boundaries: steps of event i are steps[offsets[i]:offsets[i+1]]
        self.offsets = np.searchsorted(event_ids, np.arange(self.n_events + 1), side='left')

    @classmethod
    def from_events(cls, events: List[List[Step]]) -> 'StepArray':
        """Build from per-event lists of Step objects."""
        n_steps = sum(len(event) for event in events)
        steps = np.zeros(n_steps, dtype=STEP_DTYPE)
        i = 0
        for event_id, event in enumerate(events):
            for step in event:
                steps[i] = (event_id, step.post_volume.volume_id,
                            step.total_energy, process_code(step.creator_process))
                i += 1
        return cls(steps, n_events=len(events))

    @classmethod
    def empty(cls, n_events: int = 0) -> 'StepArray':
        return cls(np.zeros(0, dtype=STEP_DTYPE), n_events=n_events)

    @classmethod
    def load(cls, path, n_events: Optional[int] = None) -> 'StepArray':
        """
        Load a recorded step stream.

        Tries binary .npy first, falls back to CSV with columns
        event_id, volume_id, total_energy, creator_process.
        """
        path = Path(path)
        npy_file = path.with_suffix('.npy')
        csv_file = path.with_suffix('.csv')

        if npy_file.exists():
            return cls(np.load(npy_file), n_events=n_events)

        if not csv_file.exists():
            raise FileNotFoundError(f"Step file not found: {npy_file} or {csv_file}")

        raw = np.loadtxt(csv_file, delimiter=',', skiprows=1, ndmin=2)
        steps = np.zeros(len(raw), dtype=STEP_DTYPE)
        steps['event_id'] = raw[:, 0]
        steps['volume_id'] = raw[:, 1]
        steps['total_energy'] = raw[:, 2]
        steps['creator_process'] = raw[:, 3]
        return cls(steps, n_events=n_events)

    def save(self, path) -> Path:
        """Save steps as binary .npy."""
        npy_file = Path(path).with_suffix('.npy')
        np.save(npy_file, self.steps)
        return npy_file

    @property
    def n_steps(self) -> int:
        return len(self.steps)

    def event_slice(self, event_id: int) -> np.ndarray:
        return self.steps[self.offsets[event_id]:self.offsets[event_id + 1]]

    def iter_events(self) -> Iterator[Tuple[int, np.ndarray]]:
        """Yield (event_id, steps of that event) for every event, in order."""
        for event_id in range(self.n_events):
            yield event_id, self.event_slice(event_id)

    def split(self, n_chunks: int) -> List['StepArray']:
        """
        Split into contiguous event ranges, one per worker.

        Event ids are renumbered from 0 inside each chunk.
        """
        chunks = []
        for event_ids in np.array_split(np.arange(self.n_events), n_chunks):
            if len(event_ids) == 0:
                chunks.append(StepArray.empty())
                continue
            first, last = int(event_ids[0]), int(event_ids[-1])
            chunk = self.steps[self.offsets[first]:self.offsets[last + 1]].copy()
            chunk['event_id'] -= first
            chunks.append(StepArray(chunk, n_events=len(event_ids)))
        return chunks

    def get_statistics(self) -> dict:
        energies = self.steps['total_energy']
        return {
            'n_events': self.n_events,
            'n_steps': self.n_steps,
            'steps_per_event': self.n_steps / self.n_events if self.n_events > 0 else 0.0,
            'mean_energy': float(np.mean(energies)) if len(energies) > 0 else 0.0,
            'max_energy': float(np.max(energies)) if len(energies) > 0 else 0.0,
        }

    def __repr__(self) -> str:
        stats = self.get_statistics()
        return (f"StepArray(events={stats['n_events']}, "
                f"steps={stats['n_steps']}, "
                f"<E>={stats['mean_energy']:.3f} keV)")


def iter_step_records(event_steps: np.ndarray, volumes_by_id) -> Iterator[Step]:
    """Turn a slice of STEP_DTYPE records into Step objects."""
    for record in event_steps:
        yield Step(volumes_by_id[int(record['volume_id'])],
                   float(record['total_energy']),
                   process_name(int(record['creator_process'])))
