"""
Scoring engine: replays recorded step streams through the user actions.

Three execution paths give identical histograms for the same steps:
    run()           serial, one step callback at a time
    run_parallel()  contiguous event slices on a process pool, merged at
                    the end of the run by the master
    run_batch()     numba kernel over the whole step array
"""

import multiprocessing as mp
import time
from typing import Optional

from tqdm import tqdm

from xray_scoring.core.errors import ConfigurationError
from xray_scoring.core.geometry import DetectorGeometry
from xray_scoring.core.step import StepArray, iter_step_records
from xray_scoring.io.config import RunConfig
from xray_scoring.io.hdf5 import HDF5HistogramWriter
from xray_scoring.scoring.classifier import first_hit_energies
from xray_scoring.scoring.run import RunStatistics
from xray_scoring.transport.actions import ScoringActions, UserActions


def replay_events(actions: UserActions, steps: StepArray, volumes_by_id,
                  progress: bool = False, desc: str = 'Events'):
    """
    Drive one worker's event loop. Run begin/end are left to the caller.

    Parameters:
        actions: Callbacks receiving events and steps
        steps: Step stream of this worker
        volumes_by_id: Volume handles indexed by volume_id
        progress: Show a tqdm progress bar
    """
    for event_id, event_steps in tqdm(steps.iter_events(), total=steps.n_events,
                                      desc=desc, unit='evt', disable=not progress):
        actions.on_begin_event(event_id)
        for step in iter_step_records(event_steps, volumes_by_id):
            actions.on_step(step)
        actions.on_end_event()


# ============================================================================
# Worker processes
# ============================================================================

# Global worker state (initialized once per process)
_worker_geometry = None
_worker_volumes = None
_worker_config = None
_worker_verbose = False


def _init_worker(geometry, config, verbose):
    """Cache geometry and volume handles in the worker process."""
    global _worker_geometry, _worker_volumes, _worker_config, _worker_verbose
    _worker_geometry = geometry
    _worker_volumes = geometry.handles()
    _worker_config = config
    _worker_verbose = verbose


def _score_worker_chunk(chunk: StepArray) -> RunStatistics:
    """
    Score one contiguous event slice with worker-local actions.

    Workers never persist; their statistics go back to the master.
    """
    actions = ScoringActions.from_config(_worker_geometry, _worker_config,
                                          writer=None, verbose=_worker_verbose)
    actions.on_begin_run()
    replay_events(actions, chunk, _worker_volumes)
    return actions.on_end_run(is_master=False)


class ScoringEngine:
    """
    Runs a scoring pass over a recorded step stream.

    Example:
        engine = ScoringEngine(config=load_config('run.yaml'))
        steps = StepArray.load('run_steps')
        result = engine.run_parallel(steps, n_workers=4)
        print(result.summary())
    """

    def __init__(self, geometry: Optional[DetectorGeometry] = None,
                 config: Optional[RunConfig] = None, writer=None,
                 persist: bool = True):
        """
        Parameters:
            geometry: Detector geometry (default: DetectorGeometry())
            config: Run configuration (default: RunConfig())
            writer: Persistence collaborator for the master's result
                (default: HDF5HistogramWriter(config.output_directory))
            persist: False keeps results in memory only
        """
        self.geometry = geometry if geometry is not None else DetectorGeometry()
        self.config = config if config is not None else RunConfig()
        if not persist:
            self.writer = None
        elif writer is not None:
            self.writer = writer
        else:
            self.writer = HDF5HistogramWriter(self.config.output_directory)

        # Fail at construction on an unknown sensitive volume
        self.sensitive_volume = self.geometry.get_volume_handle(self.config.sensitive_volume)
        self.volumes_by_id = self.geometry.handles()

        self.output_path = None
        self.last_run_info: dict = {}

    def _check_steps(self, steps: StepArray):
        """Every step must end in a volume of this geometry."""
        if steps.n_steps > 0:
            max_id = int(steps.steps['volume_id'].max())
            if max_id >= len(self.volumes_by_id):
                raise ConfigurationError(f"Step references volume_id {max_id}; geometry has "
                                         f"{len(self.volumes_by_id)} volumes {self.geometry.volume_names}")

    def _master_actions(self, verbose: bool) -> ScoringActions:
        return ScoringActions.from_config(self.geometry, self.config,
                                          writer=self.writer, verbose=verbose)

    def _finish(self, actions: ScoringActions, info: dict) -> None:
        self.output_path = actions.aggregator.output_path
        self.last_run_info = info

    def run(self, steps: StepArray, verbose: Optional[bool] = None) -> RunStatistics:
        """
        Score events sequentially in this process.

        Parameters:
            steps: Recorded step stream
            verbose: Print progress and the run report (default: config.verbose)

        Returns:
            Statistics for the entire run
        """
        verbose = self.config.verbose if verbose is None else verbose
        self._check_steps(steps)

        if verbose:
            print(f"\nScoring {steps.n_events} events ({steps.n_steps} steps)")
            print(f"  Sensitive volume: {self.sensitive_volume.name}")

        start_time = time.time()

        actions = self._master_actions(verbose)
        actions.on_begin_run()
        replay_events(actions, steps, self.volumes_by_id, progress=verbose)
        statistics = actions.on_end_run(is_master=True)

        elapsed = time.time() - start_time
        self._finish(actions, {
            'mode': 'serial',
            'n_events': steps.n_events,
            'n_steps': steps.n_steps,
            'n_workers': 1,
            'elapsed_time': elapsed,
        })

        if verbose:
            print(f"\nScoring complete:")
            print(f"  Time: {elapsed:.2f}s")
            if self.output_path is not None:
                print(f"  Output: {self.output_path}")

        return statistics

    def run_parallel(self, steps: StepArray, n_workers: Optional[int] = None,
                     verbose: Optional[bool] = None) -> RunStatistics:
        """
        Score contiguous event slices in worker processes.

        Each worker owns its own classifier, accumulator and histograms.
        The master starts with empty histograms, merges all worker results
        in end of run, reports for the entire run and persists.

        Parameters:
            steps: Recorded step stream
            n_workers: Number of processes (default: config.n_workers,
                then cpu_count)
            verbose: Print progress and reports (default: config.verbose)

        Returns:
            Merged statistics for the entire run
        """
        verbose = self.config.verbose if verbose is None else verbose
        self._check_steps(steps)
        if n_workers is None:
            n_workers = self.config.n_workers or mp.cpu_count()
        if n_workers < 1:
            raise ConfigurationError(f"n_workers must be >= 1, got {n_workers}")

        chunks = steps.split(n_workers)

        if verbose:
            print(f"\nScoring {steps.n_events} events on {n_workers} workers")
            print(f"  Sensitive volume: {self.sensitive_volume.name}")
            print(f"  Events/worker: {[chunk.n_events for chunk in chunks]}")

        start_time = time.time()

        actions = self._master_actions(verbose)
        actions.on_begin_run()

        with mp.Pool(n_workers, initializer=_init_worker,
                     initargs=(self.geometry, self.config, verbose)) as pool:
            worker_results = pool.map(_score_worker_chunk, chunks)

        statistics = actions.on_end_run(is_master=True, worker_results=worker_results)

        elapsed = time.time() - start_time
        rate = steps.n_events / elapsed if elapsed > 0 else 0.0
        self._finish(actions, {
            'mode': 'parallel',
            'n_events': steps.n_events,
            'n_steps': steps.n_steps,
            'n_workers': n_workers,
            'elapsed_time': elapsed,
            'events_per_sec': rate,
        })

        if verbose:
            print(f"\nScoring complete:")
            print(f"  Time: {elapsed:.2f}s")
            print(f"  Rate: {rate:.0f} events/sec")
            if self.output_path is not None:
                print(f"  Output: {self.output_path}")

        return statistics

    def run_batch(self, steps: StepArray, verbose: Optional[bool] = None) -> RunStatistics:
        """
        Score all events at once with the numba first-hit kernel.

        No per-step callbacks are invoked; the histograms are the same as
        those of run().
        """
        verbose = self.config.verbose if verbose is None else verbose
        self._check_steps(steps)

        if verbose:
            print(f"\nBatch scoring {steps.n_events} events ({steps.n_steps} steps)")

        start_time = time.time()

        actions = self._master_actions(verbose)
        actions.on_begin_run()
        primary, fluorescence = first_hit_energies(steps.steps, steps.n_events,
                                                   self.sensitive_volume)
        actions.aggregator.statistics.fold_events(primary, fluorescence)
        statistics = actions.on_end_run(is_master=True)

        elapsed = time.time() - start_time
        self._finish(actions, {
            'mode': 'batch',
            'n_events': steps.n_events,
            'n_steps': steps.n_steps,
            'n_workers': 1,
            'elapsed_time': elapsed,
        })

        if verbose:
            print(f"\nScoring complete:")
            print(f"  Time: {elapsed:.2f}s")

        return statistics
