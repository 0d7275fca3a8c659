"""
Scoring engine tests.

Validates:
1. End-to-end scenarios through the user actions
2. Correctness - parallel and batch runs produce the same histograms as serial
3. Persistence happens once, on the master
"""

import numpy as np
import pytest

from xray_scoring.core.errors import ConfigurationError
from xray_scoring.core.geometry import DetectorGeometry
from xray_scoring.core.step import STEP_DTYPE, Step, StepArray, process_code
from xray_scoring.io.config import RunConfig
from xray_scoring.io.hdf5 import HDF5HistogramWriter, load_histograms
from xray_scoring.transport.actions import ScoringActions
from xray_scoring.transport.engine import ScoringEngine


@pytest.fixture
def geometry():
    return DetectorGeometry()


@pytest.fixture
def detector(geometry):
    return geometry.get_volume_handle('Detector')


@pytest.fixture
def world(geometry):
    return geometry.get_volume_handle('World')


def random_steps(geometry, n_events=400, seed=11):
    """Mixed stream: fluorescence hits, scattered primaries, misses, zero-energy steps."""
    rng = np.random.default_rng(seed)
    detector = geometry.get_volume_handle('Detector').volume_id
    target = geometry.get_volume_handle('Target').volume_id
    phot = process_code('phot')
    compt = process_code('compt')
    primary = process_code(None)

    rows = []
    for event_id in range(n_events):
        rows.append((event_id, target, 6.0, primary))
        for _ in range(rng.integers(0, 4)):
            volume = detector if rng.random() < 0.6 else target
            energy = 0.0 if rng.random() < 0.1 else float(rng.choice([4.51, 4.93, 5.9, 6.0]))
            creator = int(rng.choice([phot, compt, primary]))
            rows.append((event_id, volume, energy, creator))
    return StepArray(np.array(rows, dtype=STEP_DTYPE), n_events=n_events)


def test_scenario_photoelectric_hit(geometry, detector):
    actions = ScoringActions(geometry, verbose=False)
    actions.on_begin_run()
    actions.on_begin_event(0)
    actions.on_step(Step(detector, 4.5, 'phot'))
    record = actions.on_end_event()
    result = actions.on_end_run(is_master=True)

    assert record.as_tuple() == (4.5, 4.5)
    assert result['EDet'].entries == 1
    assert result['EDet'].mean() == pytest.approx(4.5)
    assert result['EDetFluo'].mean() == pytest.approx(4.5)


def test_scenario_compton_first(geometry, detector):
    actions = ScoringActions(geometry, verbose=False)
    actions.on_begin_run()
    actions.on_begin_event(0)
    actions.on_step(Step(detector, 4.5, 'compt'))
    actions.on_step(Step(detector, 6.0))
    assert actions.on_end_event().as_tuple() == (4.5, 0.0)
    actions.on_end_run()


def test_scenario_zero_energy(geometry, detector):
    actions = ScoringActions(geometry, verbose=False)
    actions.on_begin_run()
    actions.on_begin_event(0)
    actions.on_step(Step(detector, 0.0, 'phot'))
    assert actions.accumulator.record.primary is None
    assert actions.accumulator.record.fluorescence is None
    actions.on_end_event()
    actions.on_end_run()


def test_scenario_empty_run(geometry, tmp_path, capsys):
    engine = ScoringEngine(geometry, RunConfig(), writer=HDF5HistogramWriter(tmp_path))
    result = engine.run(StepArray.empty(), verbose=False)

    assert capsys.readouterr().out == ""
    assert result.n_events == 0
    assert engine.output_path == tmp_path / 'XRay.h5'

    persisted = load_histograms(engine.output_path)
    assert persisted['EDet'].entries == 0
    assert persisted['EDetFluo'].entries == 0


def test_unknown_sensitive_volume(geometry):
    with pytest.raises(ConfigurationError):
        ScoringEngine(geometry, RunConfig(sensitive_volume='Shield'))


def test_callbacks_outside_run_raise(geometry, detector):
    actions = ScoringActions(geometry, verbose=False)
    with pytest.raises(RuntimeError):
        actions.on_step(Step(detector, 4.5))
    with pytest.raises(RuntimeError):
        actions.on_end_run()


def test_serial_matches_batch(geometry):
    steps = random_steps(geometry)
    engine = ScoringEngine(geometry, persist=False)

    serial = engine.run(steps, verbose=False)
    batch = engine.run_batch(steps, verbose=False)

    for name in ('EDet', 'EDetFluo'):
        assert np.array_equal(serial[name].counts, batch[name].counts)
        assert np.array_equal(serial[name].moments, batch[name].moments)
        assert serial[name].entries == batch[name].entries == steps.n_events


@pytest.mark.parametrize("n_workers", [1, 3])
def test_parallel_matches_serial(geometry, n_workers):
    steps = random_steps(geometry)
    engine = ScoringEngine(geometry, persist=False)

    serial = engine.run(steps, verbose=False)
    parallel = engine.run_parallel(steps, n_workers=n_workers, verbose=False)

    assert parallel.n_events == serial.n_events
    for name in ('EDet', 'EDetFluo'):
        assert np.array_equal(serial[name].counts, parallel[name].counts)
        assert parallel[name].entries == serial[name].entries
        assert parallel[name].mean() == pytest.approx(serial[name].mean())
        assert parallel[name].rms() == pytest.approx(serial[name].rms())
    assert engine.last_run_info['n_workers'] == n_workers


def test_parallel_more_workers_than_events(geometry, detector):
    steps = StepArray.from_events([[Step(detector, 4.51, 'phot')], [Step(detector, 5.9)]])
    engine = ScoringEngine(geometry, persist=False)

    result = engine.run_parallel(steps, n_workers=4, verbose=False)
    assert result.n_events == 2
    assert result['EDetFluo'].entries == 2


def test_parallel_persists_once_on_master(geometry, tmp_path, capsys):
    steps = random_steps(geometry, n_events=50)
    config = RunConfig(file_stem='merged', verbose=True)
    engine = ScoringEngine(geometry, config, writer=HDF5HistogramWriter(tmp_path))

    result = engine.run_parallel(steps, n_workers=2, verbose=True)

    assert sorted(p.name for p in tmp_path.iterdir()) == ['merged.h5']
    persisted = load_histograms(tmp_path / 'merged.h5')
    assert np.array_equal(persisted['EDet'].counts, result['EDet'].counts)
    assert "for the entire run" in capsys.readouterr().out


def test_invalid_worker_count(geometry):
    engine = ScoringEngine(geometry, persist=False)
    with pytest.raises(ConfigurationError):
        engine.run_parallel(StepArray.empty(1), n_workers=0, verbose=False)


def test_volume_id_outside_geometry_rejected_by_every_path(geometry):
    steps = StepArray(np.array([(0, 3, 4.5, process_code('phot'))], dtype=STEP_DTYPE),
                      n_events=1)
    engine = ScoringEngine(geometry, persist=False)

    with pytest.raises(ConfigurationError, match="volume_id 3"):
        engine.run(steps, verbose=False)
    with pytest.raises(ConfigurationError, match="volume_id 3"):
        engine.run_batch(steps, verbose=False)
    with pytest.raises(ConfigurationError, match="volume_id 3"):
        engine.run_parallel(steps, n_workers=1, verbose=False)


def test_config_directory_drives_output(geometry, tmp_path):
    config = RunConfig(file_stem='scan01', output_directory=tmp_path / 'results')
    engine = ScoringEngine(geometry, config)
    steps = StepArray.from_events([[Step(geometry.get_volume_handle('Detector'), 4.51, 'phot')]])

    result = engine.run(steps, verbose=False)

    assert engine.output_path == tmp_path / 'results' / 'scan01.h5'
    persisted = load_histograms(engine.output_path)
    assert np.array_equal(persisted['EDetFluo'].counts, result['EDetFluo'].counts)


def test_in_memory_engine_writes_nothing(geometry, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    engine = ScoringEngine(geometry, persist=False)
    engine.run(StepArray.empty(2), verbose=False)

    assert engine.output_path is None
    assert list(tmp_path.iterdir()) == []
