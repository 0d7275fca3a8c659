"""
Geometry and step-record tests.

Validates:
1. Volume hierarchy and handle lookup
2. Material resolution and configuration errors
3. Step array layout, loading and splitting
"""

import numpy as np
import pytest

from xray_scoring.core.errors import ConfigurationError
from xray_scoring.core.geometry import DetectorGeometry, VolumeHandle
from xray_scoring.core.step import (NO_PROCESS, STEP_DTYPE, Step, StepArray,
                                    iter_step_records, process_code, process_name)
from xray_scoring.core.units import cm, eV, format_energy, keV, MeV, nm, um


@pytest.fixture
def geometry():
    return DetectorGeometry()


def test_volume_hierarchy(geometry):
    assert geometry.volume_names == ['World', 'Target', 'Detector']
    assert geometry.get_volume_handle('Detector') == VolumeHandle('Detector', 2)

    target = geometry.get_volume(geometry.get_volume_handle('Target'))
    assert target.material.name == 'G4_Ti'
    assert target.mother == 'World'
    assert np.isclose(2 * target.half_size[2], 1.0 * um)

    detector = geometry.get_volume(geometry.get_volume_handle('Detector'))
    assert detector.material.name == 'G4_AIR'
    assert np.isclose(2 * detector.half_size[2], 1.0 * nm)
    assert np.allclose(detector.position, (3.0 * cm, 0.0, 0.0))


def test_unknown_volume_lists_available(geometry):
    with pytest.raises(ConfigurationError, match="Available"):
        geometry.get_volume_handle('Shield')


def test_missing_material_is_fatal():
    with pytest.raises(ConfigurationError, match="G4_Ti"):
        DetectorGeometry(materials={'G4_AIR': {'Z': 7.37, 'A': 14.46, 'rho': 0.0012,
                                               'X0': 30390.0, 'I': 85.7}})


def test_configuration_error_is_value_error(geometry):
    with pytest.raises(ValueError):
        geometry.find_material('G4_UNOBTAINIUM')


def test_non_positive_size_rejected():
    with pytest.raises(ConfigurationError, match="detector_thickness"):
        DetectorGeometry(detector_thickness=0.0)


def test_locate(geometry):
    assert geometry.locate((3.0 * cm, 0.0, 0.0)).name == 'Detector'
    assert geometry.locate((0.0, 0.0, -3.0 * cm)).name == 'Target'
    assert geometry.locate((0.0, 0.0, 5.0 * cm)).name == 'World'
    # Outside everything falls back to the World
    assert geometry.locate((100.0, 0.0, 0.0)).name == 'World'


def test_process_codes():
    assert process_code('phot') == 0
    assert process_code(None) == NO_PROCESS
    assert process_name(NO_PROCESS) is None
    assert process_name(process_code('compt')) == 'compt'
    with pytest.raises(ConfigurationError):
        process_code('fluo')


def test_step_array_offsets(geometry):
    detector = geometry.get_volume_handle('Detector')
    world = geometry.get_volume_handle('World')

    steps = StepArray.from_events([
        [Step(world, 6.0), Step(detector, 6.0)],
        [],
        [Step(detector, 4.51, 'phot')],
    ])

    assert steps.n_events == 3
    assert steps.n_steps == 3
    assert len(steps.event_slice(1)) == 0
    assert steps.event_slice(2)['creator_process'][0] == process_code('phot')

    records = list(iter_step_records(steps.event_slice(0), geometry.handles()))
    assert [r.post_volume for r in records] == [world, detector]
    assert records[0].creator_process is None


def test_step_array_rejects_unsorted():
    steps = np.zeros(2, dtype=STEP_DTYPE)
    steps['event_id'] = [1, 0]
    with pytest.raises(ConfigurationError, match="sorted"):
        StepArray(steps)


def test_split_renumbers_events(geometry):
    detector = geometry.get_volume_handle('Detector')
    steps = StepArray.from_events([[Step(detector, float(i + 1))] for i in range(5)])

    chunks = steps.split(2)
    assert [chunk.n_events for chunk in chunks] == [3, 2]
    assert list(chunks[1].steps['event_id']) == [0, 1]
    assert list(chunks[1].steps['total_energy']) == [4.0, 5.0]

    # More workers than events leaves some chunks empty
    chunks = steps.split(8)
    assert sum(chunk.n_events for chunk in chunks) == 5
    assert any(chunk.n_events == 0 for chunk in chunks)


def test_load_csv_and_npy(tmp_path):
    csv_file = tmp_path / 'run.csv'
    csv_file.write_text("event_id,volume_id,total_energy,creator_process\n"
                        "0,1,6.0,-1\n"
                        "0,2,4.51,0\n"
                        "2,2,5.9,-1\n")

    steps = StepArray.load(csv_file)
    assert steps.n_events == 3
    assert steps.n_steps == 3
    assert steps.steps['creator_process'][1] == process_code('phot')

    npy_file = steps.save(csv_file)
    assert npy_file.suffix == '.npy'
    reloaded = StepArray.load(tmp_path / 'run')
    assert np.array_equal(reloaded.steps, steps.steps)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        StepArray.load(tmp_path / 'nothing')


def test_format_energy():
    assert format_energy(4.51) == '4.51 keV'
    assert format_energy(37.5 * eV) == '37.5 eV'
    assert format_energy(1.25 * MeV) == '1.25 MeV'
    assert format_energy(0.0) == '0 eV'
    assert 7.0 * keV == 7.0


def make_steps(rows):
    return np.array(rows, dtype=STEP_DTYPE)


def test_step_array_rejects_negative_volume_id():
    with pytest.raises(ConfigurationError, match="Volume ids"):
        StepArray(make_steps([(0, -1, 4.5, 0)]), n_events=1)


def test_step_array_rejects_nan_energy():
    with pytest.raises(ConfigurationError, match="NaN"):
        StepArray(make_steps([(0, 2, np.nan, 0)]), n_events=1)


def test_step_array_rejects_unknown_process_code():
    with pytest.raises(ConfigurationError, match="Unknown creator process code 42"):
        StepArray(make_steps([(0, 2, 4.5, 42)]), n_events=1)
    with pytest.raises(ConfigurationError):
        process_name(42)


def test_load_csv_with_nan_energy(tmp_path):
    csv_file = tmp_path / 'bad.csv'
    csv_file.write_text("event_id,volume_id,total_energy,creator_process\n"
                        "0,2,nan,0\n")
    with pytest.raises(ConfigurationError, match="NaN"):
        StepArray.load(csv_file)
