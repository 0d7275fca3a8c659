"""
Static detector geometry for the X-ray fluorescence setup.

A titanium foil (Target) is placed in an air-filled World box and a thin
air slab (Detector) sits off-axis to register photons leaving the foil:

    World     20 cm cube, G4_AIR
    Target    5 cm x 5 cm x 1 µm, G4_Ti, centred at (0, 0, -3 cm)
    Detector  2 cm x 2 cm x 1 nm, G4_AIR, centred at (3 cm, 0, 0)

The geometry is built once and never mutated. Scoring code only asks it for
VolumeHandles by name.
"""

from typing import Dict, List, NamedTuple, Optional, Tuple

import numpy as np

from xray_scoring.core.errors import ConfigurationError
from xray_scoring.core.units import cm, um, nm

# NIST material properties
MATERIAL_PROPERTIES = {
    'G4_AIR': {
        'Z': 7.37,           # Effective Z
        'A': 14.46,          # Effective A
        'rho': 0.00120479,   # Density [g/cm³]
        'X0': 30390.0,       # Radiation length [cm]
        'I': 85.7,           # Mean excitation energy [eV]
    },
    'G4_Ti': {
        'Z': 22.0,
        'A': 47.867,
        'rho': 4.54,
        'X0': 3.560,
        'I': 233.0,
    },
    'G4_Pb': {
        'Z': 82.0,
        'A': 207.2,
        'rho': 11.35,
        'X0': 0.5612,
        'I': 823.0,
    },
    'G4_Galactic': {
        'Z': 1.0,
        'A': 1.008,
        'rho': 1.0e-25,
        'X0': 6.3e24,
        'I': 21.8,
    },
}


class VolumeHandle(NamedTuple):
    """Read-only reference to a placed volume."""

    name: str
    volume_id: int


class Material:
    """Material record resolved from MATERIAL_PROPERTIES."""

    def __init__(self, name: str, Z: float, A: float, rho: float,
                 X0: float, I: float):
        self.name = name
        self.Z = Z
        self.A = A
        self.density = rho
        self.radiation_length = X0
        self.mean_excitation_eV = I

    def __repr__(self) -> str:
        return f"Material({self.name}, ρ={self.density:g} g/cm³)"


class Volume:
    """Axis-aligned box placed inside a mother volume."""

    def __init__(self, name: str, material: Material,
                 half_size: Tuple[float, float, float],
                 position: Tuple[float, float, float] = (0.0, 0.0, 0.0),
                 mother: Optional[str] = None):
        self.name = name
        self.material = material
        self.half_size = np.array(half_size, dtype=np.float64)
        self.position = np.array(position, dtype=np.float64)
        self.mother = mother

    def contains(self, point) -> bool:
        """Check whether a point [cm] (world frame) lies inside the box."""
        offset = np.abs(np.asarray(point, dtype=np.float64) - self.position)
        return bool(np.all(offset <= self.half_size))


class DetectorGeometry:
    """
    World / Target / Detector hierarchy.

    Example:
        geometry = DetectorGeometry()
        detector = geometry.get_volume_handle('Detector')
    """

    WORLD_MATERIAL = 'G4_AIR'
    TARGET_MATERIAL = 'G4_Ti'
    DETECTOR_MATERIAL = 'G4_AIR'

    def __init__(self,
                 target_thickness: float = 1.0 * um,
                 detector_thickness: float = 1.0 * nm,
                 target_size_xy: float = 5.0 * cm,
                 detector_size_xy: float = 2.0 * cm,
                 world_size_xyz: float = 20.0 * cm,
                 materials: Optional[Dict[str, dict]] = None):
        """
        Build materials and volumes.

        Parameters:
            target_thickness: Target foil thickness [cm]
            detector_thickness: Detector slab thickness [cm]
            target_size_xy: Target transverse size [cm]
            detector_size_xy: Detector transverse size [cm]
            world_size_xyz: World cube edge [cm]
            materials: Material table (defaults to MATERIAL_PROPERTIES)

        Raises:
            ConfigurationError: a required material is not in the table,
                or a size is not positive
        """
        sizes = {
            'target_thickness': target_thickness,
            'detector_thickness': detector_thickness,
            'target_size_xy': target_size_xy,
            'detector_size_xy': detector_size_xy,
            'world_size_xyz': world_size_xyz,
        }
        for key, value in sizes.items():
            if value <= 0:
                raise ConfigurationError(f"Geometry parameter '{key}' must be positive, got {value}")

        self.target_thickness = target_thickness
        self.detector_thickness = detector_thickness
        self.target_size_xy = target_size_xy
        self.detector_size_xy = detector_size_xy
        self.world_size_xyz = world_size_xyz

        self._material_table = dict(MATERIAL_PROPERTIES if materials is None else materials)
        self.materials: Dict[str, Material] = {}
        self.volumes: List[Volume] = []

        self._define_materials()
        self._define_volumes()

    def _define_materials(self):
        for name in (self.WORLD_MATERIAL, self.TARGET_MATERIAL, self.DETECTOR_MATERIAL):
            self.find_material(name)

    def find_material(self, name: str) -> Material:
        """
        Resolve a material by name, building it on first use.

        Raises:
            ConfigurationError: unknown material
        """
        if name in self.materials:
            return self.materials[name]

        if name not in self._material_table:
            raise ConfigurationError(f"Cannot retrieve material '{name}'. "
                                     f"Available: {sorted(self._material_table)}")

        material = Material(name, **self._material_table[name])
        self.materials[name] = material
        return material

    def _define_volumes(self):
        world_half = self.world_size_xyz / 2
        self.volumes.append(Volume(
            'World', self.find_material(self.WORLD_MATERIAL),
            (world_half, world_half, world_half)))

        self.volumes.append(Volume(
            'Target', self.find_material(self.TARGET_MATERIAL),
            (self.target_size_xy / 2, self.target_size_xy / 2, self.target_thickness / 2),
            position=(0.0, 0.0, -3.0 * cm),
            mother='World'))

        self.volumes.append(Volume(
            'Detector', self.find_material(self.DETECTOR_MATERIAL),
            (self.detector_size_xy / 2, self.detector_size_xy / 2, self.detector_thickness / 2),
            position=(3.0 * cm, 0.0, 0.0),
            mother='World'))

    def get_volume_handle(self, name: str) -> VolumeHandle:
        """
        Look up a placed volume by name.

        Raises:
            ConfigurationError: no volume with this name
        """
        for volume_id, volume in enumerate(self.volumes):
            if volume.name == name:
                return VolumeHandle(name, volume_id)
        raise ConfigurationError(f"Unknown volume '{name}'. "
                                 f"Available: {self.volume_names}")

    def get_volume(self, handle: VolumeHandle) -> Volume:
        return self.volumes[handle.volume_id]

    def handles(self) -> List[VolumeHandle]:
        """All volume handles, indexed by volume_id."""
        return [VolumeHandle(volume.name, volume_id)
                for volume_id, volume in enumerate(self.volumes)]

    @property
    def volume_names(self) -> List[str]:
        return [volume.name for volume in self.volumes]

    def locate(self, point) -> VolumeHandle:
        """
        Find the innermost volume containing a point [cm].

        Points outside the World resolve to the World handle.
        """
        # Daughters are placed after their mother; search deepest first
        for volume_id in range(len(self.volumes) - 1, 0, -1):
            if self.volumes[volume_id].contains(point):
                return VolumeHandle(self.volumes[volume_id].name, volume_id)
        return VolumeHandle(self.volumes[0].name, 0)

    def summary(self) -> str:
        lines = ["Detector Geometry Summary:"]
        for volume in self.volumes:
            size = 2 * volume.half_size
            lines.append(
                f"- {volume.name}: size=({size[0]:g}, {size[1]:g}, {size[2]:g}) cm, "
                f"position=({volume.position[0]:g}, {volume.position[1]:g}, "
                f"{volume.position[2]:g}) cm, material={volume.material.name}"
            )
        return "\n".join(lines)
