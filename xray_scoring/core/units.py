"""
Unit conventions for the scoring pipeline.

Internal units:
    energy: keV
    length: cm

Multiply by a unit to convert into internal units, divide to convert out:
    7.0 * keV  -> 7.0
    1.0 * nm   -> 1e-7 (cm)
"""

# Energy [keV]
eV = 1.0e-3
keV = 1.0
MeV = 1.0e3

# Length [cm]
cm = 1.0
mm = 0.1
um = 1.0e-4
nm = 1.0e-7

# Density [g/cm³]
g_cm3 = 1.0

_ENERGY_UNITS = (
    ('MeV', MeV),
    ('keV', keV),
    ('eV', eV),
)


def format_energy(value_keV: float, precision: int = 4) -> str:
    """
    Format an energy with the largest unit that keeps the value >= 1.

    Values below 1 eV (including 0) are printed in eV.

    Examples:
        format_energy(4.51)   -> '4.51 keV'
        format_energy(0.0375) -> '37.5 eV'
        format_energy(1250.0) -> '1.25 MeV'
    """
    magnitude = abs(value_keV)
    for name, scale in _ENERGY_UNITS:
        if magnitude >= scale:
            return f"{value_keV / scale:.{precision}g} {name}"
    return f"{value_keV / eV:.{precision}g} eV"
