"""
Pytest configuration and shared fixtures.

Adds src/ to sys.path so the package imports without installation.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

SRC_ROOT = Path(__file__).resolve().parent.parent / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from rwg_opft.mesh.shapes import octahedron, rectangular_plate, subdivide
from rwg_opft.mesh.surface import build_rwg_surface

# vacuum wavelength 1 micron
OMEGA_1UM = 2.0 * np.pi


def random_coefficients(n, seed=0):
    rng = np.random.default_rng(seed)
    return rng.normal(size=n) + 1j * rng.normal(size=n)


@pytest.fixture
def plate():
    """1 µm PEC square plate in the z=0 plane."""
    V, F = rectangular_plate(1.0, 1.0, 4, 4)
    return build_rwg_surface(V, F, is_pec=True, label="plate")


@pytest.fixture
def dielectric_plate():
    V, F = rectangular_plate(1.0, 0.8, 3, 2, center=(0.1, -0.2, 0.3))
    return build_rwg_surface(V, F, is_pec=False, label="dplate")


@pytest.fixture
def sphere():
    """Closed, once-refined octahedral sphere of radius 0.5 µm (non-PEC)."""
    V, F = octahedron(0.5)
    V, F = subdivide(V, F, sphere_radius=0.5)
    return build_rwg_surface(V, F, is_pec=False, label="sphere")
