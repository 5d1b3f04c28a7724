from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol

# Exterior-medium models. Frequencies are angular frequencies in the
# solver's natural units (omega = 2*pi / wavelength, wavelength in microns),
# permittivity and permeability are relative to vacuum.

class MaterialProperty(Protocol):
    name: str

    def eps_mu(self, omega: complex) -> tuple[complex, complex]:
        ...


@dataclass(frozen=True, slots=True)
class ConstantMaterial:
    eps: complex = 1.0
    mu: complex = 1.0
    name: str = "CONST"

    def eps_mu(self, omega: complex) -> tuple[complex, complex]:
        return complex(self.eps), complex(self.mu)


VACUUM = ConstantMaterial(name="VACUUM")


@dataclass(frozen=True)
class CallableMaterial:
    """
    Frequency-dependent medium from user callables eps_fn(omega) and,
    optionally, mu_fn(omega) (default: non-magnetic).
    """
    eps_fn: Callable[[complex], complex]
    mu_fn: Callable[[complex], complex] | None = None
    name: str = "CALLABLE"

    def eps_mu(self, omega: complex) -> tuple[complex, complex]:
        eps = complex(self.eps_fn(omega))
        mu = complex(self.mu_fn(omega)) if self.mu_fn is not None else 1.0 + 0.0j
        return eps, mu
