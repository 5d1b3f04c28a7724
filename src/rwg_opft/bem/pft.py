# pft.py
"""
Power, force and torque on one surface from overlap integrals.

For every basis function a and each b in overlapping_edge_indices(a):

    dP     = 1/4 Re[(KN - NK) O^×]
    dF_i   = 1/4 (10/3) Re[ -(KK Z + NN/Z)(O^{i,•} - O^{i,∇∇}/k²)
                            + (NK - KN) 2 O^{i,×∇} / (iω) ]
    dTau_i = same with the r×-weighted overlaps

where KK = conj(k_a) k_b, KN = conj(k_a) n_b, NK = conj(n_a) k_b,
NN = conj(n_a) n_b, with magnetic coefficients rescaled to field units
(n = -ZVAC * coefficient). Z and k² are the wave impedance and squared
wavenumber of the exterior medium.

Units: ω in units of 3e14 rad/s (ω = 2π/λ, λ in microns) and fields in
V/µm give power in watts, force in nN and torque in nN·µm.
"""
from __future__ import annotations

import cmath
import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from multiprocessing import get_context
from typing import Sequence

import numpy as np
from numba import njit

from .materials import VACUUM, MaterialProperty
from .overlaps import (
    AXIS_STRIDE,
    MAX_OVERLAPPING_EDGES,
    NUM_OVERLAPS,
    OVERLAP_BULLET_X,
    OVERLAP_CROSS,
    OVERLAP_NABLANABLA_X,
    OVERLAP_RXBULLET_X,
    OVERLAP_RXNABLANABLA_X,
    OVERLAP_RXTIMESNABLA_X,
    OVERLAP_TIMESNABLA_X,
    _get_overlaps,
    _overlapping_edge_indices,
)

LOG = logging.getLogger(__name__)

# impedance of vacuum, ohms
ZVAC = 376.73031346177

# 1 W / c = (10/3) nN
TENTHIRDS = 10.0 / 3.0

PFT_PABS = 0
PFT_XFORCE = 1
PFT_YFORCE = 2
PFT_ZFORCE = 3
PFT_XTORQUE = 4
PFT_YTORQUE = 5
PFT_ZTORQUE = 6
NUM_PFT = 7

PFT_NAMES = ("PAbs", "Fx", "Fy", "Fz", "Taux", "Tauy", "Tauz")

# ----------------------------- Configuration -----------------------------
@dataclass(slots=True)
class PFTConfig:
    num_workers: int = 1
    min_edges_per_worker: int = 64
    start_method: str | None = None


@dataclass(slots=True)
class PFTResult:
    pft: np.ndarray
    extinction: float | None = None
    by_edge: list[np.ndarray | None] | None = None

    @property
    def power(self) -> float:
        return float(self.pft[PFT_PABS])

    @property
    def force(self) -> np.ndarray:
        return self.pft[PFT_XFORCE:PFT_ZFORCE + 1]

    @property
    def torque(self) -> np.ndarray:
        return self.pft[PFT_XTORQUE:PFT_ZTORQUE + 1]

# ----------------------------- Kernel ------------------------------------
@njit(cache=True)
def _opft_kernel(vertices, panel_vertices, panel_normals, panel_areas, panel_edges,
                 edge_ppanel, edge_mpanel, edge_pindex, edge_mindex, edge_lengths,
                 is_pec, kn_vector, sigma, use_kn, offset, zz, k2, omega,
                 first, last, by_edge):
    pft = np.zeros(NUM_PFT)
    d = np.zeros(NUM_PFT)
    overlaps = np.zeros(NUM_OVERLAPS)
    neb_array = np.empty(MAX_OVERLAPPING_EDGES, dtype=np.int64)

    for nea in range(first, last):
        count = _overlapping_edge_indices(panel_edges, edge_ppanel, edge_mpanel,
                                          edge_pindex, edge_mindex, nea, neb_array)
        for nneb in range(count):
            neb = neb_array[nneb]
            _get_overlaps(vertices, panel_vertices, panel_normals, panel_areas,
                          edge_ppanel, edge_mpanel, edge_pindex, edge_mindex, edge_lengths,
                          nea, neb, overlaps)

            # bilinear current products
            if use_kn:
                if is_pec:
                    k_alpha = kn_vector[offset + nea]
                    k_beta = kn_vector[offset + neb]
                    n_alpha = 0j
                    n_beta = 0j
                else:
                    k_alpha = kn_vector[offset + 2*nea]
                    n_alpha = -ZVAC * kn_vector[offset + 2*nea + 1]
                    k_beta = kn_vector[offset + 2*neb]
                    n_beta = -ZVAC * kn_vector[offset + 2*neb + 1]
                KK = k_alpha.conjugate() * k_beta
                KN = k_alpha.conjugate() * n_beta
                NK = n_alpha.conjugate() * k_beta
                NN = n_alpha.conjugate() * n_beta
            else:
                if is_pec:
                    KK = sigma[offset + neb, offset + nea]
                    KN = 0j
                    NK = 0j
                    NN = 0j
                else:
                    KK = sigma[offset + 2*neb, offset + 2*nea]
                    KN = sigma[offset + 2*neb + 1, offset + 2*nea]
                    NK = sigma[offset + 2*neb, offset + 2*nea + 1]
                    NN = sigma[offset + 2*neb + 1, offset + 2*nea + 1]

            d[PFT_PABS] = 0.25 * ((KN - NK) * overlaps[OVERLAP_CROSS]).real

            for i in range(3):
                o = AXIS_STRIDE * i
                d[PFT_XFORCE + i] = 0.25 * TENTHIRDS * (
                    -(KK*zz + NN/zz) * (overlaps[OVERLAP_BULLET_X + o] - overlaps[OVERLAP_NABLANABLA_X + o]/k2)
                    + (NK - KN) * 2.0 * overlaps[OVERLAP_TIMESNABLA_X + o] / (1j*omega)
                ).real
                d[PFT_XTORQUE + i] = 0.25 * TENTHIRDS * (
                    -(KK*zz + NN/zz) * (overlaps[OVERLAP_RXBULLET_X + o] - overlaps[OVERLAP_RXNABLANABLA_X + o]/k2)
                    + (NK - KN) * 2.0 * overlaps[OVERLAP_RXTIMESNABLA_X + o] / (1j*omega)
                ).real

            for q in range(NUM_PFT):
                pft[q] += d[q]
                by_edge[q, nea] += d[q]

    return pft

# ---------------------- ProcessPool worker state -------------------------
_WORKER_KERNEL_ARGS = None
_WORKER_NUM_EDGES = None


def _init_worker(kernel_args: tuple, num_edges: int):
    """
    Runs once per worker process. Keeps the mesh arrays and current data in
    process-local globals so they are not pickled for every chunk.
    """
    global _WORKER_KERNEL_ARGS, _WORKER_NUM_EDGES
    _WORKER_KERNEL_ARGS = kernel_args
    _WORKER_NUM_EDGES = num_edges


def _run_chunk_worker(first: int, last: int):
    by_edge = np.zeros((NUM_PFT, _WORKER_NUM_EDGES), dtype=np.float64)
    pft = _opft_kernel(*_WORKER_KERNEL_ARGS, first, last, by_edge)
    return first, last, pft, by_edge[:, first:last]
# --------------------------------------------------------------------------


def _resolve_need_by_edge(need_by_edge) -> list[bool]:
    if isinstance(need_by_edge, (bool, np.bool_)):
        return [bool(need_by_edge)] * NUM_PFT
    need = [bool(x) for x in need_by_edge]
    if len(need) != NUM_PFT:
        raise ValueError(f"need_by_edge must be a bool or {NUM_PFT} bools, got {len(need)}")
    return need


def _num_chunks(num_edges: int, cfg: PFTConfig) -> int:
    if cfg.num_workers <= 1:
        return 1
    return max(1, min(int(cfg.num_workers), num_edges // max(1, int(cfg.min_edges_per_worker))))


def _kernel_args(surface, kn_vector, sigma, use_kn, offset, zz, k2, omega) -> tuple:
    return (
        surface.vertices, surface.panel_vertices, surface.panel_normals, surface.panel_areas,
        surface.panel_edges,
        surface.edge_ppanel, surface.edge_mpanel, surface.edge_pindex, surface.edge_mindex,
        surface.edge_lengths,
        bool(surface.is_pec), kn_vector, sigma, bool(use_kn), int(offset), zz, k2, omega,
    )


def get_extinction(surface, kn, rhs, offset: int = 0) -> float:
    """
    Extinction 1/2 Σ Re[conj(k) v_E] (+ 1/2 Σ Re[conj(n) v_H] off PEC), with
    v_E = -ZVAC·rhs_E, v_H = -rhs_H and n = -ZVAC·coefficient.
    """
    kn = np.asarray(kn, dtype=np.complex128)
    rhs = np.asarray(rhs, dtype=np.complex128)
    NE = surface.num_edges

    if surface.is_pec:
        k_alpha = kn[offset:offset + NE]
        v_e = -ZVAC * rhs[offset:offset + NE]
        return float(0.5 * np.sum((np.conj(k_alpha) * v_e).real))

    stop = offset + 2*NE
    k_alpha = kn[offset:stop:2]
    n_alpha = -ZVAC * kn[offset + 1:stop:2]
    v_e = -ZVAC * rhs[offset:stop:2]
    v_h = -1.0 * rhs[offset + 1:stop:2]
    return float(0.5 * np.sum((np.conj(k_alpha) * v_e).real + (np.conj(n_alpha) * v_h).real))


def get_surface_opft(
    surface,
    omega: complex,
    exterior: MaterialProperty = VACUUM,
    *,
    kn: np.ndarray | None = None,
    rhs: np.ndarray | None = None,
    sigma: np.ndarray | None = None,
    offset: int = 0,
    need_by_edge: bool | Sequence[bool] = False,
    cfg: PFTConfig | None = None,
) -> PFTResult:
    """
    Absorbed power, force and torque on `surface` at angular frequency omega.

    Currents come from `kn` (coefficient vector; two slots per edge off PEC,
    one on PEC, starting at `offset`) or, if kn is None, from the covariance
    matrix `sigma` with the same indexing. Extinction is computed when both
    kn and rhs are given. need_by_edge selects per-edge breakdowns: a bool
    for all seven quantities or seven bools.

    Returns
    -------
    PFTResult with pft = [PAbs, Fx, Fy, Fz, Taux, Tauy, Tauz].
    """
    if cfg is None:
        cfg = PFTConfig()
    if kn is None and sigma is None:
        raise ValueError("get_surface_opft needs either a KN coefficient vector or a Sigma matrix")

    omega = complex(omega)
    if omega == 0:
        raise ValueError("omega must be nonzero")
    need = _resolve_need_by_edge(need_by_edge)

    # exterior medium
    eps, mu = exterior.eps_mu(omega)
    k2 = omega * omega * complex(eps) * complex(mu)
    zz = ZVAC * cmath.sqrt(complex(mu) / complex(eps))

    use_kn = kn is not None
    if use_kn:
        kn_vector = np.ascontiguousarray(kn, dtype=np.complex128)
        sigma_matrix = np.zeros((0, 0), dtype=np.complex128)
    else:
        kn_vector = np.zeros(0, dtype=np.complex128)
        sigma_matrix = np.ascontiguousarray(sigma, dtype=np.complex128)

    NE = surface.num_edges
    args = _kernel_args(surface, kn_vector, sigma_matrix, use_kn, offset, zz, k2, omega)
    n_chunks = _num_chunks(NE, cfg)

    LOG.debug(
        "PFT on surface %s: %d edges, omega=%s, %s currents, %d chunk(s).",
        surface.label, NE, omega, "KN" if use_kn else "Sigma", n_chunks,
    )

    by_edge = np.zeros((NUM_PFT, NE), dtype=np.float64)
    if n_chunks <= 1:
        pft = _opft_kernel(*args, 0, NE, by_edge)
    else:
        bounds = np.linspace(0, NE, n_chunks + 1).astype(int)
        ctx = get_context(cfg.start_method) if cfg.start_method else None
        pft = np.zeros(NUM_PFT, dtype=np.float64)
        with ProcessPoolExecutor(
            max_workers=n_chunks,
            mp_context=ctx,
            initializer=_init_worker,
            initargs=(args, NE),
        ) as pool:
            futures = [
                pool.submit(_run_chunk_worker, int(bounds[i]), int(bounds[i + 1]))
                for i in range(n_chunks)
            ]
            # fixed summation order regardless of completion order
            for fut in futures:
                first, last, chunk_pft, chunk_by_edge = fut.result()
                pft += chunk_pft
                by_edge[:, first:last] = chunk_by_edge

    extinction = None
    if use_kn and rhs is not None:
        extinction = get_extinction(surface, kn_vector, rhs, offset)

    by_edge_out = None
    if any(need):
        by_edge_out = [by_edge[q].copy() if need[q] else None for q in range(NUM_PFT)]

    return PFTResult(pft=np.asarray(pft, dtype=np.float64), extinction=extinction, by_edge=by_edge_out)
