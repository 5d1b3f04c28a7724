# overlaps.py
"""
Overlap integrals between pairs of RWG basis functions.

Entries of the 20-vector for basis functions (a, b), integrals over the
panels the two functions share:

    [0]  OVERLAP_OVERLAP        ∫ f_a · f_b
    [1]  OVERLAP_CROSS          ∫ f_a · (n × f_b)
    [2]  OVERLAP_BULLET_X       ∫ n_x f_a · f_b
    [3]  OVERLAP_NABLANABLA_X   ∫ n_x (∇·f_a)(∇·f_b)
    [4]  OVERLAP_TIMESNABLA_X   ∫ (n × f_a)_x (∇·f_b)
    [5..7], [8..10]             same with x -> y, z
    [11..19]                    same nine, with n_i replaced by (r × n)_i and
                                (n × f_a)_i by (r × (n × f_a))_i (torque)

Torque is taken about the origin of the mesh coordinates; move the surface
(RWGSurface.transformed) to use another pivot.

All integrals are exact closed forms of degree <= 3 polynomials over a
triangle; there is no quadrature.
"""
from __future__ import annotations

import numpy as np
from numba import njit

OVERLAP_OVERLAP = 0
OVERLAP_CROSS = 1
OVERLAP_BULLET_X = 2
OVERLAP_NABLANABLA_X = 3
OVERLAP_TIMESNABLA_X = 4
OVERLAP_BULLET_Y = 5
OVERLAP_NABLANABLA_Y = 6
OVERLAP_TIMESNABLA_Y = 7
OVERLAP_BULLET_Z = 8
OVERLAP_NABLANABLA_Z = 9
OVERLAP_TIMESNABLA_Z = 10
OVERLAP_RXBULLET_X = 11
OVERLAP_RXNABLANABLA_X = 12
OVERLAP_RXTIMESNABLA_X = 13
OVERLAP_RXBULLET_Y = 14
OVERLAP_RXNABLANABLA_Y = 15
OVERLAP_RXTIMESNABLA_Y = 16
OVERLAP_RXBULLET_Z = 17
OVERLAP_RXNABLANABLA_Z = 18
OVERLAP_RXTIMESNABLA_Z = 19

NUM_OVERLAPS = 20

# offset between the x, y and z entries of one kind
AXIS_STRIDE = 3

MAX_OVERLAPPING_EDGES = 5

# ----------------------------- Utilities ---------------------------------
@njit(cache=True)
def _dot(a, b) -> float:
    return a[0]*b[0] + a[1]*b[1] + a[2]*b[2]

# ----------------------------- Kernels -----------------------------------
@njit(cache=True)
def _add_overlap_contributions(vertices, panel_vertices, panel_normals, panel_areas,
                               ip, iqa, iqb, sign, ll, overlaps):
    # alpha triangle walked from its free vertex: Qa -> Qa+1 -> Qa+2
    vi = panel_vertices[ip]
    qa = vertices[vi[iqa]]
    qap1 = vertices[vi[(iqa + 1) % 3]]
    qap2 = vertices[vi[(iqa + 2) % 3]]
    qb = vertices[vi[iqb]]
    zhat = panel_normals[ip]

    l1 = qap1 - qa
    l2 = qap2 - qap1
    dq = qa - qb

    zxl1 = np.cross(zhat, l1)
    zxl2 = np.cross(zhat, l2)
    zxdq = np.cross(zhat, dq)
    zxqa = np.cross(zhat, qa)
    qaxzxl1 = np.cross(qa, zxl1)
    qaxzxl2 = np.cross(qa, zxl2)

    prefac = sign * ll / (2.0 * panel_areas[ip])

    l1dl1 = _dot(l1, l1)
    l1dl2 = _dot(l1, l2)
    l1ddq = _dot(l1, dq)
    l2dl2 = _dot(l2, l2)
    l2ddq = _dot(l2, dq)

    times_factor = ((2.0*l1[0] + l2[0])*zxdq[0]
                    + (2.0*l1[1] + l2[1])*zxdq[1]
                    + (2.0*l1[2] + l2[2])*zxdq[2]) / 6.0

    bullet_factor1 = (l1dl1 + l1dl2)/4.0 + l1ddq/3.0 + l2dl2/12.0 + l2ddq/6.0
    bullet_factor2 = (l1dl1 + l1dl2)/5.0 + l1ddq/4.0 + l2dl2/15.0 + l2ddq/8.0
    bullet_factor3 = l1dl1/10.0 + 2.0*l1dl2/15.0 + l1ddq/8.0 + l2dl2/20.0 + l2ddq/12.0
    nabla_cross_factor = (l1dl1 + l1dl2)/2.0 + l2dl2/6.0

    overlaps[OVERLAP_OVERLAP] += prefac * bullet_factor1
    overlaps[OVERLAP_CROSS] += prefac * times_factor

    for i in range(3):
        o = AXIS_STRIDE * i
        overlaps[OVERLAP_BULLET_X + o] += prefac * zhat[i] * bullet_factor1
        overlaps[OVERLAP_NABLANABLA_X + o] += prefac * zhat[i] * 2.0
        overlaps[OVERLAP_TIMESNABLA_X + o] += prefac * (2.0*zxl1[i] + zxl2[i]) / 3.0

        overlaps[OVERLAP_RXBULLET_X + o] -= prefac * (zxqa[i]*bullet_factor1
                                                      + zxl1[i]*bullet_factor2
                                                      + zxl2[i]*bullet_factor3)
        overlaps[OVERLAP_RXNABLANABLA_X + o] -= prefac * (2.0*zxqa[i] + 4.0*zxl1[i]/3.0 + 2.0*zxl2[i]/3.0)
        overlaps[OVERLAP_RXTIMESNABLA_X + o] += prefac * (zhat[i]*nabla_cross_factor
                                                          + 2.0*qaxzxl1[i]/3.0
                                                          + qaxzxl2[i]/3.0)


@njit(cache=True)
def _get_overlaps(vertices, panel_vertices, panel_normals, panel_areas,
                  edge_ppanel, edge_mpanel, edge_pindex, edge_mindex, edge_lengths,
                  nea, neb, overlaps):
    overlaps[:] = 0.0

    pa, ma = edge_ppanel[nea], edge_mpanel[nea]
    pb, mb = edge_ppanel[neb], edge_mpanel[neb]
    ll = edge_lengths[nea] * edge_lengths[neb]

    if pa == pb:
        _add_overlap_contributions(vertices, panel_vertices, panel_normals, panel_areas,
                                   pa, edge_pindex[nea], edge_pindex[neb], 1.0, ll, overlaps)
    if mb != -1 and pa == mb:
        _add_overlap_contributions(vertices, panel_vertices, panel_normals, panel_areas,
                                   pa, edge_pindex[nea], edge_mindex[neb], -1.0, ll, overlaps)
    if ma != -1 and ma == pb:
        _add_overlap_contributions(vertices, panel_vertices, panel_normals, panel_areas,
                                   ma, edge_mindex[nea], edge_pindex[neb], -1.0, ll, overlaps)
    if ma != -1 and ma == mb:
        _add_overlap_contributions(vertices, panel_vertices, panel_normals, panel_areas,
                                   ma, edge_mindex[nea], edge_mindex[neb], 1.0, ll, overlaps)


@njit(cache=True)
def _overlapping_edge_indices(panel_edges, edge_ppanel, edge_mpanel, edge_pindex, edge_mindex,
                              nea, neb_array) -> int:
    neb_array[0] = nea
    count = 1

    ip, iq = edge_ppanel[nea], edge_pindex[nea]
    for k in range(1, 3):
        ne = panel_edges[ip, (iq + k) % 3]
        if ne >= 0:
            neb_array[count] = ne
            count += 1

    im = edge_mpanel[nea]
    if im == -1:
        return count

    iq = edge_mindex[nea]
    for k in range(1, 3):
        ne = panel_edges[im, (iq + k) % 3]
        if ne >= 0:
            neb_array[count] = ne
            count += 1
    return count

# ------------------------------ Python API -------------------------------
def _panel_args(surface):
    return (surface.vertices, surface.panel_vertices, surface.panel_normals, surface.panel_areas)


def _edge_args(surface):
    return (surface.edge_ppanel, surface.edge_mpanel, surface.edge_pindex,
            surface.edge_mindex, surface.edge_lengths)


def add_overlap_contributions(surface, panel: int, iqa: int, iqb: int,
                              sign: float, ll: float, overlaps: np.ndarray) -> None:
    """
    Add one panel's contribution to all twenty overlap integrals into
    `overlaps` (float64, length NUM_OVERLAPS); existing values are kept.

    iqa, iqb are the local slots of the two free vertices, sign is +1 when
    both basis functions use the panel with the same orientation and -1
    otherwise, ll is the product of the two edge lengths.
    """
    _add_overlap_contributions(*_panel_args(surface), int(panel), int(iqa), int(iqb),
                               float(sign), float(ll), overlaps)


def get_overlaps(surface, nea: int, neb: int, out: np.ndarray | None = None) -> np.ndarray:
    """All twenty overlap integrals between basis functions nea and neb."""
    if out is None:
        out = np.zeros(NUM_OVERLAPS, dtype=np.float64)
    _get_overlaps(*_panel_args(surface), *_edge_args(surface), int(nea), int(neb), out)
    return out


def get_overlap(surface, nea: int, neb: int) -> tuple[float, float]:
    """(∫ f_a·f_b, ∫ f_a·(n × f_b))."""
    overlaps = get_overlaps(surface, nea, neb)
    return float(overlaps[OVERLAP_OVERLAP]), float(overlaps[OVERLAP_CROSS])


def overlapping_edge_indices(surface, nea: int) -> list[int]:
    """
    Basis functions whose overlap with nea can be nonzero: nea itself, the
    other two edges of its positive panel, then (interior edges only) the
    other two edges of its negative panel.

    The result has exactly 3 (boundary) or 5 (interior) entries when every
    mesh edge carries a basis function, which is the default half_rwg=True
    build. On a surface built with half_rwg=False, panel slots without a
    basis function (-1) are skipped, so the list can be shorter.
    """
    neb_array = np.empty(MAX_OVERLAPPING_EDGES, dtype=np.int64)
    count = _overlapping_edge_indices(surface.panel_edges, surface.edge_ppanel, surface.edge_mpanel,
                                      surface.edge_pindex, surface.edge_mindex, int(nea), neb_array)
    return [int(ne) for ne in neb_array[:count]]
