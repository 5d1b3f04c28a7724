from dataclasses import replace

import numpy as np
import pytest

from rwg_opft.bem.overlaps import (
    NUM_OVERLAPS,
    OVERLAP_CROSS,
    OVERLAP_OVERLAP,
    add_overlap_contributions,
    get_overlap,
    get_overlaps,
    overlapping_edge_indices,
)
from rwg_opft.mesh.shapes import rectangular_plate
from rwg_opft.mesh.surface import build_rwg_surface

# degree-3 rule on the reference triangle (area 1/2): barycentric (a, b), weight
QUAD3 = (
    ((1.0 / 3.0, 1.0 / 3.0), -27.0 / 96.0),
    ((0.6, 0.2), 25.0 / 96.0),
    ((0.2, 0.6), 25.0 / 96.0),
    ((0.2, 0.2), 25.0 / 96.0),
)

SYMMETRIC_ENTRIES = [0, 2, 3, 5, 6, 8, 9, 11, 12, 14, 15, 17, 18]


def _rwg_on_panel(S, ne, p):
    """(sign, free vertex) of basis function ne on panel p, or None."""
    if S.edge_ppanel[ne] == p:
        return 1.0, S.vertices[S.panel_vertices[p, S.edge_pindex[ne]]]
    if S.edge_mpanel[ne] == p:
        return -1.0, S.vertices[S.panel_vertices[p, S.edge_mindex[ne]]]
    return None


def _reference_overlaps(S, nea, neb):
    """Direct quadrature of the twenty integrals; exact for these integrands."""
    out = np.zeros(NUM_OVERLAPS)
    La, Lb = S.edge_lengths[nea], S.edge_lengths[neb]
    panels = [S.edge_ppanel[nea]] + ([S.edge_mpanel[nea]] if S.edge_mpanel[nea] >= 0 else [])
    for p in panels:
        on_a, on_b = _rwg_on_panel(S, nea, p), _rwg_on_panel(S, neb, p)
        if on_b is None:
            continue
        (sa, Qa), (sb, Qb) = on_a, on_b
        v0, v1, v2 = S.vertices[S.panel_vertices[p]]
        n, A = S.panel_normals[p], S.panel_areas[p]
        da, db = sa * La / A, sb * Lb / A

        for (a, b), w in QUAD3:
            r = a * v0 + b * v1 + (1.0 - a - b) * v2
            wt = 2.0 * A * w
            fa = sa * La / (2.0 * A) * (r - Qa)
            fb = sb * Lb / (2.0 * A) * (r - Qb)
            nxfa = np.cross(n, fa)
            rxn = np.cross(r, n)
            rx_nxfa = np.cross(r, nxfa)

            out[0] += wt * fa @ fb
            out[1] += wt * fa @ np.cross(n, fb)
            for i in range(3):
                o = 3 * i
                out[2 + o] += wt * n[i] * (fa @ fb)
                out[3 + o] += wt * n[i] * da * db
                out[4 + o] += wt * nxfa[i] * db
                out[11 + o] += wt * rxn[i] * (fa @ fb)
                out[12 + o] += wt * rxn[i] * da * db
                out[13 + o] += wt * rx_nxfa[i] * db
    return out


@pytest.fixture
def shifted_sphere(sphere):
    # off-origin, so the torque entries are all exercised
    return sphere.transformed(displacement=[0.3, -0.2, 0.7])


@pytest.mark.parametrize("nea", [0, 7, 19, 33])
def test_closed_forms_match_quadrature_on_sphere(shifted_sphere, nea):
    S = shifted_sphere
    for neb in overlapping_edge_indices(S, nea):
        np.testing.assert_allclose(
            get_overlaps(S, nea, neb), _reference_overlaps(S, nea, neb), rtol=1e-9, atol=1e-12
        )


def test_closed_forms_match_quadrature_on_plate_boundary(dielectric_plate):
    S = dielectric_plate
    boundary = [ne for ne in range(S.num_edges) if not S.is_interior(ne)]
    assert boundary
    for nea in boundary[:4]:
        for neb in overlapping_edge_indices(S, nea):
            np.testing.assert_allclose(
                get_overlaps(S, nea, neb), _reference_overlaps(S, nea, neb), rtol=1e-9, atol=1e-12
            )


def test_neighbor_counts(plate):
    for ne in range(plate.num_edges):
        neighbors = overlapping_edge_indices(plate, ne)
        assert neighbors[0] == ne
        assert len(set(neighbors)) == len(neighbors)
        assert len(neighbors) == (5 if plate.is_interior(ne) else 3)


def test_neighbor_order(sphere):
    ne = 5
    ip, iq = sphere.edge_ppanel[ne], sphere.edge_pindex[ne]
    im, jq = sphere.edge_mpanel[ne], sphere.edge_mindex[ne]
    expected = [
        ne,
        sphere.panel_edges[ip, (iq + 1) % 3],
        sphere.panel_edges[ip, (iq + 2) % 3],
        sphere.panel_edges[im, (jq + 1) % 3],
        sphere.panel_edges[im, (jq + 2) % 3],
    ]
    assert overlapping_edge_indices(sphere, ne) == [int(x) for x in expected]


def test_neighbors_skip_missing_basis_functions():
    S = build_rwg_surface(*rectangular_plate(1.0, 1.0, 1, 1), half_rwg=False)
    # a single diagonal: neither panel has another basis function
    assert S.num_edges == 1
    assert overlapping_edge_indices(S, 0) == [0]


def test_neighbor_counts_without_half_rwg():
    S = build_rwg_surface(*rectangular_plate(1.0, 1.0, 2, 2), half_rwg=False)
    counts = [len(overlapping_edge_indices(S, ne)) for ne in range(S.num_edges)]
    assert all(1 <= c <= 5 for c in counts)
    assert min(counts) < 5
    for ne in range(S.num_edges):
        assert -1 not in overlapping_edge_indices(S, ne)


def test_non_neighbors_have_zero_overlaps(sphere):
    nea = 0
    neighbors = set(overlapping_edge_indices(sphere, nea))
    for neb in range(sphere.num_edges):
        if neb not in neighbors:
            assert not np.any(get_overlaps(sphere, nea, neb))


def test_self_overlap_positive(sphere, plate):
    for S in (sphere, plate):
        for ne in range(S.num_edges):
            plain, cross = get_overlap(S, ne, ne)
            assert plain > 0.0
            assert cross == pytest.approx(0.0, abs=1e-14)


def test_swap_symmetry(shifted_sphere):
    S = shifted_sphere
    for nea in range(0, S.num_edges, 6):
        for neb in overlapping_edge_indices(S, nea):
            ab = get_overlaps(S, nea, neb)
            ba = get_overlaps(S, neb, nea)
            np.testing.assert_allclose(ab[SYMMETRIC_ENTRIES], ba[SYMMETRIC_ENTRIES], rtol=1e-10, atol=1e-14)
            assert ab[OVERLAP_CROSS] == pytest.approx(-ba[OVERLAP_CROSS], rel=1e-10, abs=1e-14)


def test_get_overlap_matches_vector(sphere):
    vec = get_overlaps(sphere, 3, overlapping_edge_indices(sphere, 3)[2])
    plain, cross = get_overlap(sphere, 3, overlapping_edge_indices(sphere, 3)[2])
    assert plain == vec[OVERLAP_OVERLAP]
    assert cross == vec[OVERLAP_CROSS]


def test_get_overlaps_resets_output(sphere):
    out = np.full(NUM_OVERLAPS, 123.0)
    get_overlaps(sphere, 0, 0, out=out)
    np.testing.assert_allclose(out, get_overlaps(sphere, 0, 0))


def test_add_overlap_contributions_accumulates(sphere):
    ne = 2
    ip, iq = sphere.edge_ppanel[ne], sphere.edge_pindex[ne]
    ll = sphere.edge_lengths[ne] ** 2

    once = np.zeros(NUM_OVERLAPS)
    add_overlap_contributions(sphere, ip, iq, iq, 1.0, ll, once)
    twice = np.zeros(NUM_OVERLAPS)
    add_overlap_contributions(sphere, ip, iq, iq, 1.0, ll, twice)
    add_overlap_contributions(sphere, ip, iq, iq, 1.0, ll, twice)
    np.testing.assert_allclose(twice, 2.0 * once)

    flipped = np.zeros(NUM_OVERLAPS)
    add_overlap_contributions(sphere, ip, iq, iq, -1.0, ll, flipped)
    np.testing.assert_allclose(flipped, -once)


def test_overlaps_independent_of_label_and_material_flags(sphere):
    other = replace(sphere, is_pec=True, label="other")
    np.testing.assert_array_equal(get_overlaps(sphere, 4, 4), get_overlaps(other, 4, 4))
