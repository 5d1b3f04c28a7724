from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np

from .preprocess import compute_panel_geometry

# ----------------------------- Surface arena -----------------------------
@dataclass(frozen=True)
class RWGSurface:
    """
    Triangulated surface with one RWG basis function per (basis) edge.

    Panels and edges live in flat integer-indexed arrays; cross references
    are indices, -1 meaning "absent".

    panel_edges[p, i] is the basis function on the edge opposite local vertex
    slot i of panel p. Each basis function has a positive panel (always) and a
    negative panel (interior edges only); edge_pindex / edge_mindex give the
    local slot of the free vertex in each.
    """
    vertices: np.ndarray          # (NV, 3)
    panel_vertices: np.ndarray    # (NP, 3)
    panel_areas: np.ndarray       # (NP,)
    panel_normals: np.ndarray     # (NP, 3)
    panel_centroids: np.ndarray   # (NP, 3)
    panel_edges: np.ndarray       # (NP, 3)
    edge_vertices: np.ndarray     # (NE, 2)
    edge_ppanel: np.ndarray       # (NE,)
    edge_mpanel: np.ndarray       # (NE,)
    edge_pindex: np.ndarray       # (NE,)
    edge_mindex: np.ndarray       # (NE,)
    edge_lengths: np.ndarray      # (NE,)
    is_pec: bool = True
    label: str | None = None
    region_index: int = 0

    @property
    def num_vertices(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def num_panels(self) -> int:
        return int(self.panel_vertices.shape[0])

    @property
    def num_edges(self) -> int:
        return int(self.edge_ppanel.shape[0])

    @property
    def num_bfs(self) -> int:
        """Unknowns on this surface: one per edge for PEC, two otherwise."""
        return self.num_edges if self.is_pec else 2*self.num_edges

    @property
    def num_interior_edges(self) -> int:
        return int(np.count_nonzero(self.edge_mpanel >= 0))

    @property
    def num_boundary_edges(self) -> int:
        return self.num_edges - self.num_interior_edges

    @property
    def edge_centroids(self) -> np.ndarray:
        return 0.5*(self.vertices[self.edge_vertices[:, 0]] + self.vertices[self.edge_vertices[:, 1]])

    def is_interior(self, ne: int) -> bool:
        return bool(self.edge_mpanel[ne] >= 0)

    def transformed(self, rotation=None, displacement=None) -> "RWGSurface":
        """
        Rigidly moved copy: v -> rotation @ v + displacement.

        Torque is always computed about the mesh origin; to get it about a
        pivot X, pass displacement=-X.
        """
        R = np.eye(3) if rotation is None else np.asarray(rotation, dtype=np.float64)
        d = np.zeros(3) if displacement is None else np.asarray(displacement, dtype=np.float64)
        if R.shape != (3, 3) or d.shape != (3,):
            raise ValueError(f"rotation must be (3,3) and displacement (3,), got {R.shape}, {d.shape}")

        return replace(
            self,
            vertices=np.ascontiguousarray(self.vertices @ R.T + d),
            panel_normals=np.ascontiguousarray(self.panel_normals @ R.T),
            panel_centroids=np.ascontiguousarray(self.panel_centroids @ R.T + d),
        )

# ----------------------------- Validation --------------------------------
def validate_surface(
    surface: RWGSurface,
    *,
    area_eps=1e-12,
    normal_unit_tol=1e-2,
):
    issues = []

    V = surface.vertices
    if V.ndim != 2 or V.shape[1] != 3 or not np.isfinite(V).all():
        return False, [f"vertices must be finite (NV,3), got {V.shape}"]

    NV, NP, NE = surface.num_vertices, surface.num_panels, surface.num_edges
    for name, arr, shape in (
        ("panel_vertices", surface.panel_vertices, (NP, 3)),
        ("panel_areas", surface.panel_areas, (NP,)),
        ("panel_normals", surface.panel_normals, (NP, 3)),
        ("panel_edges", surface.panel_edges, (NP, 3)),
        ("edge_vertices", surface.edge_vertices, (NE, 2)),
        ("edge_mpanel", surface.edge_mpanel, (NE,)),
        ("edge_pindex", surface.edge_pindex, (NE,)),
        ("edge_mindex", surface.edge_mindex, (NE,)),
        ("edge_lengths", surface.edge_lengths, (NE,)),
    ):
        if arr.shape != shape:
            issues.append(f"{name} must have shape {shape}, got {arr.shape}")
    if issues:
        return False, issues

    if NP == 0:
        issues.append("surface has no panels")
    if ((surface.panel_vertices < 0) | (surface.panel_vertices >= NV)).any():
        issues.append("panel_vertices index out of range")
        return False, issues

    # ---- geometric checks ----
    for p_idx in np.flatnonzero(~(surface.panel_areas > area_eps)):
        issues.append(f"[panel {p_idx}] degenerate area={surface.panel_areas[p_idx]:.3e}")

    nlen = np.linalg.norm(surface.panel_normals, axis=1)
    for p_idx in np.flatnonzero(~(np.abs(nlen - 1.0) <= normal_unit_tol)):
        issues.append(f"[panel {p_idx}] normal not ~unit (||n||={nlen[p_idx]:.6f})")

    for e_idx in np.flatnonzero(~(surface.edge_lengths > 0.0)):
        issues.append(f"[edge {e_idx}] non-positive length={surface.edge_lengths[e_idx]:.3e}")

    # ---- cross references ----
    pe = surface.panel_edges
    if ((pe < -1) | (pe >= NE)).any():
        issues.append("panel_edges index out of range")
        return False, issues

    for ne in range(NE):
        ip, iq = int(surface.edge_ppanel[ne]), int(surface.edge_pindex[ne])
        if not (0 <= ip < NP and 0 <= iq < 3):
            issues.append(f"[edge {ne}] invalid positive panel/index ({ip}, {iq})")
            continue
        if pe[ip, iq] != ne:
            issues.append(f"[edge {ne}] positive panel {ip} slot {iq} references edge {pe[ip, iq]}")

        im, jq = int(surface.edge_mpanel[ne]), int(surface.edge_mindex[ne])
        if im == -1:
            continue
        if not (0 <= im < NP and 0 <= jq < 3) or im == ip:
            issues.append(f"[edge {ne}] invalid negative panel/index ({im}, {jq})")
            continue
        if pe[im, jq] != ne:
            issues.append(f"[edge {ne}] negative panel {im} slot {jq} references edge {pe[im, jq]}")

    ok = (len(issues) == 0)
    return ok, issues

# ----------------------------- Construction ------------------------------
def build_rwg_surface(
    vertices,
    faces,
    *,
    is_pec: bool = True,
    label: str | None = None,
    region_index: int = 0,
    half_rwg: bool = True,
    outward_normals=None,
) -> RWGSurface:
    """
    Build the RWG arena for a triangle mesh (V, F).

    Interior edges (two faces) get a positive panel (the first face, in face
    order, that uses the edge) and a negative panel. Edges used by a single
    face become boundary basis functions when half_rwg is True, and carry no
    basis function otherwise.
    """
    V = np.ascontiguousarray(vertices, dtype=np.float64)
    F = np.ascontiguousarray(faces, dtype=np.int64)
    if V.ndim != 2 or V.shape[1] != 3:
        raise ValueError(f"vertices must be (NV,3), got {V.shape}")
    if F.ndim != 2 or F.shape[1] != 3 or F.shape[0] == 0:
        raise ValueError(f"faces must be a non-empty (NF,3) array, got {F.shape}")
    if F.min() < 0 or F.max() >= V.shape[0]:
        raise ValueError("faces reference vertices out of range")

    areas, normals, centroids = compute_panel_geometry(V, F, outward_normals)

    # mesh edge (sorted vertex pair) -> [(panel, free-vertex slot), ...]
    users: dict[tuple[int, int], list[tuple[int, int]]] = {}
    for ip, (a, b, c) in enumerate(F):
        for iq, (i, j) in enumerate(((b, c), (c, a), (a, b))):
            key = (int(i), int(j)) if i < j else (int(j), int(i))
            users.setdefault(key, []).append((ip, iq))

    panel_edges = np.full((F.shape[0], 3), -1, dtype=np.int64)
    edge_vertices, ppanel, mpanel, pindex, mindex = [], [], [], [], []
    for key, uses in users.items():
        if len(uses) > 2:
            raise ValueError(f"non-manifold edge {key} shared by {len(uses)} faces")
        if len(uses) == 1 and not half_rwg:
            continue

        ne = len(ppanel)
        edge_vertices.append(key)
        ip, iq = uses[0]
        ppanel.append(ip)
        pindex.append(iq)
        panel_edges[ip, iq] = ne
        if len(uses) == 2:
            im, jq = uses[1]
            mpanel.append(im)
            mindex.append(jq)
            panel_edges[im, jq] = ne
        else:
            mpanel.append(-1)
            mindex.append(-1)

    edge_vertices = np.asarray(edge_vertices, dtype=np.int64).reshape(-1, 2)
    lengths = np.linalg.norm(V[edge_vertices[:, 0]] - V[edge_vertices[:, 1]], axis=1)

    surface = RWGSurface(
        vertices=V,
        panel_vertices=F,
        panel_areas=areas,
        panel_normals=np.ascontiguousarray(normals),
        panel_centroids=np.ascontiguousarray(centroids),
        panel_edges=panel_edges,
        edge_vertices=edge_vertices,
        edge_ppanel=np.asarray(ppanel, dtype=np.int64),
        edge_mpanel=np.asarray(mpanel, dtype=np.int64),
        edge_pindex=np.asarray(pindex, dtype=np.int64),
        edge_mindex=np.asarray(mindex, dtype=np.int64),
        edge_lengths=np.ascontiguousarray(lengths),
        is_pec=bool(is_pec),
        label=label,
        region_index=int(region_index),
    )

    ok, issues = validate_surface(surface)
    if not ok:
        raise ValueError("Invalid surface for RWG basis:\n" + "\n".join(issues))
    return surface
