from __future__ import annotations

import numpy as np

# ---------------------------- geometry builders ---------------------------- #

def rectangular_plate(
    lx: float,
    ly: float,
    nx: int,
    ny: int,
    *,
    center=(0.0, 0.0, 0.0),
    z: float = 0.0,
) -> tuple[np.ndarray, np.ndarray]:
    """Flat lx-by-ly plate in a z=const plane, nx*ny cells split into 2 triangles, +z normals."""
    if nx < 1 or ny < 1:
        raise ValueError(f"need nx, ny >= 1, got {nx}, {ny}")

    xs = np.linspace(-0.5 * lx, 0.5 * lx, nx + 1) + center[0]
    ys = np.linspace(-0.5 * ly, 0.5 * ly, ny + 1) + center[1]
    X, Y = np.meshgrid(xs, ys, indexing="xy")
    verts = np.column_stack([X.ravel(), Y.ravel(), np.full(X.size, z + center[2])])

    faces = []
    for j in range(ny):
        for i in range(nx):
            v00 = j * (nx + 1) + i
            v10 = v00 + 1
            v01 = v00 + (nx + 1)
            v11 = v01 + 1
            # alternate the diagonal so the mesh has no preferred direction
            if (i + j) & 1:
                faces.append((v00, v10, v11))
                faces.append((v00, v11, v01))
            else:
                faces.append((v00, v10, v01))
                faces.append((v10, v11, v01))
    return verts, np.asarray(faces, dtype=np.int64)


def octahedron(radius: float = 1.0, *, center=(0.0, 0.0, 0.0)) -> tuple[np.ndarray, np.ndarray]:
    """Regular octahedron, faces wound for outward normals."""
    verts = radius * np.array([
        [1.0, 0.0, 0.0],
        [-1.0, 0.0, 0.0],
        [0.0, 1.0, 0.0],
        [0.0, -1.0, 0.0],
        [0.0, 0.0, 1.0],
        [0.0, 0.0, -1.0],
    ]) + np.asarray(center, dtype=float)
    faces = np.array([
        [0, 2, 4],
        [2, 1, 4],
        [1, 3, 4],
        [3, 0, 4],
        [2, 0, 5],
        [1, 2, 5],
        [3, 1, 5],
        [0, 3, 5],
    ], dtype=np.int64)
    return verts, faces


def subdivide(
    vertices: np.ndarray,
    faces: np.ndarray,
    *,
    sphere_radius: float | None = None,
    sphere_center=(0.0, 0.0, 0.0),
) -> tuple[np.ndarray, np.ndarray]:
    """
    One level of 4-way midpoint subdivision; shared edges share their midpoint.
    With sphere_radius, every vertex is projected onto that sphere.
    """
    V = [np.asarray(v, dtype=float) for v in vertices]
    mid: dict[tuple[int, int], int] = {}

    def midpoint(i: int, j: int) -> int:
        key = (i, j) if i < j else (j, i)
        if key not in mid:
            mid[key] = len(V)
            V.append(0.5 * (V[i] + V[j]))
        return mid[key]

    out = []
    for a, b, c in np.asarray(faces, dtype=np.int64):
        a, b, c = int(a), int(b), int(c)
        m01 = midpoint(a, b)
        m12 = midpoint(b, c)
        m20 = midpoint(c, a)
        out.extend((
            (a, m01, m20),
            (m01, b, m12),
            (m20, m12, c),
            (m01, m12, m20),
        ))

    verts = np.asarray(V, dtype=np.float64)
    if sphere_radius is not None:
        c0 = np.asarray(sphere_center, dtype=float)
        d = verts - c0
        verts = c0 + sphere_radius * d / np.linalg.norm(d, axis=1)[:, None]
    return verts, np.asarray(out, dtype=np.int64)
