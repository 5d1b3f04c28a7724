import numpy as np

def compute_panel_geometry(vertices, faces, outward_normals=None):
    """
    Per-panel area, unit normal and centroid of a triangle mesh.

    The normal follows the face winding, (v1 - v0) x (v2 - v0). If
    `outward_normals` (F,3) is given, each normal is flipped to agree with it.

    Returns
    -------
    areas     : (F,)   float64
    normals   : (F, 3) float64
    centroids : (F, 3) float64
    """
    V = np.asarray(vertices, dtype=np.float64)
    F = np.asarray(faces, dtype=np.int64)
    verts = V[F]

    e1 = verts[:, 1] - verts[:, 0]
    e2 = verts[:, 2] - verts[:, 0]
    cross_prod = np.cross(e1, e2)
    areas = 0.5*np.linalg.norm(cross_prod, axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        normals = cross_prod / (2.0*areas)[:, None]
    if outward_normals is not None:
        hint = np.asarray(outward_normals, dtype=np.float64)
        flip = np.einsum("ij,ij->i", normals, hint) < 0
        normals[flip] = -normals[flip]
    centroids = np.mean(verts, axis=1)

    return areas, normals, centroids
