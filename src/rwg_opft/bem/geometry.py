from __future__ import annotations

import logging
import warnings
from typing import Sequence

import numpy as np

from ..mesh.surface import RWGSurface, validate_surface
from .materials import VACUUM, MaterialProperty
from .pft import NUM_PFT, PFTConfig, PFTResult, get_surface_opft

LOG = logging.getLogger(__name__)


class RWGGeometry:
    """
    Collection of RWG surfaces sharing one global unknown vector.

    Surface i owns unknowns bf_offsets[i] ... bf_offsets[i] + num_bfs - 1;
    its exterior medium is regions[surface.region_index].
    """

    def __init__(
        self,
        surfaces: Sequence[RWGSurface],
        regions: Sequence[MaterialProperty] | None = None,
        *,
        validate: bool = True,
    ):
        self.surfaces = list(surfaces)
        self.regions = list(regions) if regions is not None else [VACUUM]
        if not self.surfaces:
            raise ValueError("RWGGeometry needs at least one surface")

        issues = []
        for ns, S in enumerate(self.surfaces):
            if not (0 <= S.region_index < len(self.regions)):
                issues.append(f"[surface {ns}] region_index {S.region_index} out of range "
                              f"(have {len(self.regions)} regions)")
            if validate:
                ok, surf_issues = validate_surface(S)
                if not ok:
                    issues.extend(f"[surface {ns}] {msg}" for msg in surf_issues)
        if issues:
            raise ValueError("Invalid geometry:\n" + "\n".join(issues))

        num_bfs = [S.num_bfs for S in self.surfaces]
        self.bf_offsets = np.concatenate([[0], np.cumsum(num_bfs)[:-1]]).astype(np.int64)
        self.total_bfs = int(np.sum(num_bfs))

        LOG.info(
            "Geometry: %d surface(s), %d panels, %d edges, %d unknowns.",
            len(self.surfaces),
            sum(S.num_panels for S in self.surfaces),
            sum(S.num_edges for S in self.surfaces),
            self.total_bfs,
        )

    @property
    def num_surfaces(self) -> int:
        return len(self.surfaces)

    def get_surface_index(self, label: str) -> int:
        for ns, S in enumerate(self.surfaces):
            if S.label is not None and S.label == label:
                return ns
        return -1

    def exterior_medium(self, surface_index: int) -> MaterialProperty:
        return self.regions[self.surfaces[surface_index].region_index]

    def get_opft(
        self,
        surface: int | str,
        omega: complex,
        *,
        kn: np.ndarray | None = None,
        rhs: np.ndarray | None = None,
        sigma: np.ndarray | None = None,
        need_by_edge: bool | Sequence[bool] = False,
        cfg: PFTConfig | None = None,
    ) -> PFTResult:
        """
        PFT for one surface, selected by index or label.

        An unknown surface is not an error: a RuntimeWarning is issued and an
        all-zero PFT (no extinction, no breakdown) is returned.
        """
        if isinstance(surface, str):
            ns = self.get_surface_index(surface)
        else:
            ns = int(surface)

        if not (0 <= ns < self.num_surfaces):
            msg = f"get_opft called for unknown surface {surface!r}"
            LOG.warning(msg)
            warnings.warn(msg, RuntimeWarning, stacklevel=2)
            return PFTResult(pft=np.zeros(NUM_PFT, dtype=np.float64))

        return get_surface_opft(
            self.surfaces[ns],
            omega,
            self.exterior_medium(ns),
            kn=kn,
            rhs=rhs,
            sigma=sigma,
            offset=int(self.bf_offsets[ns]),
            need_by_edge=need_by_edge,
            cfg=cfg,
        )
