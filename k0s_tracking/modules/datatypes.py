"""
Read-only event, V0 and track records handed to the per-event routine.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class Collision:
    """Reconstructed collision with its primary vertex (cm) and sel8 flag."""

    index: int
    pos_x: float
    pos_y: float
    pos_z: float
    sel8: bool


@dataclass(frozen=True)
class Track:
    """
    Charged-particle track.

    Attributes:
        index: Track index within its time frame
        has_tpc: Track has a TPC measurement
        has_its: Track has an ITS measurement
        its_cluster_map: Bit i set iff ITS layer i has a cluster
        tpc_nsigma_pi: TPC nσ with respect to the pion hypothesis
    """

    index: int
    has_tpc: bool
    has_its: bool
    its_cluster_map: int
    tpc_nsigma_pi: float


@dataclass(frozen=True)
class V0Candidate:
    """
    Reconstructed V0 decay vertex with derived K0s quantities.

    Positions are in cm, momenta in GeV/c, masses in GeV/c².
    """

    collision_id: int
    pos_track_id: int
    neg_track_id: int
    x: float
    y: float
    z: float
    px: float
    py: float
    pz: float
    v0radius: float
    pt: float
    mass_k0s: float
    rapidity_k0s: float

    def cos_pa(self, pv_x: float, pv_y: float, pv_z: float) -> float:
        """
        Cosine of the pointing angle with respect to a primary vertex.

        Returns NaN when the flight or momentum vector has zero length.
        """
        dx, dy, dz = self.x - pv_x, self.y - pv_y, self.z - pv_z
        norm = math.sqrt((dx * dx + dy * dy + dz * dz) * (self.px**2 + self.py**2 + self.pz**2))
        if norm == 0.0:
            return math.nan
        return (dx * self.px + dy * self.py + dz * self.pz) / norm
