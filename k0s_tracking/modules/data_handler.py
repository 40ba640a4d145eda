"""
Load collision, V0 and track tables from ROOT files and hand them to the
per-event routine.

Input files hold three trees (collisions, V0s, tracks), either at the top
level or inside ``DF_*`` time-frame directories. Indices stored in the V0
tree are local to the time frame.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

import awkward as ak
import numpy as np
import uproot
import vector

from .branch_config import TABLES, BranchConfig
from .config import TOMLConfig
from .datatypes import Collision, Track, V0Candidate
from .exceptions import BranchMissingError, DataLoadError

# Register vector behavior for 4-momentum calculations
vector.register_awkward()

V0_FIELDS = (
    "collision_id",
    "pos_track_id",
    "neg_track_id",
    "x",
    "y",
    "z",
    "px",
    "py",
    "pz",
    "v0radius",
    "pt",
    "mass_k0s",
    "rapidity_k0s",
)


@dataclass
class FrameTables:
    """Normalized tables of one time frame"""

    source: Path
    name: str
    collisions: ak.Array
    v0s: ak.Array
    tracks: ak.Array

    @property
    def label(self) -> str:
        return f"{self.source.name}:{self.name}" if self.name else self.source.name


class TrackTable:
    """Index-addressable tracks of one time frame"""

    def __init__(self, tracks: Sequence[Track]) -> None:
        self._tracks = list(tracks)

    def __len__(self) -> int:
        return len(self._tracks)

    def __getitem__(self, index: int) -> Track:
        if not 0 <= index < len(self._tracks):
            raise DataLoadError(f"Track index {index} out of range (frame has {len(self._tracks)} tracks)")
        return self._tracks[index]


class DataManager:
    """Load and manage AO2D-like ROOT files"""

    def __init__(
        self,
        config: TOMLConfig,
        files: Sequence[str | Path] | None = None,
        branch_config: BranchConfig | None = None,
    ) -> None:
        """
        Args:
            config: TOML configuration (tree names, PDG masses, default inputs)
            files: Input files, overriding [input].files from data.toml
            branch_config: Branch name mapping (packaged default if None)
        """
        self.config = config
        self.files = [Path(f) for f in files] if files is not None else config.get_input_files()
        self.tree_names = config.get_tree_names()
        self.branch_config = branch_config if branch_config is not None else BranchConfig()
        self.pion_mass = config.get_pdg_mass("pion")
        self.k0s_mass = config.get_pdg_mass("k0short")
        self.logger = logging.getLogger("K0sTrackingEfficiency.DataManager")

    def iter_frames(self) -> Iterator[FrameTables]:
        """
        Yield the normalized tables of every time frame of every input file.

        Raises:
            DataLoadError: If a file is missing, unreadable, or lacks a tree
            BranchMissingError: If a required branch is missing
        """
        for filepath in self.files:
            if not filepath.exists():
                raise DataLoadError(
                    f"Input file not found: {filepath}\n"
                    f"Please check [input].files in data.toml or the --input option"
                )
            try:
                with uproot.open(filepath) as file:
                    frame_names = [
                        key for key in file.keys(recursive=False, cycle=False) if key.startswith("DF_")
                    ]
                    if not frame_names:
                        yield self._load_frame(filepath, file, "")
                    for name in frame_names:
                        yield self._load_frame(filepath, file[name], name)
            except (OSError, ValueError) as e:
                raise DataLoadError(f"Error reading ROOT file {filepath}: {e}")

    def _load_frame(self, filepath: Path, directory, name: str) -> FrameTables:
        tables = {}
        for table in TABLES:
            tree_name = self.tree_names[table]
            if tree_name not in directory:
                available = list(directory.keys(recursive=False, cycle=False))
                raise DataLoadError(
                    f"Tree '{tree_name}' ({table}) not found in {filepath}{'/' + name if name else ''}\n"
                    f"Available keys: {available}"
                )
            tree = directory[tree_name]
            rename_map = self.branch_config.resolve(table, list(tree.keys()))
            arrays = tree.arrays(list(rename_map), library="ak")
            tables[table] = self.branch_config.normalize(arrays, rename_map)

        frame = FrameTables(
            source=filepath,
            name=name,
            collisions=tables["collisions"],
            v0s=self.compute_derived_branches(tables["v0s"]),
            tracks=self.compute_track_flags(tables["tracks"]),
        )
        self._validate_indices(frame)
        self.logger.debug(
            f"Loaded {frame.label}: {len(frame.collisions)} collisions, "
            f"{len(frame.v0s)} V0s, {len(frame.tracks)} tracks"
        )
        return frame

    def compute_derived_branches(self, v0s: ak.Array) -> ak.Array:
        """
        Compute derived V0 quantities not stored in the tree

        1. px, py, pz: V0 momentum (sum of daughter momenta)
        2. v0radius: transverse decay radius
        3. pt: transverse momentum
        4. mass_k0s: π⁺π⁻ invariant mass
        5. rapidity_k0s: rapidity under the K0s mass hypothesis
        """
        pos = vector.zip(
            {
                "px": v0s["px_pos"],
                "py": v0s["py_pos"],
                "pz": v0s["pz_pos"],
                "mass": ak.full_like(v0s["px_pos"], self.pion_mass),
            }
        )
        neg = vector.zip(
            {
                "px": v0s["px_neg"],
                "py": v0s["py_neg"],
                "pz": v0s["pz_neg"],
                "mass": ak.full_like(v0s["px_neg"], self.pion_mass),
            }
        )
        mother = pos + neg

        events = v0s
        events = ak.with_field(events, mother.px, "px")
        events = ak.with_field(events, mother.py, "py")
        events = ak.with_field(events, mother.pz, "pz")

        if "v0radius" not in events.fields:
            events = ak.with_field(events, np.hypot(events["x"], events["y"]), "v0radius")
        if "pt" not in events.fields:
            events = ak.with_field(events, mother.pt, "pt")
        if "mass_k0s" not in events.fields:
            events = ak.with_field(events, mother.mass, "mass_k0s")
        if "rapidity_k0s" not in events.fields:
            k0s = vector.zip(
                {
                    "px": mother.px,
                    "py": mother.py,
                    "pz": mother.pz,
                    "mass": ak.full_like(mother.px, self.k0s_mass),
                }
            )
            events = ak.with_field(events, k0s.rapidity, "rapidity_k0s")

        return events

    def compute_track_flags(self, tracks: ak.Array) -> ak.Array:
        """Derive has_tpc / has_its from cluster information when not stored"""
        if "has_tpc" not in tracks.fields:
            if "tpc_n_cls_findable" not in tracks.fields:
                branch = self.branch_config.optional("tracks").get("tpc_n_cls_findable", "tpc_n_cls_findable")
                raise BranchMissingError(branch, "tracks")
            tracks = ak.with_field(tracks, tracks["tpc_n_cls_findable"] > 0, "has_tpc")
        if "has_its" not in tracks.fields:
            tracks = ak.with_field(tracks, tracks["its_cluster_map"] > 0, "has_its")
        return tracks

    def _validate_indices(self, frame: FrameTables) -> None:
        """Every V0 must point to an existing collision and two distinct existing tracks"""
        n_collisions = len(frame.collisions)
        n_tracks = len(frame.tracks)
        collision_id = ak.to_numpy(frame.v0s["collision_id"])
        pos_id = ak.to_numpy(frame.v0s["pos_track_id"])
        neg_id = ak.to_numpy(frame.v0s["neg_track_id"])

        checks = [
            ((collision_id < 0) | (collision_id >= n_collisions), "collision index out of range"),
            ((pos_id < 0) | (pos_id >= n_tracks), "positive track index out of range"),
            ((neg_id < 0) | (neg_id >= n_tracks), "negative track index out of range"),
            (pos_id == neg_id, "both daughters are the same track"),
        ]
        for bad, reason in checks:
            if np.any(bad):
                first = int(np.flatnonzero(bad)[0])
                raise DataLoadError(
                    f"Inconsistent V0 table in {frame.label}: V0 {first} {reason} "
                    f"(collision={collision_id[first]}, pos={pos_id[first]}, neg={neg_id[first]})"
                )

    def join_daughters(self, frame: FrameTables) -> ak.Array:
        """
        V0s of a frame with the columns of their collision and daughters.

        Adds pv_x/pv_y/pv_z and sel8 from the collision and pos_*/neg_*
        copies of has_tpc, has_its, its_cluster_map and tpc_nsigma_pi.
        """
        v0s = frame.v0s
        collisions = frame.collisions[v0s["collision_id"]]
        pos = frame.tracks[v0s["pos_track_id"]]
        neg = frame.tracks[v0s["neg_track_id"]]

        joined = v0s
        for field in ("pos_x", "pos_y", "pos_z"):
            joined = ak.with_field(joined, collisions[field], "pv_" + field[-1])
        joined = ak.with_field(joined, collisions["sel8"], "sel8")
        for field in ("has_tpc", "has_its", "its_cluster_map", "tpc_nsigma_pi"):
            joined = ak.with_field(joined, pos[field], "pos_" + field)
            joined = ak.with_field(joined, neg[field], "neg_" + field)
        return joined

    def events_in_frame(self, frame: FrameTables) -> Iterator[tuple[Collision, list[V0Candidate], TrackTable]]:
        """Yield (collision, V0s of that collision, frame tracks) in collision order"""
        tracks = TrackTable(
            Track(
                index=i,
                has_tpc=bool(row["has_tpc"]),
                has_its=bool(row["has_its"]),
                its_cluster_map=int(row["its_cluster_map"]),
                tpc_nsigma_pi=float(row["tpc_nsigma_pi"]),
            )
            for i, row in enumerate(ak.to_list(frame.tracks))
        )

        n_collisions = len(frame.collisions)
        collision_id = ak.to_numpy(frame.v0s["collision_id"]).astype(np.int64)
        order = np.argsort(collision_id, kind="stable")
        counts = np.bincount(collision_id, minlength=n_collisions)
        v0_fields = frame.v0s[list(V0_FIELDS)]
        grouped = ak.to_list(ak.unflatten(v0_fields[order], counts))

        for i, row in enumerate(ak.to_list(frame.collisions)):
            collision = Collision(
                index=i,
                pos_x=float(row["pos_x"]),
                pos_y=float(row["pos_y"]),
                pos_z=float(row["pos_z"]),
                sel8=bool(row["sel8"]),
            )
            v0s = [V0Candidate(**v0) for v0 in grouped[i]]
            yield collision, v0s, tracks

    def iter_events(
        self, max_events: int | None = None
    ) -> Iterator[tuple[Collision, list[V0Candidate], TrackTable]]:
        """
        Yield every event of every input file in order.

        Args:
            max_events: Stop after this many collisions (all if None)
        """
        n_events = 0
        for frame in self.iter_frames():
            for event in self.events_in_frame(frame):
                if max_events is not None and n_events >= max_events:
                    return
                yield event
                n_events += 1
