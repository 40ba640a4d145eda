"""
Mock data generators for testing pipeline components.

Provides utilities to create synthetic AO2D-like ROOT files (collision,
V0 and track trees) for reproducible testing without real data files.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import tomli_w
import uproot

K0S_MASS = 0.497611
PION_MASS = 0.13957039
K0S_CTAU = 2.6844  # cm

TREE_NAMES = {"collisions": "O2collision", "v0s": "O2v0data", "tracks": "O2track"}

Tables = Dict[str, Dict[str, np.ndarray]]


def _two_body_decay(
    rng: np.random.Generator, mother_p: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """
    K0s -> π⁺π⁻ daughters in the lab frame.

    Args:
        mother_p: (n, 3) mother momenta

    Returns:
        (n, 3) positive and negative daughter momenta
    """
    n = len(mother_p)
    p_star = np.sqrt((K0S_MASS / 2) ** 2 - PION_MASS**2)
    e_star = K0S_MASS / 2

    cos_theta = rng.uniform(-1.0, 1.0, n)
    sin_theta = np.sqrt(1.0 - cos_theta**2)
    phi = rng.uniform(-np.pi, np.pi, n)
    direction = np.column_stack([sin_theta * np.cos(phi), sin_theta * np.sin(phi), cos_theta])

    energy = np.sqrt(np.sum(mother_p**2, axis=1) + K0S_MASS**2)
    beta = mother_p / energy[:, None]
    beta2 = np.sum(beta**2, axis=1)
    gamma = 1.0 / np.sqrt(1.0 - beta2)

    daughters = []
    for sign in (1.0, -1.0):
        p_rest = sign * p_star * direction
        bp = np.sum(beta * p_rest, axis=1)
        coefficient = np.where(beta2 > 0, (gamma - 1.0) * bp / np.where(beta2 > 0, beta2, 1.0), 0.0)
        daughters.append(p_rest + (coefficient + gamma * e_star)[:, None] * beta)
    return daughters[0], daughters[1]


def generate_mock_frame(
    n_collisions: int = 50,
    v0s_per_collision: float = 3.0,
    background_fraction: float = 0.3,
    seed: int = 42,
) -> Tables:
    """
    Generate the three tables of one time frame with realistic distributions.

    Signal V0s point back to their collision; background V0s decay in a
    random direction. Every V0 gets two fresh daughter tracks.

    Args:
        n_collisions: Number of collisions
        v0s_per_collision: Mean number of V0s per collision (Poisson)
        background_fraction: Fraction of V0s with random pointing
        seed: Random seed for reproducibility

    Returns:
        Dictionary tree name -> branch name -> array
    """
    rng = np.random.default_rng(seed)

    pv = np.column_stack(
        [
            rng.normal(0.0, 0.01, n_collisions),
            rng.normal(0.0, 0.01, n_collisions),
            rng.normal(0.0, 5.0, n_collisions),
        ]
    )
    collisions = {
        "fPosX": pv[:, 0].astype(np.float32),
        "fPosY": pv[:, 1].astype(np.float32),
        "fPosZ": pv[:, 2].astype(np.float32),
        "fSel8": rng.random(n_collisions) < 0.8,
    }

    n_v0_per_collision = rng.poisson(v0s_per_collision, n_collisions)
    collision_id = np.repeat(np.arange(n_collisions), n_v0_per_collision).astype(np.int32)
    n_v0 = len(collision_id)

    # Mother kinematics
    pt = 0.2 + rng.exponential(1.0, n_v0)
    eta = rng.uniform(-0.8, 0.8, n_v0)
    phi = rng.uniform(-np.pi, np.pi, n_v0)
    mother_p = np.column_stack([pt * np.cos(phi), pt * np.sin(phi), pt * np.sinh(eta)])
    p_mag = np.linalg.norm(mother_p, axis=1)

    # Decay vertex: along the momentum for signal, random direction for background
    decay_length = rng.exponential(K0S_CTAU * p_mag / K0S_MASS)
    flight = mother_p / p_mag[:, None]
    background = rng.random(n_v0) < background_fraction
    random_direction = rng.normal(0.0, 1.0, (n_v0, 3))
    random_direction /= np.linalg.norm(random_direction, axis=1)[:, None]
    flight[background] = random_direction[background]
    vertex = pv[collision_id] + decay_length[:, None] * flight + rng.normal(0.0, 0.005, (n_v0, 3))

    pos_p, neg_p = _two_body_decay(rng, mother_p)
    pos_p *= rng.normal(1.0, 0.01, (n_v0, 1))
    neg_p *= rng.normal(1.0, 0.01, (n_v0, 1))

    v0s = {
        "fIndexCollisions": collision_id,
        "fIndexTracks_Pos": (2 * np.arange(n_v0)).astype(np.int32),
        "fIndexTracks_Neg": (2 * np.arange(n_v0) + 1).astype(np.int32),
        "fX": vertex[:, 0].astype(np.float32),
        "fY": vertex[:, 1].astype(np.float32),
        "fZ": vertex[:, 2].astype(np.float32),
        "fPxPos": pos_p[:, 0].astype(np.float32),
        "fPyPos": pos_p[:, 1].astype(np.float32),
        "fPzPos": pos_p[:, 2].astype(np.float32),
        "fPxNeg": neg_p[:, 0].astype(np.float32),
        "fPyNeg": neg_p[:, 1].astype(np.float32),
        "fPzNeg": neg_p[:, 2].astype(np.float32),
    }

    n_tracks = 2 * n_v0
    its_cluster_map = rng.integers(1, 128, n_tracks)
    its_cluster_map[rng.random(n_tracks) < 0.25] = 0
    tpc_n_cls_findable = rng.integers(100, 160, n_tracks)
    tpc_n_cls_findable[rng.random(n_tracks) < 0.1] = 0
    tpc_nsigma_pi = rng.normal(0.0, 2.0, n_tracks)
    tpc_nsigma_pi[rng.random(n_tracks) < 0.05] = 15.0

    tracks = {
        "fITSClusterMap": its_cluster_map.astype(np.uint8),
        "fTPCNClsFindable": tpc_n_cls_findable.astype(np.uint8),
        "fTPCNSigmaPi": tpc_nsigma_pi.astype(np.float32),
    }

    return {
        TREE_NAMES["collisions"]: collisions,
        TREE_NAMES["v0s"]: v0s,
        TREE_NAMES["tracks"]: tracks,
    }


def write_ao2d(
    output_path: Union[str, Path],
    frames: Sequence[Tables],
    frame_dirs: Optional[bool] = None,
) -> Path:
    """
    Write time frames to a ROOT file.

    Args:
        output_path: Path where ROOT file will be created
        frames: One table dictionary per time frame
        frame_dirs: Put each frame in a DF_<i> directory
            (default: only when there is more than one frame)

    Returns:
        Path to created ROOT file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if frame_dirs is None:
        frame_dirs = len(frames) > 1

    with uproot.recreate(output_path) as file:
        for i, tables in enumerate(frames):
            directory = file.mkdir(f"DF_{1000 + i}") if frame_dirs else file
            for tree_name, branches in tables.items():
                tree = directory.mktree(tree_name, {name: array.dtype for name, array in branches.items()})
                if len(next(iter(branches.values()))):
                    tree.extend(branches)

    return output_path


def create_mock_ao2d(
    output_path: Union[str, Path],
    n_collisions: int = 50,
    n_frames: int = 1,
    seed: int = 42,
    drop_branches: Optional[List[str]] = None,
    frame_dirs: Optional[bool] = None,
) -> Path:
    """
    Create a mock AO2D-like ROOT file.

    Args:
        output_path: Path where ROOT file will be created
        n_collisions: Collisions per time frame
        n_frames: Number of time frames
        seed: Random seed (frame i uses seed + i)
        drop_branches: Branch names to leave out of every tree
        frame_dirs: See write_ao2d

    Returns:
        Path to created ROOT file
    """
    frames = []
    for i in range(n_frames):
        tables = generate_mock_frame(n_collisions=n_collisions, seed=seed + i)
        if drop_branches:
            tables = {
                tree: {name: array for name, array in branches.items() if name not in drop_branches}
                for tree, branches in tables.items()
            }
        frames.append(tables)
    return write_ao2d(output_path, frames, frame_dirs)


def create_config_dir(config_dir: Union[str, Path], configs: Dict[str, Dict[str, Any]]) -> Path:
    """
    Write a configuration directory, one TOML file per entry.

    Args:
        config_dir: Directory to create
        configs: Mapping filename -> TOML content

    Returns:
        Path to the configuration directory
    """
    config_dir = Path(config_dir)
    config_dir.mkdir(parents=True, exist_ok=True)
    for filename, content in configs.items():
        with open(config_dir / filename, "wb") as f:
            tomli_w.dump(content, f)
    return config_dir
