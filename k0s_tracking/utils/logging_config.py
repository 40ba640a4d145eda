"""
Logging, warning filters and progress bars for the K0s tracking efficiency run.

All loggers live under "K0sTrackingEfficiency" (modules use
"K0sTrackingEfficiency.<Component>"), so one call to setup_logging()
controls the whole package.

Environment overrides:
    K0S_TRACKING_WARNINGS=on|off|error|default   warning policy (default: off)
    K0S_TRACKING_PROGRESS=on|off                 per-frame progress bars (default: on)
"""

from __future__ import annotations

import logging
import os
import warnings
from pathlib import Path
from typing import Literal

import numpy as np

LOGGER_NAME = "K0sTrackingEfficiency"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

WarningLevel = Literal["off", "error", "default", "all"]

_TRUE = ("on", "yes", "true", "1")
_FALSE = ("off", "no", "false", "0")

# Modules whose warnings are noise for this analysis (jagged reads, vector
# behaviours, plotting backends) unless everything is requested.
_NOISY_MODULES = ("uproot.*", "awkward.*", "vector.*", "hist.*", "mplhep.*", "matplotlib.*")


def setup_logging(verbose: bool = False, log_file: str | Path | None = None) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        verbose: DEBUG instead of INFO
        log_file: Optional file that receives the same records as the console

    Returns:
        The "K0sTrackingEfficiency" logger
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="w")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger


def _warning_level_from_env(level: WarningLevel) -> WarningLevel:
    env_level = os.environ.get("K0S_TRACKING_WARNINGS", "").lower()
    if env_level in _TRUE:
        return "all"
    if env_level in _FALSE:
        return "off"
    if env_level in ("error", "default"):
        return env_level  # type: ignore[return-value]
    return level


def suppress_warnings(level: WarningLevel = "off") -> WarningLevel:
    """
    Apply a warning policy and return the level actually used.

    'off' silences Python warnings and numpy floating-point warnings
    (empty bins give 0/0 in the efficiency tables). 'error' turns warnings
    into exceptions. 'default' shows each warning once. 'all' shows
    everything, including library noise. K0S_TRACKING_WARNINGS overrides
    the argument.
    """
    level = _warning_level_from_env(level)

    if level == "off":
        warnings.simplefilter("ignore")
        np.seterr(all="ignore")
        return level

    warnings.simplefilter("error" if level == "error" else "default")
    np.seterr(all="warn")
    if level != "all":
        warnings.filterwarnings("ignore", category=DeprecationWarning)
        for module in _NOISY_MODULES:
            warnings.filterwarnings("ignore", module=module)
    return level


def enable_progress_bars() -> bool:
    return os.environ.get("K0S_TRACKING_PROGRESS", "on").lower() in _TRUE


def get_tqdm_kwargs(desc: str = "", **kwargs) -> dict:
    """tqdm keyword arguments for the per-frame event loop; kwargs override the defaults."""
    options = {
        "desc": desc,
        "unit": "ev",
        "ncols": 80,
        "leave": False,
        "bar_format": "{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]",
        "disable": not enable_progress_bars(),
    }
    options.update(kwargs)
    return options
