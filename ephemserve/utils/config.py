# ephemserve/utils/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

import yaml

# Default archive name patterns (regular expressions, full match on base names)
#   JPL DE binaries: lnxp1900p2053.421, unxp2000.405, ...
#   INPOP binaries:  inpop19a_TDB_m100_p100_tt.dat, ...
DEFAULT_DE_SUPPORTED_NAMES = r"^[lu]nx([mp](\d\d\d\d))+\.(?:4\d\d)$"
DEFAULT_INPOP_SUPPORTED_NAMES = r"^inpop.*\.dat$"

OVERLAP_POLICIES = ("strict", "first")


class AttrDict(dict):
    """Dict that also supports attribute access: cfg.data_roots and cfg['data_roots'] both work."""
    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError as e:
            raise AttributeError(item) from e
    def __setattr__(self, key, value):
        self[key] = value


def _to_attr(obj):
    if isinstance(obj, dict):
        return AttrDict({k: _to_attr(v) for k, v in obj.items()})
    if isinstance(obj, list):
        return [_to_attr(x) for x in obj]
    return obj


def load_config(path: str) -> AttrDict:
    """
    Load YAML config from `path`, then apply environment overrides:
      - EPHEMSERVE_DATA_PATH       (os.pathsep-separated roots; replaces data_roots)
      - EPHEMSERVE_DE_NAMES        (replaces de_supported_names)
      - EPHEMSERVE_INPOP_NAMES     (replaces inpop_supported_names)
      - EPHEMSERVE_OVERLAP_POLICY  (replaces overlap_policy)
    Returns an AttrDict for convenient access.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config {path} must hold a mapping at top level")
    data.update(_env_overrides())
    return _to_attr(data)


def _env_overrides() -> dict:
    out: dict = {}
    roots = os.getenv("EPHEMSERVE_DATA_PATH")
    if roots:
        out["data_roots"] = [r for r in roots.split(os.pathsep) if r.strip()]
    for env, key in (("EPHEMSERVE_DE_NAMES", "de_supported_names"),
                     ("EPHEMSERVE_INPOP_NAMES", "inpop_supported_names"),
                     ("EPHEMSERVE_OVERLAP_POLICY", "overlap_policy")):
        val = os.getenv(env)
        if val:
            out[key] = val.strip()
    return out


@dataclass(frozen=True)
class EphemerisConfig:
    data_roots: Tuple[str, ...] = ()
    de_supported_names: str = DEFAULT_DE_SUPPORTED_NAMES
    inpop_supported_names: str = DEFAULT_INPOP_SUPPORTED_NAMES
    overlap_policy: str = "strict"      # "strict" | "first"

    def __post_init__(self):
        if self.overlap_policy not in OVERLAP_POLICIES:
            raise ValueError(f"overlap_policy must be one of {OVERLAP_POLICIES}, got {self.overlap_policy!r}")

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> "EphemerisConfig":
        roots = cfg.get("data_roots") or ()
        if isinstance(roots, str):
            roots = [roots]
        return cls(
            data_roots=tuple(str(r) for r in roots),
            de_supported_names=str(cfg.get("de_supported_names") or DEFAULT_DE_SUPPORTED_NAMES),
            inpop_supported_names=str(cfg.get("inpop_supported_names") or DEFAULT_INPOP_SUPPORTED_NAMES),
            overlap_policy=str(cfg.get("overlap_policy") or "strict").strip().lower(),
        )

    @classmethod
    def from_env(cls) -> "EphemerisConfig":
        """EPHEMSERVE_CONFIG (YAML) if set, otherwise environment variables alone."""
        path = os.getenv("EPHEMSERVE_CONFIG")
        if path:
            return cls.from_mapping(load_config(path))
        return cls.from_mapping(_env_overrides())


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or os.environ.get("EPHEMSERVE_LOG_LEVEL") or os.environ.get("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = [
    "AttrDict",
    "load_config",
    "EphemerisConfig",
    "configure_logging",
    "DEFAULT_DE_SUPPORTED_NAMES",
    "DEFAULT_INPOP_SUPPORTED_NAMES",
]
