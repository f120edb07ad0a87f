"""Worker configuration loading and normalization.

A config is a flat YAML mapping; every key is optional:

    backend: cpu            # cpu | cuda
    dtype: float32          # float32 | float64 | int64
    operation: identity     # identity | model
    on_reload: replace      # replace | reject
    fetch_timeout_s: 30
    num_threads: null

Environment variables (TENSORWORKER_<KEY>) override file values.
"""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional
import os
import yaml
from .errors import ConfigError

VALID_BACKENDS = {"cpu", "cuda"}
VALID_DTYPES = {"float32", "float64", "int64"}
VALID_OPERATIONS = {"identity", "model"}
VALID_RELOAD_POLICIES = {"replace", "reject"}

ENV_PREFIX = "TENSORWORKER_"


@dataclass(frozen=True)
class WorkerConfig:
    backend: str = "cpu"
    dtype: str = "float32"
    operation: str = "identity"
    on_reload: str = "replace"
    fetch_timeout_s: float = 30.0
    num_threads: Optional[int] = None


def _read_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping")
    return data


def _coerce(name: str, value: Any) -> Any:
    if value is None:
        return None
    try:
        if name == "fetch_timeout_s":
            return float(value)
        if name == "num_threads":
            return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid {name}: {value!r}") from e
    return str(value).lower()


def _env_overrides() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for f in fields(WorkerConfig):
        val = os.getenv(ENV_PREFIX + f.name.upper())
        if val not in (None, ""):
            out[f.name] = val
    return out


def validate(cfg: WorkerConfig) -> WorkerConfig:
    if cfg.backend not in VALID_BACKENDS:
        raise ConfigError(f"Invalid backend: {cfg.backend}")
    if cfg.dtype not in VALID_DTYPES:
        raise ConfigError(f"Invalid dtype: {cfg.dtype}")
    if cfg.operation not in VALID_OPERATIONS:
        raise ConfigError(f"Invalid operation: {cfg.operation}")
    if cfg.on_reload not in VALID_RELOAD_POLICIES:
        raise ConfigError(f"Invalid on_reload: {cfg.on_reload}")
    if cfg.fetch_timeout_s <= 0:
        raise ConfigError("fetch_timeout_s must be positive")
    if cfg.num_threads is not None and cfg.num_threads < 1:
        raise ConfigError("num_threads must be >= 1")
    return cfg


def load_config(path: Optional[Path] = None, use_env: bool = True) -> WorkerConfig:
    data: Dict[str, Any] = {}
    if path is not None:
        data.update(_read_yaml(Path(path)))
    if use_env:
        data.update(_env_overrides())
    known = {f.name for f in fields(WorkerConfig)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown config keys: {sorted(unknown)}")
    cfg = replace(WorkerConfig(), **{k: _coerce(k, v) for k, v in data.items()})
    return validate(cfg)


__all__ = ["WorkerConfig", "load_config", "validate", "ConfigError"]
