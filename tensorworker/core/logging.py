"""Lightweight logging setup for the worker.

Log level comes from TENSORWORKER_LOG_LEVEL, an optional log file from
TENSORWORKER_LOG_DIR. Handlers write to stderr because stdout carries the
worker's message channel.

Also includes a helper to summarize request payloads and tensors for logging
without dumping full arrays into the logs.
"""
from __future__ import annotations
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict

import torch


def _summarize_sequence(seq: Any, max_items: int) -> Dict[str, Any]:
    out: Dict[str, Any] = {"type": type(seq).__name__, "len": len(seq)}
    items = list(seq)[:max_items]
    out["preview_types"] = [type(x).__name__ for x in items]
    # nesting depth along the first element, enough to spot shape mistakes
    depth = 1
    probe = seq
    while isinstance(probe, (list, tuple)) and probe and isinstance(probe[0], (list, tuple)):
        probe = probe[0]
        depth += 1
    out["depth"] = depth
    return out


def summarize_for_log(obj: Any, *, max_items: int = 8) -> Any:
    """Return a compact, JSON-serializable summary suitable for logging.

    - Dict: size, keys (truncated) and non-dict values summarized one level down
    - List/Tuple: length, nesting depth and element types of a short preview
    - torch.Tensor: shape, dtype, device
    - str: length and truncated preview
    - Other scalars: returned directly
    """
    if obj is None or isinstance(obj, (bool, int, float)):
        return obj
    if isinstance(obj, str):
        return {"type": "str", "len": len(obj), "preview": (obj if len(obj) <= 200 else obj[:197] + "...")}
    if isinstance(obj, torch.Tensor):
        return {
            "type": "torch.Tensor",
            "shape": tuple(obj.shape),
            "dtype": str(obj.dtype),
            "device": str(obj.device),
        }
    if isinstance(obj, dict):
        keys = list(obj.keys())[:max_items]
        values: Dict[str, Any] = {}
        for k in keys:
            v = obj[k]
            values[str(k)] = {"type": "dict", "len": len(v)} if isinstance(v, dict) else summarize_for_log(v, max_items=max_items)
        return {"type": "dict", "len": len(obj), "keys": [str(k) for k in keys], "values": values}
    if isinstance(obj, (list, tuple)):
        return _summarize_sequence(obj, max_items)
    return {"type": type(obj).__name__}


LOG_LEVEL = os.getenv("TENSORWORKER_LOG_LEVEL", "INFO").upper()


def get_logger(name: str = "tensorworker") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        fmt = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(logging.Formatter(fmt))
        logger.addHandler(stream_handler)
        log_dir = os.getenv("TENSORWORKER_LOG_DIR")
        if log_dir:
            p = Path(log_dir)
            p.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(p / "tensorworker.log", encoding="utf-8")
            fh.setFormatter(logging.Formatter(fmt))
            logger.addHandler(fh)
        logger.setLevel(os.getenv("TENSORWORKER_LOG_LEVEL", LOG_LEVEL).upper())
        logger.propagate = False
    return logger


core_logger = get_logger("tensorworker.core")

__all__ = ["get_logger", "core_logger", "summarize_for_log"]
