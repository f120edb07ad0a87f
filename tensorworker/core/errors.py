"""Centralized exception hierarchy for the tensor worker."""
from __future__ import annotations
from typing import Dict


class WorkerError(Exception):
    """Base class for all worker errors. ``kind`` tags the failure family."""

    kind = "worker"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class InitializationError(WorkerError):  # backend selection, fatal to the worker
    kind = "initialization"


class ModelLoadError(WorkerError):
    kind = "model_load"


class ProcessingError(WorkerError):
    kind = "processing"


class ProtocolError(WorkerError):
    kind = "protocol"


class ConfigError(WorkerError):
    kind = "config"


class WorkerInitError(WorkerError):  # host side: worker could not be spawned or died
    kind = "worker_init"


__all__ = [
    "WorkerError",
    "InitializationError",
    "ModelLoadError",
    "ProcessingError",
    "ProtocolError",
    "ConfigError",
    "WorkerInitError",
]
