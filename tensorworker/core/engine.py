"""Computation engine adapter over torch.

All direct interaction with torch lives here: backend selection, model
deserialization, tensor construction and release. Tensors created by the
adapter are tracked in a live ledger so that leaks are observable through
``memory()``; a scoped region releases everything allocated inside it on exit.

Lifecycle: UNINITIALIZED -> BACKEND_READY -> MODEL_LOADED.
"""
from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Literal, Optional, Tuple
from urllib.parse import urlparse
import asyncio
import io
import threading
import time

import requests
import torch

from .config_loader import WorkerConfig
from .errors import InitializationError, ModelLoadError, ProcessingError, WorkerError
from .logging import core_logger

EngineState = Literal["UNINITIALIZED", "BACKEND_READY", "MODEL_LOADED"]

_DTYPES = {"float32": torch.float32, "float64": torch.float64, "int64": torch.int64}


@dataclass
class ModelHandle:
    """Opaque loaded model; never leaves the adapter."""

    uri: str
    module: torch.nn.Module
    loaded_at: float = field(default_factory=time.time)


def infer_shape(value: Any) -> Tuple[int, ...]:
    """Infer the shape of a nested numeric array from its list structure.

    Raises ProcessingError for non-numeric leaves or ragged nesting.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, list, tuple)):
        raise ProcessingError(f"Input must be a number or nested array of numbers, got {type(value).__name__}")
    if isinstance(value, (int, float)):
        return ()
    if not value:
        return (0,)
    sub_shapes = [infer_shape(v) for v in value]
    first = sub_shapes[0]
    for i, s in enumerate(sub_shapes[1:], start=1):
        if s != first:
            raise ProcessingError(f"Ragged input: element {i} has shape {list(s)}, expected {list(first)}")
    return (len(value),) + first


class TensorScope:
    """Tensors tracked by a scoped region; disposed when the region exits."""

    def __init__(self, engine: "TensorEngine"):
        self._engine = engine
        self._tracked: List[torch.Tensor] = []
        self._kept: set[int] = set()

    def track(self, t: torch.Tensor) -> torch.Tensor:
        self._engine._register(t)
        self._tracked.append(t)
        return t

    def keep(self, t: torch.Tensor) -> torch.Tensor:
        self._kept.add(id(t))
        return t

    def close(self):
        for t in self._tracked:
            if id(t) not in self._kept:
                self._engine.dispose(t)
        self._tracked.clear()


class TensorEngine:
    def __init__(self, config: Optional[WorkerConfig] = None):
        self.config = config or WorkerConfig()
        self.device: Optional[torch.device] = None
        self._model: Optional[ModelHandle] = None
        self._live: Dict[int, torch.Tensor] = {}
        self._backend_lock = threading.Lock()
        self._live_lock = threading.Lock()

    # Backend -----------------------------------------------------------
    def select_backend(self) -> torch.device:
        """Pick the compute backend once; later calls return the same device."""
        with self._backend_lock:
            if self.device is not None:
                return self.device
            name = self.config.backend
            if name == "cuda" and not torch.cuda.is_available():
                raise InitializationError("Backend 'cuda' requested but CUDA is not available")
            if name not in ("cpu", "cuda"):
                raise InitializationError(f"Unknown backend: {name}")
            try:
                device = torch.device(name)
                if self.config.num_threads:
                    torch.set_num_threads(self.config.num_threads)
            except (RuntimeError, ValueError) as e:
                raise InitializationError(f"Backend selection failed: {e}") from e
            self.device = device
            core_logger.info(f"backend selected device={device} threads={torch.get_num_threads()}")
            return device

    @property
    def state(self) -> EngineState:
        if self.device is None:
            return "UNINITIALIZED"
        if self._model is None:
            return "BACKEND_READY"
        return "MODEL_LOADED"

    @property
    def model_loaded(self) -> bool:
        return self._model is not None

    # Tensor ledger -----------------------------------------------------
    def _register(self, t: torch.Tensor):
        with self._live_lock:
            self._live[id(t)] = t

    def dispose(self, t: torch.Tensor):
        with self._live_lock:
            self._live.pop(id(t), None)

    def tensor(self, values: Any) -> torch.Tensor:
        """Build a tracked tensor from a nested numeric array on the selected device."""
        device = self.select_backend()
        infer_shape(values)
        try:
            t = torch.tensor(values, dtype=_DTYPES[self.config.dtype], device=device)
        except (TypeError, ValueError, RuntimeError) as e:
            raise ProcessingError(str(e)) from e
        self._register(t)
        return t

    def memory(self) -> Dict[str, int]:
        with self._live_lock:
            tensors = list(self._live.values())
        return {
            "num_tensors": len(tensors),
            "num_bytes": sum(t.element_size() * t.nelement() for t in tensors),
        }

    @contextmanager
    def scope(self) -> Iterator[TensorScope]:
        s = TensorScope(self)
        try:
            yield s
        finally:
            s.close()

    # Model -------------------------------------------------------------
    def _fetch(self, uri: str) -> bytes:
        parsed = urlparse(uri)
        if parsed.scheme in ("http", "https"):
            resp = requests.get(uri, timeout=self.config.fetch_timeout_s)
            resp.raise_for_status()
            return resp.content
        if parsed.scheme == "file":
            return Path(parsed.path).read_bytes()
        if not parsed.scheme or len(parsed.scheme) == 1:  # bare path or windows drive letter
            return Path(uri).read_bytes()
        raise ValueError(f"Unsupported model URI scheme: {parsed.scheme}")

    def _deserialize(self, data: bytes) -> torch.nn.Module:
        module = torch.jit.load(io.BytesIO(data), map_location=self.device)
        module.eval()
        return module

    async def load_model(self, uri: str) -> ModelHandle:
        """Fetch and deserialize a TorchScript model from ``uri``. No retry."""
        self.select_backend()
        if self._model is not None and self.config.on_reload == "reject":
            raise ModelLoadError("Model already loaded")
        start = time.time()
        try:
            data = await asyncio.to_thread(self._fetch, uri)
            module = await asyncio.to_thread(self._deserialize, data)
        except Exception as e:  # noqa: BLE001 - any fetch/format failure is a load failure
            raise ModelLoadError(str(e) or type(e).__name__) from e
        handle = ModelHandle(uri=uri, module=module)
        previous, self._model = self._model, handle
        if previous is not None:
            core_logger.info(f"model replaced uri={previous.uri} age_s={round(handle.loaded_at - previous.loaded_at, 3)}")
        core_logger.info(f"model loaded uri={uri} bytes={len(data)} seconds={round(handle.loaded_at - start, 3)}")
        return handle

    # Processing --------------------------------------------------------
    def _run_operation(self, scope: TensorScope, x: torch.Tensor) -> torch.Tensor:
        if self.config.operation == "identity":
            return scope.track(x.clone())
        if self._model is None:
            raise ProcessingError("No model loaded")
        with torch.no_grad():
            out = self._model.module(x)
        if not isinstance(out, torch.Tensor):
            raise ProcessingError(f"Model returned {type(out).__name__}, expected a tensor")
        return scope.track(out)

    def process(self, values: Any) -> Any:
        """Run the configured operation on ``values`` and return the output as nested lists.

        The input tensor is released after its output has been read out; every
        intermediate is released when the scoped region exits.
        """
        input_tensor: Optional[torch.Tensor] = None
        try:
            input_tensor = self.tensor(values)
            with self.scope() as scope:
                output = self._run_operation(scope, input_tensor)
                result = output.detach().cpu().tolist()
                if output.is_floating_point() and not bool(torch.isfinite(output).all()):
                    raise ProcessingError("Result contains non-finite values")
            return result
        except WorkerError:
            raise
        except (TypeError, ValueError, RuntimeError) as e:
            raise ProcessingError(str(e)) from e
        finally:
            if input_tensor is not None:
                self.dispose(input_tensor)


__all__ = ["TensorEngine", "TensorScope", "ModelHandle", "EngineState", "infer_shape"]
