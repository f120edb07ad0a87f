"""HTTP bridge (FastAPI) exposing the dispatcher in-process.

The bridge is just another host: it forwards request objects unchanged and
returns the worker's response message as the body.

Environment variables:
  TENSORWORKER_CONFIG=path/to/config.yaml
"""
from __future__ import annotations
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional
import os

from fastapi import Body, FastAPI

from .core.config_loader import WorkerConfig, load_config
from .core.dispatcher import Dispatcher
from .core.engine import TensorEngine
from .core.logging import core_logger


def _rss_mb() -> Optional[float]:
    try:  # pragma: no cover - psutil optional
        import psutil  # type: ignore
        return round(psutil.Process().memory_info().rss / (1024 * 1024), 2)
    except ImportError:
        return None


def create_app(config: Optional[WorkerConfig] = None, config_path: Optional[str] = None) -> FastAPI:
    if config is None:
        config_path = config_path or os.getenv("TENSORWORKER_CONFIG")
        config = load_config(Path(config_path) if config_path else None)
    engine = TensorEngine(config)
    dispatcher = Dispatcher(engine)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        # InitializationError propagates: the app must not start without a backend
        engine.select_backend()
        core_logger.info(f"http bridge ready backend={config.backend} operation={config.operation}")
        yield
        core_logger.info(f"http bridge stopping handled={dispatcher.handled} memory={engine.memory()}")

    app = FastAPI(title="tensorworker", version="0.1.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.dispatcher = dispatcher

    @app.post("/messages")
    async def post_message(message: Any = Body(...)) -> Dict[str, Any]:
        return await dispatcher.handle(message)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "state": engine.state,
            "backend": config.backend,
            "operation": config.operation,
            "handled": dispatcher.handled,
            "memory": engine.memory(),
            "rss_mb": _rss_mb(),
        }

    return app


__all__ = ["create_app"]
