"""Subprocess worker entrypoint (JSON line protocol over stdio).

One JSON object per line on stdin, one JSON response per line on stdout:
    {"type": "LOAD_MODEL", "payload": {"modelUrl": "..."}}
    {"type": "PROCESS_INPUT", "payload": {"input": [[1, 2], [3, 4]]}}

The compute backend is selected once before the first line is read. If that
fails the worker logs the error, writes it to stderr and exits with status 1
without emitting any protocol message.
"""
from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, TextIO

from .config_loader import WorkerConfig, load_config
from .dispatcher import Dispatcher
from .engine import TensorEngine
from .errors import ConfigError, InitializationError
from .logging import core_logger
from . import protocol


def _writer(stream: TextIO):
    def post(message: Dict[str, Any]):
        # strict JSON only: NaN/Infinity are not valid on the wire
        try:
            line = json.dumps(message, allow_nan=False)
        except ValueError as e:
            line = json.dumps(protocol.error_response(f"Unserializable response: {e}").to_message())
        stream.write(line + "\n")
        stream.flush()
    return post


async def serve(dispatcher: Dispatcher, stdin: TextIO, stdout: TextIO) -> int:
    """Read requests until EOF; returns the number of lines answered."""
    post = _writer(stdout)
    answered = 0
    while True:
        line = await asyncio.to_thread(stdin.readline)
        if not line:
            break
        line = line.strip()
        if not line:
            continue
        try:
            message = json.loads(line)
        except json.JSONDecodeError as e:
            post(protocol.error_response(f"Malformed message: {e}").to_message())
            answered += 1
            continue
        if not isinstance(message, dict):
            post(protocol.error_response("Malformed message: expected a JSON object").to_message())
            answered += 1
            continue
        post(await dispatcher.handle(message))
        answered += 1
    return answered


def start_engine(config: WorkerConfig) -> TensorEngine:
    engine = TensorEngine(config)
    engine.select_backend()
    return engine


def main(config_path: Optional[str] = None, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout) -> int:
    try:
        config_path = config_path or os.getenv("TENSORWORKER_CONFIG")
        config = load_config(Path(config_path) if config_path else None)
        engine = start_engine(config)
    except (ConfigError, InitializationError) as e:
        core_logger.critical(f"worker initialization failed kind={e.kind} error={e.message}")
        sys.stderr.write(json.dumps(e.to_dict()) + "\n")
        sys.stderr.flush()
        return 1
    dispatcher = Dispatcher(engine)
    answered = asyncio.run(serve(dispatcher, stdin, stdout))
    core_logger.info(f"worker exiting answered={answered} memory={engine.memory()}")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
