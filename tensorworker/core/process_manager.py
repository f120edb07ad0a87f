"""Host-side client for an out-of-process tensor worker.

Spawns ``python -m tensorworker.core.worker_entry`` and exchanges JSON lines
with it. Mirrors the host state a UI keeps about its worker: whether a request
is outstanding and the last error the worker reported.

Worker stdout is drained by a reader thread into a queue so a hung worker
cannot block the host past its timeout. A worker that times out is stopped:
a late answer must never be read as the response to the next request.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
import json
import os
import queue
import subprocess
import sys
import threading
import time

from .errors import WorkerInitError
from .logging import core_logger
from . import protocol


@dataclass
class WorkerInfo:
    process: subprocess.Popen
    started: float
    last_used: float
    lines: "queue.Queue[Optional[str]]" = field(default_factory=queue.Queue)
    requests: int = 0


@dataclass
class HostState:
    processing: bool = False
    last_error: Optional[str] = None
    history: List[str] = field(default_factory=list)


def _pump(stream, lines: "queue.Queue[Optional[str]]"):
    for line in iter(stream.readline, ""):
        lines.put(line)
    lines.put(None)  # EOF


class WorkerClient:
    def __init__(self, workspace_root: Optional[Path] = None, config_path: Optional[str] = None, python: Optional[str] = None):
        self.workspace_root = Path(workspace_root) if workspace_root else Path.cwd()
        self.config_path = config_path
        self.python = python or sys.executable
        self.state = HostState()
        self._worker: Optional[WorkerInfo] = None
        self._lock = threading.RLock()

    def spawn(self) -> WorkerInfo:
        with self._lock:
            if self._worker is not None and self._worker.process.poll() is None:
                return self._worker
            cmd = [self.python, "-m", "tensorworker.core.worker_entry"]
            env = dict(os.environ)
            if self.config_path:
                env["TENSORWORKER_CONFIG"] = str(self.config_path)
            core_logger.debug(f"spawn worker cmd={' '.join(cmd)}")
            try:
                proc = subprocess.Popen(
                    cmd, cwd=str(self.workspace_root), stdin=subprocess.PIPE, stdout=subprocess.PIPE, text=True, env=env
                )
            except OSError as e:
                raise WorkerInitError(f"Failed spawning worker: {e}") from e
            now = time.time()
            wi = WorkerInfo(process=proc, started=now, last_used=now)
            threading.Thread(target=_pump, args=(proc.stdout, wi.lines), daemon=True).start()
            self._worker = wi
            return wi

    def _send(self, wi: WorkerInfo, payload: Dict[str, Any]):
        assert wi.process.stdin is not None
        wi.process.stdin.write(json.dumps(payload) + "\n")
        wi.process.stdin.flush()

    def _recv(self, wi: WorkerInfo, timeout: float) -> Dict[str, Any]:
        deadline = time.time() + timeout
        while True:
            remaining = deadline - time.time()
            try:
                if remaining <= 0:
                    raise queue.Empty
                line = wi.lines.get(timeout=remaining)
            except queue.Empty:
                self._kill(wi)
                raise TimeoutError(f"Timeout waiting for worker response after {timeout}s; worker stopped")
            if line is None:
                self._discard(wi)
                raise WorkerInitError(f"Worker exited with code {wi.process.poll()}")
            line = line.strip()
            if not line:
                continue
            try:
                msg = json.loads(line)
            except json.JSONDecodeError:
                # stray stdout from imported libraries
                continue
            if isinstance(msg, dict) and "type" in msg:
                return msg

    def _track(self, response: Dict[str, Any]):
        self.state.processing = False
        self.state.history.append(response.get("type", "?"))
        if response.get("type") == protocol.ERROR or response.get("success") is False:
            self.state.last_error = response.get("error")
        else:
            self.state.last_error = None

    def request(self, message: Dict[str, Any], timeout: float = 30.0) -> Dict[str, Any]:
        with self._lock:
            wi = self.spawn()
            self.state.processing = True
            try:
                self._send(wi, message)
                wi.last_used = time.time()
                wi.requests += 1
                response = self._recv(wi, timeout)
            except Exception:
                self.state.processing = False
                raise
            self._track(response)
            return response

    def load_model(self, model_url: str, timeout: float = 120.0) -> Dict[str, Any]:
        return self.request({"type": protocol.LOAD_MODEL, "payload": {"modelUrl": model_url}}, timeout=timeout)

    def process_input(self, values: Any, timeout: float = 30.0) -> Dict[str, Any]:
        return self.request({"type": protocol.PROCESS_INPUT, "payload": {"input": values}}, timeout=timeout)

    def _discard(self, wi: WorkerInfo):
        if self._worker is wi:
            self._worker = None

    def _kill(self, wi: WorkerInfo):
        self._discard(wi)
        core_logger.warning(f"killing unresponsive worker requests={wi.requests}")
        if wi.process.poll() is None:
            wi.process.terminate()

    def stop(self):
        with self._lock:
            wi, self._worker = self._worker, None
            if wi is None or wi.process.poll() is not None:
                return
            core_logger.debug(f"stop worker requests={wi.requests} uptime_s={round(time.time() - wi.started, 3)}")
            # closing stdin ends the worker's read loop
            if wi.process.stdin is not None:
                wi.process.stdin.close()
            try:
                wi.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                wi.process.terminate()

    def cleanup_idle(self, idle_seconds: float) -> bool:
        """Stop the worker if it has not been used for ``idle_seconds``."""
        with self._lock:
            wi = self._worker
            if wi is None or (time.time() - wi.last_used) <= idle_seconds:
                return False
            self.stop()
            return True


__all__ = ["WorkerClient", "WorkerInfo", "HostState"]
