import json
import queue
import time
import types
from pathlib import Path

import pytest

from tensorworker.core.errors import WorkerInitError
from tensorworker.core.process_manager import WorkerClient


class DummyProc:
    def __init__(self, respond=True):
        self.stdin = types.SimpleNamespace(write=self._write, flush=lambda: None, close=self._close)
        self.stdout = types.SimpleNamespace(readline=self._readline)
        self._out = queue.Queue()
        self.respond = respond
        self.returncode = None
        self.sent = []

    def _write(self, data):
        payload = json.loads(data)
        self.sent.append(payload)
        if not self.respond:
            return
        # libraries sometimes print to stdout; the client must skip it
        self._out.put("Loading weights...\n")
        if payload.get("type") == "LOAD_MODEL":
            if payload["payload"]["modelUrl"].endswith("missing.pt"):
                resp = {"type": "MODEL_LOADED", "success": False, "error": "No such file"}
            else:
                resp = {"type": "MODEL_LOADED", "success": True}
        elif payload.get("type") == "PROCESS_INPUT":
            resp = {"type": "PROCESS_COMPLETE", "success": True, "result": payload["payload"]["input"]}
        else:
            resp = {"type": "ERROR", "error": f"Unknown message type: {payload.get('type')}"}
        self._out.put(json.dumps(resp) + "\n")

    def _readline(self):
        return self._out.get()  # blocks like a pipe

    def _close(self):
        self.returncode = 0
        self._out.put("")

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        return self.returncode

    def terminate(self):
        self.returncode = -15
        self._out.put("")


def test_client_roundtrip_and_host_state(monkeypatch, tmp_path: Path):
    procs = []

    def fake_popen(cmd, cwd=None, stdin=None, stdout=None, text=None, env=None):  # noqa
        assert cmd[1:] == ["-m", "tensorworker.core.worker_entry"]
        assert env["TENSORWORKER_CONFIG"] == "cfg.yaml"
        procs.append(DummyProc())
        return procs[-1]

    monkeypatch.setattr("subprocess.Popen", fake_popen)
    client = WorkerClient(tmp_path, config_path="cfg.yaml")

    resp = client.load_model(str(tmp_path / "missing.pt"))
    assert resp["success"] is False
    assert client.state.last_error == "No such file"
    assert client.state.processing is False

    resp = client.process_input([1, 2, 3])
    assert resp == {"type": "PROCESS_COMPLETE", "success": True, "result": [1, 2, 3]}
    assert client.state.last_error is None

    resp = client.request({"type": "FOO", "payload": {}})
    assert resp == {"type": "ERROR", "error": "Unknown message type: FOO"}
    assert client.state.last_error == "Unknown message type: FOO"
    assert client.state.history == ["MODEL_LOADED", "PROCESS_COMPLETE", "ERROR"]

    assert len(procs) == 1  # one worker reused across requests
    client.stop()
    assert procs[0].returncode == 0


def test_hung_worker_times_out_and_is_replaced(monkeypatch, tmp_path: Path):
    procs = [DummyProc(respond=False), DummyProc()]
    monkeypatch.setattr("subprocess.Popen", lambda *a, **k: procs.pop(0))
    client = WorkerClient(tmp_path)
    hung = client.spawn().process

    start = time.time()
    with pytest.raises(TimeoutError):
        client.process_input([1], timeout=0.2)
    assert time.time() - start < 5
    assert hung.returncode == -15
    assert client.state.processing is False

    # a fresh worker answers the next request, not a stale reply
    resp = client.process_input([2])
    assert resp["result"] == [2]


def test_worker_death_is_reported(monkeypatch, tmp_path: Path):
    dead = DummyProc(respond=False)
    dead.returncode = 1
    dead._out.put("")

    monkeypatch.setattr("subprocess.Popen", lambda *a, **k: dead)
    client = WorkerClient(tmp_path)
    with pytest.raises(WorkerInitError, match="exited with code 1"):
        client.request({"type": "PROCESS_INPUT", "payload": {"input": [1]}}, timeout=1)
    assert client.state.processing is False


def test_cleanup_idle(monkeypatch, tmp_path: Path):
    monkeypatch.setattr("subprocess.Popen", lambda *a, **k: DummyProc())
    client = WorkerClient(tmp_path)
    client.process_input([1])
    assert client.cleanup_idle(idle_seconds=60) is False
    client._worker.last_used -= 120
    proc = client._worker.process
    assert client.cleanup_idle(idle_seconds=60) is True
    assert proc.returncode == 0
    assert client.cleanup_idle(idle_seconds=60) is False


def test_spawn_failure(monkeypatch, tmp_path: Path):
    def boom(*a, **k):
        raise OSError("no python")

    monkeypatch.setattr("subprocess.Popen", boom)
    with pytest.raises(WorkerInitError, match="no python"):
        WorkerClient(tmp_path).spawn()
