from fastapi.testclient import TestClient

from tensorworker.core.config_loader import WorkerConfig
from tensorworker.server import create_app


def test_messages_roundtrip(model_file):
    app = create_app(WorkerConfig())
    with TestClient(app) as client:
        health = client.get("/health").json()
        assert health["state"] == "BACKEND_READY"
        r = client.post("/messages", json={"type": "FOO", "payload": {}})
        assert r.status_code == 200
        assert r.json() == {"type": "ERROR", "error": "Unknown message type: FOO"}
        r = client.post("/messages", json={"type": "LOAD_MODEL", "payload": {"modelUrl": str(model_file)}})
        assert r.json() == {"type": "MODEL_LOADED", "success": True}
        r = client.post("/messages", json={"type": "PROCESS_INPUT", "payload": {"input": [[1, 2], [3, 4]]}})
        assert r.json() == {"type": "PROCESS_COMPLETE", "success": True, "result": [[1, 2], [3, 4]]}
        health = client.get("/health").json()
        assert health["state"] == "MODEL_LOADED"
        assert health["handled"] == 3
        assert health["memory"]["num_tensors"] == 0


def test_non_object_body_gets_error_response():
    with TestClient(create_app(WorkerConfig())) as client:
        r = client.post("/messages", json=[1, 2, 3])
        assert r.json()["type"] == "ERROR"


def test_overflow_is_a_failed_response():
    with TestClient(create_app(WorkerConfig())) as client:
        r = client.post("/messages", json={"type": "PROCESS_INPUT", "payload": {"input": [1e39]}})
        assert r.json() == {"type": "PROCESS_COMPLETE", "success": False, "error": "Result contains non-finite values"}
