from pathlib import Path
import pytest
import torch


class Doubler(torch.nn.Module):
    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return x * 2


@pytest.fixture
def model_file(tmp_path: Path) -> Path:
    path = tmp_path / "doubler.pt"
    torch.jit.save(torch.jit.script(Doubler()), str(path))
    return path


@pytest.fixture
def broken_model_file(tmp_path: Path) -> Path:
    path = tmp_path / "broken.pt"
    path.write_bytes(b"definitely not a torchscript archive")
    return path


@pytest.fixture(autouse=True)
def _clear_worker_env(monkeypatch):
    for key in ("BACKEND", "DTYPE", "OPERATION", "ON_RELOAD", "FETCH_TIMEOUT_S", "NUM_THREADS", "CONFIG"):
        monkeypatch.delenv(f"TENSORWORKER_{key}", raising=False)
