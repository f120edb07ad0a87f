from tensorworker import cli


def test_cli_parser():
    parser = cli.build_parser()
    args = parser.parse_args(["serve", "--port", "9001", "--config", "c.yaml"])
    assert args.command == "serve" and args.port == 9001 and args.config == "c.yaml"
    args = parser.parse_args(["worker"])
    assert args.command == "worker" and args.config is None


def test_cli_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "tensorworker" in capsys.readouterr().out


def test_cli_worker_delegates(monkeypatch):
    seen = {}

    def fake_worker_main(config_path=None):
        seen["config"] = config_path
        return 0

    monkeypatch.setattr("tensorworker.core.worker_entry.main", fake_worker_main)
    assert cli.main(["worker", "--config", "w.yaml"]) == 0
    assert seen == {"config": "w.yaml"}
