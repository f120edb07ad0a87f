"""CLI entrypoint for tensorworker."""
from __future__ import annotations
import argparse
import os
import pathlib


def build_parser():
    p = argparse.ArgumentParser(prog="tensorworker", description="Tensor computation worker")
    sub = p.add_subparsers(dest="command")
    worker = sub.add_parser("worker", help="Run the JSON line worker on stdin/stdout")
    worker.add_argument("--config", help="Path to worker config (YAML)")
    worker.add_argument("--log-dir", help="Directory to write tensorworker.log")
    serve = sub.add_parser("serve", help="Start the HTTP bridge")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--config", help="Path to worker config (YAML)")
    serve.add_argument("--log-dir", help="Directory to write tensorworker.log")
    return p


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command not in ("worker", "serve"):
        parser.print_help()
        return 1
    # logging reads the env once, when the first logger is created
    if args.log_dir:
        log_dir_path = pathlib.Path(args.log_dir)
        log_dir_path.mkdir(parents=True, exist_ok=True)
        os.environ.setdefault("TENSORWORKER_LOG_DIR", str(log_dir_path.resolve()))
    if args.command == "worker":
        from .core.worker_entry import main as worker_main
        return worker_main(args.config)
    import uvicorn
    from .server import create_app
    uvicorn.run(create_app(config_path=args.config), host=args.host, port=args.port)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
