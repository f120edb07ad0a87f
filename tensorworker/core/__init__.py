"""Core components of the tensor worker.

Modules:
  errors: Error taxonomy with a ``kind`` tag per failure family.
  logging: Logger factory and log-safe payload summaries.
  config_loader: Worker configuration from YAML and environment.
  protocol: Message tags, typed requests/responses and decoding.
  engine: Torch adapter (backend, model loading, tensor ledger, scoped regions).
  dispatcher: Routes inbound messages to the engine, one response per request.
  worker_entry: JSON line worker loop over stdio.
  process_manager: Host-side client that spawns and talks to a worker.
"""
