"""
Tensor worker package.

Runs tensor operations and model loading off the host's thread of control,
behind a typed JSON message protocol. Import from ``tensorworker.core``;
this module stays import-light so the CLI can configure logging first.
"""

__version__ = "0.1.0"
