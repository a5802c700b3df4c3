"""lsp-bench package root."""

from lspbench.exceptions import (
    ConfigError,
    ConnectionLostError,
    LspBenchError,
    RequestError,
    RequestTimeoutError,
    SessionClosedError,
)

__all__ = [
    "__version__",
    "ConfigError",
    "ConnectionLostError",
    "LspBenchError",
    "RequestError",
    "RequestTimeoutError",
    "SessionClosedError",
]

__version__ = "0.1.0"
