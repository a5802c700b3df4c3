"""Error types raised by the benchmark driver."""

from __future__ import annotations

from lspbench.json_types import JSONValue


class LspBenchError(RuntimeError):
    pass


class NeverThrown(LspBenchError):
    """Raised by ``never()`` when a path that should be unreachable runs.

    The keyword environment passed to ``never()`` is kept on ``env`` so the
    failing state can be inspected from the traceback.
    """

    def __init__(self, reason: str, *, env: dict[str, object] | None = None):
        super().__init__(reason)
        self.reason = reason
        self.env = dict(env or {})


class FrameError(LspBenchError):
    """A frame on the wire could not be decoded and was dropped."""


class RequestError(LspBenchError):
    """The server answered a request with a JSON-RPC ``error`` member."""

    def __init__(
        self,
        method: str,
        code: int,
        message: str,
        data: JSONValue = None,
    ) -> None:
        super().__init__(f"{method} failed ({code}): {message}")
        self.method = method
        self.code = code
        self.message = message
        self.data = data


class RequestTimeoutError(LspBenchError):
    def __init__(self, method: str, timeout: float) -> None:
        super().__init__(f"{method} timed out after {timeout:g} s")
        self.method = method
        self.timeout = timeout


class ConnectionLostError(LspBenchError):
    """The server's output stream ended while the session was still live."""


class SessionClosedError(LspBenchError):
    pass


class ConfigError(LspBenchError):
    """Invalid benchmark configuration; reported before any process starts."""


class ServerLaunchError(LspBenchError):
    pass
