"""Benchmark driver: one pass of probe edits over every configured file."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from pathlib import Path

from lsprotocol import types

from lspbench import protocol
from lspbench.config import BenchConfig
from lspbench.document import OpenDocument, read_source
from lspbench.json_types import JSONObject
from lspbench.process import spawn_server
from lspbench.reporters import Reporter
from lspbench.session import Session
from lspbench.simulator import EditSimulator
from lspbench.transport import Transport

SpawnFn = Callable[[list[str]], AbstractAsyncContextManager[asyncio.subprocess.Process]]


class BenchmarkDriver:
    """Opens each file, runs the edit simulator on it and reports results.

    Measurements are forwarded as they are produced so partial results stay
    visible when the server later hangs or dies.
    """

    def __init__(
        self,
        session: Session,
        config: BenchConfig,
        reporter: Reporter,
        sources: list[tuple[Path, str]],
        *,
        warn: Callable[[str], None] | None = None,
    ) -> None:
        self._session = session
        self._config = config
        self._sources = sources
        self._reporter = reporter
        self._simulator = EditSimulator(
            session,
            config.mode,
            on_error=config.on_error,
            warn=warn,
        )

    async def run(self) -> int:
        count = 0
        for path, text in self._sources:
            count += await self.measure_file(path, text)
        await self._session.shutdown()
        return count

    async def measure_file(self, path: Path, text: str) -> int:
        document = OpenDocument.from_path(path, self._config.language, text)
        await document.open(self._session)
        count = 0
        async for measurement in self._simulator.measure(document):
            self._reporter(measurement)
            count += 1
        await document.close(self._session)
        return count


def server_message_printer(warn: Callable[[str], None]) -> Callable[[JSONObject], None]:
    def _print(message: JSONObject) -> None:
        if message.get("method") not in (types.WINDOW_LOG_MESSAGE, types.WINDOW_SHOW_MESSAGE):
            return
        params = message.get("params")
        if isinstance(params, dict) and isinstance(params.get("message"), str):
            warn(f"[server] {params['message']}")

    return _print


def load_sources(paths: list[Path]) -> list[tuple[Path, str]]:
    """Read and decode every input file; runs before the server is spawned."""
    return [(path, read_source(path)) for path in paths]


async def run_benchmark(
    config: BenchConfig,
    reporter: Reporter,
    *,
    warn: Callable[[str], None] = lambda _text: None,
    spawn: SpawnFn = spawn_server,
) -> int:
    """Spawn the server, handshake, measure every file, shut down.

    Returns the number of measurements reported.
    """
    sources = load_sources(config.files)
    warn(f"Starting command: {' '.join(config.command)}")
    started = time.perf_counter()
    async with spawn(list(config.command)) as process:
        assert process.stdout is not None
        assert process.stdin is not None
        transport = Transport(process.stdout, process.stdin)
        session = await Session.connect(
            transport,
            protocol.initialize_params(list(config.workspace_folders)),
            request_timeout=config.request_timeout,
            notification_callback=server_message_printer(warn) if config.verbose else None,
            warn=warn,
        )
        warn(f"Now listening (took {round((time.perf_counter() - started) * 1000)} ms)")
        try:
            return await BenchmarkDriver(session, config, reporter, sources, warn=warn).run()
        finally:
            if not session.closed:
                await session.close()
