from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import pytest

from lspbench.config import build_config
from lspbench.driver import load_sources, run_benchmark, server_message_printer
from lspbench.exceptions import ConfigError, ConnectionLostError, RequestError
from lspbench.reporters import CollectingReporter
from lspbench.simulator import Mode
from tests.lsp_helpers import QueueWriter, ScriptedServer, default_handler, rpc_message


@dataclass
class _FakeProcess:
    stdout: asyncio.StreamReader
    stdin: QueueWriter
    returncode: int | None = None


@dataclass
class _FakeSpawner:
    handler: object = default_handler
    commands: list[list[str]] = field(default_factory=list)
    reader: asyncio.StreamReader | None = None
    writer: QueueWriter | None = None
    stopped: bool = False

    @asynccontextmanager
    async def __call__(self, command: list[str]):
        self.commands.append(command)
        self.reader = asyncio.StreamReader()
        self.writer = QueueWriter()
        server = asyncio.create_task(ScriptedServer(self.reader, self.writer, self.handler).serve())
        try:
            yield _FakeProcess(stdout=self.reader, stdin=self.writer)
        finally:
            server.cancel()
            self.stopped = True


def _config(paths, **overrides):
    payload = {"files": list(paths), "command": ["fake-server", "--stdio"]}
    payload.update(overrides)
    return build_config(payload)


def test_run_benchmark_drives_full_session(source_file) -> None:
    first = source_file("a.ql", "foo bar")
    second = source_file("b.ql", "// only a comment\nbaz")
    spawner = _FakeSpawner()
    reporter = CollectingReporter()
    warnings: list[str] = []

    count = asyncio.run(
        run_benchmark(_config([first, second]), reporter, warn=warnings.append, spawn=spawner)
    )

    assert count == 3
    assert [(m.file, m.line, m.column, m.result_count) for m in reporter.measurements] == [
        (str(first), 1, 1, 2),
        (str(first), 1, 5, 2),
        (str(second), 2, 1, 2),
    ]
    assert spawner.commands == [["fake-server", "--stdio"]]
    assert spawner.stopped
    assert spawner.writer is not None and spawner.writer.closed
    methods = spawner.writer.methods()
    assert methods[:2] == ["initialize", "initialized"]
    assert methods[-2:] == ["shutdown", "exit"]
    assert methods.count("textDocument/didOpen") == 2
    assert methods.count("textDocument/didClose") == 2
    assert methods.count("textDocument/completion") == 3
    assert warnings[0] == "Starting command: fake-server --stdio"
    assert warnings[1].startswith("Now listening (took ")


def test_each_file_is_opened_before_probes_and_closed_after(source_file) -> None:
    path = source_file("a.ql", "foo")
    spawner = _FakeSpawner()
    asyncio.run(run_benchmark(_config([path], mode=Mode.DEFINITION), CollectingReporter(), spawn=spawner))
    assert spawner.writer is not None
    assert spawner.writer.methods()[2:7] == [
        "textDocument/didOpen",
        "textDocument/didChange",
        "textDocument/definition",
        "textDocument/didChange",
        "textDocument/didClose",
    ]
    opened = spawner.writer.sent[2]["params"]["textDocument"]
    assert opened["languageId"] == "codeql"
    assert opened["version"] == 1
    assert opened["uri"] == path.resolve().as_uri()


def test_initialize_carries_workspace_folders(source_file, tmp_path) -> None:
    path = source_file("a.ql", "")
    spawner = _FakeSpawner()
    asyncio.run(
        run_benchmark(
            _config([path], workspace_folders=[tmp_path]),
            CollectingReporter(),
            spawn=spawner,
        )
    )
    assert spawner.writer is not None
    initialize = spawner.writer.sent[0]
    assert initialize["params"]["workspaceFolders"][0]["uri"] == tmp_path.resolve().as_uri()
    assert initialize["params"]["capabilities"] == {}


def test_failed_initialize_is_fatal(source_file) -> None:
    def handler(message: dict) -> dict:
        return {"error": {"code": -32002, "message": "not ready"}}

    spawner = _FakeSpawner(handler=handler)
    reporter = CollectingReporter()
    with pytest.raises(RequestError, match="not ready"):
        asyncio.run(run_benchmark(_config([source_file("a.ql", "foo")]), reporter, spawn=spawner))
    assert reporter.measurements == []
    assert spawner.stopped


def test_server_dying_mid_run_reports_partial_results(source_file) -> None:
    spawner = _FakeSpawner()
    completions = 0

    def handler(message: dict) -> dict | None:
        nonlocal completions
        if message["method"] == "textDocument/completion":
            completions += 1
            if completions == 2:
                return None
        return default_handler(message)

    spawner.handler = handler
    reporter = CollectingReporter()

    async def scenario() -> None:
        run = asyncio.create_task(
            run_benchmark(_config([source_file("a.ql", "foo bar baz")]), reporter, spawn=spawner)
        )
        while completions < 2:
            await asyncio.sleep(0.005)
        assert spawner.reader is not None
        spawner.reader.feed_eof()
        await run

    with pytest.raises(ConnectionLostError):
        asyncio.run(scenario())
    assert len(reporter.measurements) == 1
    assert spawner.stopped


def test_server_log_messages_printed_when_verbose() -> None:
    warnings: list[str] = []
    printer = server_message_printer(warnings.append)
    printer({"jsonrpc": "2.0", "method": "window/logMessage", "params": {"type": 3, "message": "indexing"}})
    printer({"jsonrpc": "2.0", "method": "window/showMessage", "params": {"type": 1, "message": "oops"}})
    printer({"jsonrpc": "2.0", "method": "$/progress", "params": {"message": "ignored"}})
    assert warnings == ["[server] indexing", "[server] oops"]


def test_verbose_run_forwards_server_notifications(source_file) -> None:
    spawner = _FakeSpawner()

    def handler(message: dict) -> dict | None:
        if message["method"] == "textDocument/completion":
            assert spawner.reader is not None
            spawner.reader.feed_data(
                rpc_message(
                    {
                        "jsonrpc": "2.0",
                        "method": "window/logMessage",
                        "params": {"type": 3, "message": "working"},
                    }
                )
            )
        return default_handler(message)

    spawner.handler = handler
    warnings: list[str] = []
    asyncio.run(
        run_benchmark(
            _config([source_file("a.ql", "foo")], verbose=True),
            CollectingReporter(),
            warn=warnings.append,
            spawn=spawner,
        )
    )
    assert "[server] working" in warnings


def test_quiet_run_ignores_server_notifications(source_file) -> None:
    spawner = _FakeSpawner()

    def handler(message: dict) -> dict | None:
        if message["method"] == "textDocument/completion":
            assert spawner.reader is not None
            spawner.reader.feed_data(
                rpc_message({"jsonrpc": "2.0", "method": "window/logMessage", "params": {"type": 3, "message": "x"}})
            )
        return default_handler(message)

    spawner.handler = handler
    warnings: list[str] = []
    asyncio.run(
        run_benchmark(
            _config([source_file("a.ql", "foo")]),
            CollectingReporter(),
            warn=warnings.append,
            spawn=spawner,
        )
    )
    assert not any(text.startswith("[server]") for text in warnings)


def test_undecodable_input_fails_before_spawn(source_file, tmp_path) -> None:
    good = source_file("a.ql", "foo")
    bad = tmp_path / "b.ql"
    bad.write_bytes(b"foo \xff\xfe bar")
    spawner = _FakeSpawner()
    warnings: list[str] = []
    with pytest.raises(ConfigError, match="not valid UTF-8"):
        asyncio.run(
            run_benchmark(_config([good, bad]), CollectingReporter(), warn=warnings.append, spawn=spawner)
        )
    assert spawner.commands == []
    assert warnings == []


def test_unreadable_input_is_config_error(tmp_path) -> None:
    with pytest.raises(ConfigError, match="Cannot read input file"):
        load_sources([tmp_path])


def test_load_sources_keeps_crlf(source_file) -> None:
    path = source_file("a.ql", "a\r\nb")
    assert load_sources([path]) == [(path, "a\r\nb")]
