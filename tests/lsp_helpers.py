from __future__ import annotations

import asyncio
import json
from typing import Callable

from lspbench.session import Session
from lspbench.transport import FrameDecoder, Transport

Handler = Callable[[dict], "dict | None"]


def rpc_message(payload: dict) -> bytes:
    body = json.dumps(payload).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("utf-8")
    return header + body


class QueueWriter:
    """Writer that decodes every frame the client sends."""

    def __init__(self) -> None:
        self._decoder = FrameDecoder()
        self.messages: asyncio.Queue[dict] = asyncio.Queue()
        self.sent: list[dict] = []
        self.closed = False
        self.broken = False

    def write(self, data: bytes) -> None:
        for item in self._decoder.feed(data):
            assert isinstance(item, dict), item
            self.sent.append(item)
            self.messages.put_nowait(item)

    async def drain(self) -> None:
        if self.broken:
            raise BrokenPipeError("server stdin closed")

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        return None

    async def next_message(self, timeout: float = 5.0) -> dict:
        return await asyncio.wait_for(self.messages.get(), timeout)

    def methods(self) -> list[str]:
        return [str(message.get("method", "<response>")) for message in self.sent]


class ScriptedServer:
    """Answers client requests through ``handler``; ``None`` means never answer."""

    def __init__(self, reader: asyncio.StreamReader, writer: QueueWriter, handler: Handler) -> None:
        self.reader = reader
        self.writer = writer
        self.handler = handler

    async def serve(self) -> None:
        while True:
            message = await self.writer.messages.get()
            if "id" not in message or "method" not in message:
                continue
            reply = self.handler(message)
            if reply is None:
                continue
            self.reader.feed_data(rpc_message({"jsonrpc": "2.0", "id": message["id"], **reply}))


def default_handler(message: dict) -> dict | None:
    method = message["method"]
    if method == "initialize":
        return {"result": {"capabilities": {"completionProvider": {}}}}
    if method == "shutdown":
        return {"result": None}
    if method == "textDocument/completion":
        return {"result": {"isIncomplete": False, "items": [{"label": "a"}, {"label": "b"}]}}
    if method == "textDocument/definition":
        return {"result": [{"uri": "file:///x", "range": {}}]}
    return {"result": None}


async def started_session(
    handler: Handler = default_handler,
    **kwargs,
) -> tuple[Session, QueueWriter, asyncio.StreamReader, asyncio.Task[None]]:
    reader = asyncio.StreamReader()
    writer = QueueWriter()
    session = Session(Transport(reader, writer), **kwargs)
    session.start()
    server = ScriptedServer(reader, writer, handler)
    task = asyncio.create_task(server.serve())
    return session, writer, reader, task


async def stop(task: asyncio.Task[None]) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        return
