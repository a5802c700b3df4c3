"""Length-prefixed JSON-RPC framing over a duplex byte stream."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Callable, Protocol

from lspbench.exceptions import ConnectionLostError, FrameError
from lspbench.json_types import JSONObject

HEADER_TERMINATOR = b"\r\n\r\n"
HEADER_LINE_SEPARATOR = b"\r\n"
CONTENT_LENGTH_HEADER = b"content-length:"
MAX_HEADER_BYTES = 8192
READ_CHUNK_BYTES = 65536


class ByteWriter(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...

    def close(self) -> None: ...

    async def wait_closed(self) -> None: ...


def encode_frame(message: JSONObject) -> bytes:
    payload = json.dumps(message, ensure_ascii=False).encode("utf-8")
    header = f"Content-Length: {len(payload)}\r\n\r\n".encode("ascii")
    return header + payload


def _content_length(header: bytes) -> int:
    length: int | None = None
    for line in header.split(HEADER_LINE_SEPARATOR):
        if b":" not in line:
            raise FrameError(f"Malformed LSP header line: {line[:80]!r}")
        if line.lower().startswith(CONTENT_LENGTH_HEADER):
            raw = line.split(b":", 1)[1].strip()
            try:
                length = int(raw)
            except ValueError:
                raise FrameError(f"Invalid LSP Content-Length: {raw[:40]!r}") from None
    if length is None:
        raise FrameError("Missing LSP Content-Length header")
    if length <= 0:
        raise FrameError(f"Invalid LSP Content-Length: {length}")
    return length


def _decode_body(body: bytes) -> JSONObject | FrameError:
    try:
        message = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        return FrameError(f"Undecodable LSP message body: {exc}")
    if not isinstance(message, dict):
        return FrameError(f"Invalid LSP message payload: {type(message).__name__}")
    return message


class FrameDecoder:
    """Incremental decoder for ``Content-Length`` framed messages.

    Bytes are fed in arbitrary chunks. Each complete frame comes back either
    as the decoded JSON object or as a ``FrameError`` describing why it was
    dropped. After a bad header the decoder skips ahead to the next
    ``Content-Length`` header it can find.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending_bytes(self) -> int:
        return len(self._buffer)

    def feed(self, data: bytes) -> list[JSONObject | FrameError]:
        self._buffer.extend(data)
        decoded: list[JSONObject | FrameError] = []
        while True:
            item = self._next_frame()
            if item is None:
                return decoded
            decoded.append(item)

    def _next_frame(self) -> JSONObject | FrameError | None:
        header_end = self._buffer.find(HEADER_TERMINATOR)
        if header_end < 0:
            if len(self._buffer) > MAX_HEADER_BYTES:
                dropped = self._resync(search_from=1, keep_from=1)
                return FrameError(
                    f"LSP header exceeds {MAX_HEADER_BYTES} bytes; dropped {dropped} bytes"
                )
            return None
        body_start = header_end + len(HEADER_TERMINATOR)
        try:
            length = _content_length(bytes(self._buffer[:header_end]))
        except FrameError as exc:
            self._resync(search_from=1, keep_from=body_start)
            return exc
        body_end = body_start + length
        if len(self._buffer) < body_end:
            return None
        body = bytes(self._buffer[body_start:body_end])
        del self._buffer[:body_end]
        return _decode_body(body)

    def _resync(self, *, search_from: int, keep_from: int) -> int:
        lowered = bytes(self._buffer).lower()
        position = lowered.find(CONTENT_LENGTH_HEADER, search_from)
        if position < 0:
            # keep a tail that may be the beginning of a split header name
            position = max(keep_from, len(self._buffer) - len(CONTENT_LENGTH_HEADER) + 1)
        del self._buffer[:position]
        return position


class Transport:
    """Frames outgoing messages and decodes incoming ones for one process."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: ByteWriter,
        *,
        on_error: Callable[[FrameError], None] | None = None,
        chunk_size: int = READ_CHUNK_BYTES,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._on_error = on_error
        self._chunk_size = chunk_size
        self._closed = False
        self.frame_errors = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def set_error_sink(self, on_error: Callable[[FrameError], None] | None) -> None:
        self._on_error = on_error

    async def send(self, message: JSONObject) -> None:
        if self._closed:
            raise ConnectionLostError("LSP transport is closed")
        try:
            self._writer.write(encode_frame(message))
            await self._writer.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise ConnectionLostError(f"LSP stream closed: {exc}") from exc

    async def messages(self) -> AsyncIterator[JSONObject]:
        decoder = FrameDecoder()
        while True:
            chunk = await self._reader.read(self._chunk_size)
            if not chunk:
                if decoder.pending_bytes:
                    self._report(
                        FrameError(
                            f"LSP stream closed inside a frame ({decoder.pending_bytes} bytes pending)"
                        )
                    )
                return
            for item in decoder.feed(chunk):
                if isinstance(item, FrameError):
                    self._report(item)
                    continue
                yield item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            # the server already went away
            return

    def _report(self, error: FrameError) -> None:
        self.frame_errors += 1
        if self._on_error is not None:
            self._on_error(error)
