"""JSON-RPC session with a language server: handshake and request routing."""

from __future__ import annotations

import asyncio
import contextlib
import itertools
from dataclasses import dataclass
from typing import Callable

from lspbench.exceptions import (
    ConnectionLostError,
    FrameError,
    LspBenchError,
    RequestError,
    RequestTimeoutError,
    SessionClosedError,
)
from lspbench.json_types import JSONObject, JSONValue
from lspbench.transport import Transport

INITIALIZE = "initialize"
INITIALIZED = "initialized"
SHUTDOWN = "shutdown"
EXIT = "exit"
CANCEL_REQUEST = "$/cancelRequest"

METHOD_NOT_FOUND = -32601
UNKNOWN_ERROR_CODE = -32001

_USE_SESSION_TIMEOUT = object()


@dataclass(frozen=True)
class _PendingRequest:
    method: str
    future: asyncio.Future[JSONValue]


class Session:
    """Owns a Transport and correlates responses with their requests.

    A single reader task drains the Transport and resolves the pending entry
    whose identifier matches each response, so responses may arrive in any
    order. Requests still pending when the stream ends fail with
    ``ConnectionLostError``; those pending at ``close()`` fail with
    ``SessionClosedError``.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        request_timeout: float | None = None,
        notification_callback: Callable[[JSONObject], None] | None = None,
        warn: Callable[[str], None] | None = None,
    ) -> None:
        self._transport = transport
        self._ids = itertools.count(1)
        self._pending: dict[int, _PendingRequest] = {}
        self._reader_task: asyncio.Task[None] | None = None
        self._failure: LspBenchError | None = None
        self._closing = False
        self._notification_callback = notification_callback
        self._warn = warn
        self.request_timeout = request_timeout
        self.server_capabilities: JSONObject = {}
        self.dropped_responses = 0
        transport.set_error_sink(self._on_frame_error)

    @classmethod
    async def connect(
        cls,
        transport: Transport,
        initialize_params: JSONObject,
        **kwargs,
    ) -> Session:
        """Start the reader and run the initialize/initialized handshake."""
        session = cls(transport, **kwargs)
        session.start()
        try:
            await session.initialize(initialize_params)
        except BaseException:
            await session.close()
            raise
        return session

    @property
    def closed(self) -> bool:
        return self._failure is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def start(self) -> None:
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(self._pump(), name="lsp-reader")

    async def initialize(self, params: JSONObject) -> JSONValue:
        result = await self.request(INITIALIZE, params)
        if isinstance(result, dict):
            capabilities = result.get("capabilities")
            if isinstance(capabilities, dict):
                self.server_capabilities = capabilities
        await self.notify(INITIALIZED, {})
        return result

    async def request(
        self,
        method: str,
        params: JSONValue = None,
        *,
        timeout: float | None | object = _USE_SESSION_TIMEOUT,
    ) -> JSONValue:
        self._raise_if_closed()
        effective_timeout = self.request_timeout if timeout is _USE_SESSION_TIMEOUT else timeout
        request_id = next(self._ids)
        future: asyncio.Future[JSONValue] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = _PendingRequest(method=method, future=future)
        message: JSONObject = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            message["params"] = params
        try:
            await self._transport.send(message)
            if effective_timeout is None:
                return await future
            try:
                return await asyncio.wait_for(future, effective_timeout)
            except asyncio.TimeoutError:
                self._pending.pop(request_id, None)
                await self.notify(CANCEL_REQUEST, {"id": request_id})
                raise RequestTimeoutError(method, float(effective_timeout)) from None
        finally:
            self._pending.pop(request_id, None)

    async def notify(self, method: str, params: JSONValue = None) -> None:
        self._raise_if_closed()
        message: JSONObject = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        await self._transport.send(message)

    async def shutdown(self, *, timeout: float | None | object = _USE_SESSION_TIMEOUT) -> None:
        """Send ``shutdown`` and ``exit``, then release the Transport."""
        if self._failure is None:
            self._closing = True
            try:
                await self.request(SHUTDOWN, timeout=timeout)
            except (RequestError, RequestTimeoutError, SessionClosedError) as exc:
                self._emit(f"Shutdown request failed: {exc}")
            if self._failure is None:
                await self.notify(EXIT)
        await self.close()

    async def close(self) -> None:
        self._closing = True
        if self._failure is None:
            self._failure = SessionClosedError("LSP session was shut down")
        self._fail_pending(self._failure)
        await self._transport.close()
        if self._reader_task is not None:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task

    async def _pump(self) -> None:
        try:
            async for message in self._transport.messages():
                await self._dispatch(message)
        except ConnectionLostError as exc:
            self._lose(exc)
            return
        except OSError as exc:
            self._lose(ConnectionLostError(f"LSP stream failed: {exc}"))
            return
        except Exception as exc:
            self._lose(ConnectionLostError(f"LSP reader failed: {exc!r}"))
            return
        if self._closing:
            self._lose(SessionClosedError("LSP session was shut down"))
        else:
            self._lose(ConnectionLostError("LSP server closed its output stream"))

    async def _dispatch(self, message: JSONObject) -> None:
        method = message.get("method")
        if isinstance(method, str):
            if "id" in message:
                await self._reject_server_request(message["id"], method)
            elif self._notification_callback is not None:
                self._notification_callback(message)
            return
        request_id = message.get("id")
        pending = self._pending.pop(request_id, None) if isinstance(request_id, int) else None
        if pending is None or pending.future.done():
            self.dropped_responses += 1
            self._emit(f"Dropping response for unknown request id {request_id!r}")
            return
        error = message.get("error")
        if error is not None:
            pending.future.set_exception(_request_error(pending.method, error))
        else:
            pending.future.set_result(message.get("result"))

    async def _reject_server_request(self, request_id: JSONValue, method: str) -> None:
        if self._transport.closed:
            return
        await self._transport.send(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "error": {
                    "code": METHOD_NOT_FOUND,
                    "message": f"Unhandled method {method}",
                },
            }
        )

    def _lose(self, error: LspBenchError) -> None:
        if self._failure is None:
            self._failure = error
        self._fail_pending(self._failure)

    def _fail_pending(self, error: LspBenchError) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for entry in pending:
            if not entry.future.done():
                entry.future.set_exception(type(error)(str(error)))

    def _raise_if_closed(self) -> None:
        if self._failure is not None:
            raise type(self._failure)(str(self._failure))

    def _on_frame_error(self, error: FrameError) -> None:
        self._emit(f"Protocol error: {error}")

    def _emit(self, text: str) -> None:
        if self._warn is not None:
            self._warn(text)


def _request_error(method: str, error: JSONValue) -> RequestError:
    if not isinstance(error, dict):
        return RequestError(method, UNKNOWN_ERROR_CODE, str(error))
    code = error.get("code")
    message = error.get("message")
    return RequestError(
        method,
        code if isinstance(code, int) else UNKNOWN_ERROR_CODE,
        message if isinstance(message, str) else "Unknown error",
        error.get("data"),
    )
