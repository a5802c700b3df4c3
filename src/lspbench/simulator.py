"""Probe-edit simulation: edit, query, revert, once per word in a file."""

from __future__ import annotations

import re
import time
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from lsprotocol import types

from lspbench import protocol
from lspbench.document import OpenDocument
from lspbench.exceptions import RequestError, RequestTimeoutError
from lspbench.invariants import require
from lspbench.json_types import JSONValue
from lspbench.line_table import LineTable
from lspbench.session import Session

WORD_RE = re.compile(r"[A-Za-z_][A-Za-z_0-9]*")
COMMENT_LINE_RE = re.compile(r"\s*(?:\*|/\*|//)")


class Mode(str, Enum):
    COMPLETION = "completion"
    DEFINITION = "definition"


class FailurePolicy(str, Enum):
    SKIP = "skip"
    ABORT = "abort"


class ProbeState(Enum):
    IDLE = "idle"
    EDITED = "edited"
    AWAITING_RESPONSE = "awaiting-response"
    REVERTING = "reverting"


@dataclass(frozen=True)
class Candidate:
    start: int
    end: int
    line: int
    column: int


@dataclass(frozen=True)
class Measurement:
    file: str
    line: int
    column: int
    elapsed_ms: float
    result_count: int
    error: str | None = None


def iter_candidates(text: str, lines: LineTable) -> Iterator[Candidate]:
    """Word tokens of ``text`` in order, skipping tokens on comment lines."""
    comment_lines: dict[int, bool] = {}
    for match in WORD_RE.finditer(text):
        where = lines.line_and_column(match.start())
        line_index = where.line - 1
        is_comment = comment_lines.get(line_index)
        if is_comment is None:
            is_comment = COMMENT_LINE_RE.match(lines.line_text(line_index)) is not None
            comment_lines[line_index] = is_comment
        if is_comment:
            continue
        yield Candidate(
            start=match.start(),
            end=match.end(),
            line=where.line,
            column=where.column,
        )


def probe_text(text: str, candidate: Candidate, mode: Mode) -> str:
    if mode is Mode.DEFINITION:
        return text[: candidate.end] + " " + text[candidate.end :]
    return text[: candidate.start] + text[candidate.end :]


def lsp_position(document: OpenDocument, candidate: Candidate) -> types.Position:
    line_index = candidate.line - 1
    line_start = document.lines.start_of_line(line_index)
    character = protocol.utf16_length(document.text[line_start : candidate.start])
    return protocol.position(line_index, character)


class EditSimulator:
    """Measures one request per candidate token of an open document.

    Every token runs the full IDLE -> EDITED -> AWAITING_RESPONSE ->
    REVERTING -> IDLE cycle before the next token starts, and the revert
    always restores the text sent at open time. Measured requests carry no
    version; the server sees them after the probe edit, so they apply to it.
    """

    def __init__(
        self,
        session: Session,
        mode: Mode,
        *,
        on_error: FailurePolicy = FailurePolicy.SKIP,
        clock: Callable[[], float] = time.perf_counter,
        warn: Callable[[str], None] | None = None,
    ) -> None:
        self._session = session
        self._mode = mode
        self._on_error = on_error
        self._clock = clock
        self._warn = warn
        self._state = ProbeState.IDLE

    @property
    def state(self) -> ProbeState:
        return self._state

    async def measure(self, document: OpenDocument) -> AsyncIterator[Measurement]:
        for candidate in iter_candidates(document.text, document.lines):
            yield await self.measure_candidate(document, candidate)

    async def measure_candidate(
        self, document: OpenDocument, candidate: Candidate
    ) -> Measurement:
        require(
            self._state is ProbeState.IDLE,
            "probe started before the previous one was reverted",
            state=self._state.value,
        )
        at = lsp_position(document, candidate)
        started = self._clock()
        await document.replace_text(
            self._session, probe_text(document.text, candidate, self._mode)
        )
        self._state = ProbeState.EDITED
        failure: RequestError | RequestTimeoutError | None = None
        result: JSONValue = None
        try:
            self._state = ProbeState.AWAITING_RESPONSE
            result = await self._query(document.uri, at)
        except (RequestError, RequestTimeoutError) as exc:
            failure = exc
        self._state = ProbeState.REVERTING
        await document.restore(self._session)
        elapsed_ms = (self._clock() - started) * 1000.0
        self._state = ProbeState.IDLE

        if failure is not None:
            if self._on_error is FailurePolicy.ABORT:
                raise failure
            if self._warn is not None:
                self._warn(
                    f"Request failed at {document.path}:{candidate.line}:{candidate.column}: {failure}"
                )
            return Measurement(
                file=str(document.path),
                line=candidate.line,
                column=candidate.column,
                elapsed_ms=elapsed_ms,
                result_count=0,
                error=str(failure),
            )
        return Measurement(
            file=str(document.path),
            line=candidate.line,
            column=candidate.column,
            elapsed_ms=elapsed_ms,
            result_count=protocol.result_count(result),
        )

    async def _query(self, uri: str, at: types.Position) -> JSONValue:
        if self._mode is Mode.DEFINITION:
            return await self._session.request(
                types.TEXT_DOCUMENT_DEFINITION, protocol.definition_params(uri, at)
            )
        return await self._session.request(
            types.TEXT_DOCUMENT_COMPLETION, protocol.completion_params(uri, at)
        )
