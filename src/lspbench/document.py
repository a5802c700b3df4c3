from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from lsprotocol import types

from lspbench import protocol
from lspbench.exceptions import ConfigError
from lspbench.invariants import require
from lspbench.line_table import LineTable
from lspbench.session import Session

INITIAL_VERSION = 1


def read_source(path: Path) -> str:
    """Read an input file as UTF-8, keeping ``\\r\\n`` line endings unchanged."""
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ConfigError(f"Cannot read input file {path}: {exc.strerror or exc}") from exc
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ConfigError(f"Input is not valid UTF-8: {path} ({exc.reason})") from exc


@dataclass
class OpenDocument:
    """Server-side view of one benchmarked file.

    ``text`` is the content sent at open time and never changes; edits only
    exist as ``didChange`` messages. ``version`` starts at 1 and grows by one
    per ``didChange``.
    """

    path: Path
    uri: str
    language_id: str
    text: str
    version: int = INITIAL_VERSION
    lines: LineTable = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.lines = LineTable(self.text)

    @classmethod
    def from_path(
        cls, path: Path, language_id: str, text: str | None = None
    ) -> OpenDocument:
        if text is None:
            text = read_source(path)
        return cls(path=path, uri=path.resolve().as_uri(), language_id=language_id, text=text)

    def next_version(self) -> int:
        self.version += 1
        return self.version

    async def open(self, session: Session) -> None:
        require(self.version == INITIAL_VERSION, "document opened twice", uri=self.uri)
        await session.notify(
            types.TEXT_DOCUMENT_DID_OPEN,
            protocol.did_open_params(self.uri, self.language_id, self.version, self.text),
        )

    async def replace_text(self, session: Session, text: str) -> int:
        """Send ``text`` as the full new content under the next version."""
        version = self.next_version()
        await session.notify(
            types.TEXT_DOCUMENT_DID_CHANGE,
            protocol.did_change_full_text_params(self.uri, version, text),
        )
        return version

    async def restore(self, session: Session) -> int:
        return await self.replace_text(session, self.text)

    async def close(self, session: Session) -> None:
        await session.notify(types.TEXT_DOCUMENT_DID_CLOSE, protocol.did_close_params(self.uri))
