"""LSP message parameters built from ``lsprotocol`` types."""

from __future__ import annotations

import os
from pathlib import Path

from lsprotocol import types
from lsprotocol.converters import get_converter

from lspbench import __version__
from lspbench.json_types import JSONObject, JSONValue

_CONVERTER = get_converter()

CLIENT_NAME = "lsp-bench"


def to_json(params: object) -> JSONObject:
    payload = _CONVERTER.unstructure(params)
    return payload if isinstance(payload, dict) else {}


def workspace_folder(path: Path) -> types.WorkspaceFolder:
    resolved = path.resolve()
    return types.WorkspaceFolder(uri=resolved.as_uri(), name=resolved.name or str(resolved))


def initialize_params(workspace_roots: list[Path]) -> JSONObject:
    """Handshake parameters declaring an empty client capability set."""
    folders = [workspace_folder(root) for root in workspace_roots]
    params = types.InitializeParams(
        capabilities=types.ClientCapabilities(),
        process_id=os.getpid(),
        client_info=types.ClientInfo(name=CLIENT_NAME, version=__version__),
        root_uri=folders[0].uri if folders else None,
        workspace_folders=folders,
    )
    return to_json(params)


def did_open_params(uri: str, language_id: str, version: int, text: str) -> JSONObject:
    return to_json(
        types.DidOpenTextDocumentParams(
            text_document=types.TextDocumentItem(
                uri=uri,
                language_id=language_id,
                version=version,
                text=text,
            )
        )
    )


def did_change_full_text_params(uri: str, version: int, text: str) -> JSONObject:
    """A ``didChange`` replacing the whole document with ``text``."""
    return to_json(
        types.DidChangeTextDocumentParams(
            text_document=types.VersionedTextDocumentIdentifier(uri=uri, version=version),
            content_changes=[types.TextDocumentContentChangeWholeDocument(text=text)],
        )
    )


def did_close_params(uri: str) -> JSONObject:
    return to_json(
        types.DidCloseTextDocumentParams(
            text_document=types.TextDocumentIdentifier(uri=uri),
        )
    )


def position(line: int, character: int) -> types.Position:
    return types.Position(line=line, character=character)


def completion_params(uri: str, at: types.Position) -> JSONObject:
    return to_json(
        types.CompletionParams(
            text_document=types.TextDocumentIdentifier(uri=uri),
            position=at,
        )
    )


def definition_params(uri: str, at: types.Position) -> JSONObject:
    return to_json(
        types.DefinitionParams(
            text_document=types.TextDocumentIdentifier(uri=uri),
            position=at,
        )
    )


def utf16_length(text: str) -> int:
    """Length of ``text`` in UTF-16 code units, the LSP's default encoding."""
    return len(text.encode("utf-16-le")) // 2


def result_count(result: JSONValue) -> int:
    """Number of results carried by a completion or definition response.

    ``null`` counts as 0, a list by its length, a ``CompletionList``-shaped
    object by the length of its ``items`` list, anything else as 1.
    """
    if result is None:
        return 0
    if isinstance(result, list):
        return len(result)
    if isinstance(result, dict) and "items" in result:
        items = result["items"]
        return len(items) if isinstance(items, list) else 0
    return 1
