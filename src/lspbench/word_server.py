"""A tiny reference language server for smoke-testing lsp-bench.

Completion offers every word of the current document; definition jumps to
the first occurrence of the word under the cursor. Runs over stdio:

    lsp-bench some/file.txt -- python -m lspbench.word_server
"""

from __future__ import annotations

import re
from typing import List, Optional

from lsprotocol import types
from pygls.lsp.server import LanguageServer

WORD_RE = re.compile(r"[A-Za-z_][A-Za-z_0-9]*")
_WORD_CHAR_RE = re.compile(r"[A-Za-z_0-9]")

server = LanguageServer("lsp-bench-word-server", "v0.1.0")


def word_at(line: str, character: int) -> str:
    start = character
    while start > 0 and _WORD_CHAR_RE.match(line[start - 1]):
        start -= 1
    end = character
    while end < len(line) and _WORD_CHAR_RE.match(line[end]):
        end += 1
    return line[start:end]


def first_occurrence(lines: List[str], word: str) -> Optional[types.Range]:
    pattern = re.compile(rf"(?<![A-Za-z_0-9]){re.escape(word)}(?![A-Za-z_0-9])")
    for number, line in enumerate(lines):
        match = pattern.search(line)
        if match is not None:
            return types.Range(
                start=types.Position(line=number, character=match.start()),
                end=types.Position(line=number, character=match.end()),
            )
    return None


@server.feature(types.TEXT_DOCUMENT_COMPLETION)
def completion(ls: LanguageServer, params: types.CompletionParams) -> types.CompletionList:
    document = ls.workspace.get_text_document(params.text_document.uri)
    words = sorted(set(WORD_RE.findall(document.source)))
    return types.CompletionList(
        is_incomplete=False,
        items=[types.CompletionItem(label=word) for word in words],
    )


@server.feature(types.TEXT_DOCUMENT_DEFINITION)
def definition(
    ls: LanguageServer, params: types.DefinitionParams
) -> Optional[List[types.Location]]:
    document = ls.workspace.get_text_document(params.text_document.uri)
    lines = document.lines
    if params.position.line >= len(lines):
        return None
    word = word_at(lines[params.position.line], params.position.character)
    if not WORD_RE.fullmatch(word):
        return None
    target = first_occurrence(lines, word)
    if target is None:
        return None
    return [types.Location(uri=document.uri, range=target)]


def main() -> None:
    server.start_io()


if __name__ == "__main__":  # pragma: no cover
    main()  # pragma: no cover
