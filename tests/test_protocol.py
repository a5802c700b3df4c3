from __future__ import annotations

import os
from pathlib import Path

import pytest

from lspbench import protocol


@pytest.mark.parametrize(
    ("result", "expected"),
    [
        (None, 0),
        ([], 0),
        ([{"uri": "a"}, {"uri": "b"}, {"uri": "c"}], 3),
        ({"isIncomplete": False, "items": [{"label": "x"}, {"label": "y"}]}, 2),
        ({"uri": "file:///a", "range": {}}, 1),
        ({"items": None}, 0),
        ({}, 1),
    ],
)
def test_result_count(result, expected: int) -> None:
    assert protocol.result_count(result) == expected


def test_initialize_params_declare_empty_capabilities(tmp_path: Path) -> None:
    root = tmp_path / "workspace"
    root.mkdir()
    params = protocol.initialize_params([root])
    assert params["capabilities"] == {}
    assert params["processId"] == os.getpid()
    assert params["rootUri"] == root.resolve().as_uri()
    assert params["workspaceFolders"] == [{"uri": root.resolve().as_uri(), "name": "workspace"}]
    assert params["clientInfo"]["name"] == "lsp-bench"


def test_did_open_params_shape() -> None:
    params = protocol.did_open_params("file:///a.ql", "codeql", 1, "foo bar")
    assert params == {
        "textDocument": {
            "uri": "file:///a.ql",
            "languageId": "codeql",
            "version": 1,
            "text": "foo bar",
        }
    }


def test_did_change_is_full_text_replacement() -> None:
    params = protocol.did_change_full_text_params("file:///a.ql", 3, "foo ")
    assert params == {
        "textDocument": {"uri": "file:///a.ql", "version": 3},
        "contentChanges": [{"text": "foo "}],
    }


def test_query_params_carry_position() -> None:
    at = protocol.position(2, 5)
    expected = {
        "textDocument": {"uri": "file:///a.ql"},
        "position": {"line": 2, "character": 5},
    }
    assert protocol.completion_params("file:///a.ql", at) == expected
    assert protocol.definition_params("file:///a.ql", at) == expected


def test_did_close_params_shape() -> None:
    assert protocol.did_close_params("file:///a.ql") == {"textDocument": {"uri": "file:///a.ql"}}


def test_utf16_length_counts_surrogate_pairs() -> None:
    assert protocol.utf16_length("abc") == 3
    assert protocol.utf16_length("a\U0001F600") == 3
    assert protocol.utf16_length("é") == 1
