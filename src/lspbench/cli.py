from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, NoReturn, Optional, TypeAlias
import asyncio
import sys

import typer

from lspbench.config import (
    BenchConfig,
    bench_defaults,
    build_config,
    defaults_payload,
    merge_payload,
)
from lspbench.driver import run_benchmark
from lspbench.exceptions import ConfigError, LspBenchError
from lspbench.reporters import REPORTERS, Reporter, make_reporter
from lspbench.simulator import Mode

BenchRunner: TypeAlias = Callable[..., Awaitable[int]]

USAGE = f"""
  Usage: lsp-bench [options] [files] -- [language server command]

  Starts a language server with the given command, then hammers
  it with requests based on the files given.

  Options:
    --language=<language>: Set the language of the files (for example: codeql, python, javascript, typescript).
    --workspace=<folder>:  Add a workspace folder to the server.
    --jump:                Request jump-to-def instead of completions.
    --format=<fmt>:        Set output format to one of: {', '.join(REPORTERS)}
                           Default is 'human'.
    --timeout=<seconds>:   Per-request timeout, 0 waits forever. Default is 60.
    --on-error=<policy>:   skip or abort when a request fails or times out.
    --config=<path>:       Read defaults from this file instead of ./lsp-bench.toml.
"""

_HELP_FLAGS = {"-h", "--help"}

app = typer.Typer(
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@dataclass(frozen=True)
class Invocation:
    """What ``main`` splits off the command line before typer sees it."""

    command: List[str] = field(default_factory=list)
    runner: BenchRunner = run_benchmark


def split_server_command(argv: List[str]) -> tuple[List[str], List[str]]:
    try:
        dash = argv.index("--")
    except ValueError:
        raise ConfigError("Missing '--' before the language server command") from None
    return argv[:dash], argv[dash + 1 :]


def _warn(text: str) -> None:
    typer.echo(text, err=True)


def _fail(exc: LspBenchError) -> NoReturn:
    typer.secho(str(exc), err=True, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _mode_flag(jump: Optional[bool]) -> Optional[str]:
    if jump is None:
        return None
    return Mode.DEFINITION.value if jump else Mode.COMPLETION.value


def resolve_config(
    *,
    files: List[Path],
    command: List[str],
    language: Optional[str],
    workspace: Optional[List[Path]],
    jump: Optional[bool],
    output_format: Optional[str],
    timeout: Optional[float],
    on_error: Optional[str],
    verbose: Optional[bool],
    config_path: Optional[Path],
) -> BenchConfig:
    defaults = defaults_payload(bench_defaults(config_path=config_path))
    payload = merge_payload(
        {
            "files": list(files),
            "command": list(command),
            "language": language,
            "workspace_folders": list(workspace) if workspace else None,
            "mode": _mode_flag(jump),
            "format": output_format,
            "request_timeout": timeout,
            "on_error": on_error,
            "verbose": verbose,
        },
        defaults,
    )
    return build_config(payload)


@app.command()
def bench(
    ctx: typer.Context,
    files: List[Path] = typer.Argument(None, help="Source files to replay edits from."),
    language: Optional[str] = typer.Option(None, "--language", help="Language id for opened documents."),
    workspace: Optional[List[Path]] = typer.Option(None, "--workspace", help="Workspace folder (repeatable)."),
    jump: Optional[bool] = typer.Option(None, "--jump/--no-jump", help="Request jump-to-def instead of completions."),
    output_format: Optional[str] = typer.Option(None, "--format", help="human or csv."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-request timeout in seconds; 0 waits forever."),
    on_error: Optional[str] = typer.Option(None, "--on-error", help="skip or abort on a failed request."),
    verbose: Optional[bool] = typer.Option(None, "--verbose/--quiet", help="Echo server log messages to stderr."),
    config: Optional[Path] = typer.Option(None, "--config", help="Config file (default: ./lsp-bench.toml)."),
) -> None:
    """Start a language server and hammer it with requests based on FILES.

    The server command follows a literal '--'.
    """
    invocation = ctx.obj if isinstance(ctx.obj, Invocation) else Invocation()
    try:
        bench_config = resolve_config(
            files=files or [],
            command=invocation.command,
            language=language,
            workspace=workspace,
            jump=jump,
            output_format=output_format,
            timeout=timeout,
            on_error=on_error,
            verbose=verbose,
            config_path=config,
        )
        reporter: Reporter = make_reporter(bench_config.format)
    except ConfigError as exc:
        _fail(exc)
    try:
        asyncio.run(invocation.runner(bench_config, reporter, warn=_warn))
    except LspBenchError as exc:
        _fail(exc)


def main(argv: Optional[List[str]] = None) -> None:
    args = list(sys.argv[1:] if argv is None else argv)
    if "--" not in args:
        if _HELP_FLAGS.intersection(args):
            app(args=args, prog_name="lsp-bench")
            return
        typer.secho("Missing '--' before the language server command", err=True, fg=typer.colors.RED)
        typer.echo(USAGE, err=True)
        raise SystemExit(1)
    options, command = split_server_command(args)
    app(args=options, obj=Invocation(command=command), prog_name="lsp-bench")


if __name__ == "__main__":  # pragma: no cover
    main()  # pragma: no cover
