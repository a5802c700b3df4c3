"""Language server child process with terminate-on-drop semantics."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from lspbench.exceptions import ServerLaunchError

EXIT_GRACE_SECONDS = 2.0


@asynccontextmanager
async def spawn_server(
    command: list[str],
    *,
    exit_grace: float = EXIT_GRACE_SECONDS,
) -> AsyncIterator[asyncio.subprocess.Process]:
    """Start ``command`` with piped stdin/stdout and inherited stderr.

    On normal exit the server gets ``exit_grace`` seconds to stop on its own
    before it is terminated; if the body raises, it is terminated at once.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            command[0],
            *command[1:],
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=None,
        )
    except OSError as exc:
        raise ServerLaunchError(f"Cannot start language server {command[0]!r}: {exc}") from exc
    try:
        yield process
    except BaseException:
        await stop_process(process, grace=0.0)
        raise
    await stop_process(process, grace=exit_grace)


async def stop_process(process: asyncio.subprocess.Process, *, grace: float) -> int:
    if process.returncode is not None:
        return process.returncode
    if grace > 0:
        try:
            return await asyncio.wait_for(process.wait(), grace)
        except asyncio.TimeoutError:
            pass
    with contextlib.suppress(ProcessLookupError):
        process.terminate()
    try:
        return await asyncio.wait_for(process.wait(), EXIT_GRACE_SECONDS)
    except asyncio.TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        return await process.wait()
