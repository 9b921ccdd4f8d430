"""Route a subprocess's output streams to a logger, one line at a time.

Each attached stream gets its own reader task.  The task ends when the stream
reaches EOF (the process exited and the pipe drained), and is returned so the
owner can await it before declaring the process fully stopped.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from kmirror.logger import logger

LineSink = Callable[[str], Any]


async def _read_lines(stream: asyncio.StreamReader, log: LineSink) -> int:
    count = 0
    skipping = False
    while True:
        eof = False
        try:
            raw = await stream.readuntil(b"\n")
        except asyncio.LimitOverrunError as exc:
            # Longer than the reader limit: discard what is buffered and keep
            # discarding until the line's newline (or EOF) arrives
            await stream.read(exc.consumed)
            skipping = True
            continue
        except asyncio.IncompleteReadError as exc:
            raw, eof = exc.partial, True

        if skipping:
            skipping = False
            logger.warning("Dropped over-long output line")
        elif raw:
            line = raw.decode(errors="replace").rstrip("\r\n")
            try:
                log(line)
            except Exception as exc:
                logger.error(
                    "Log sink failed",
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
            else:
                count += 1
        if eof:
            return count


def attach_stream(stream: asyncio.StreamReader, log: LineSink) -> asyncio.Task[int]:
    """Start reading ``stream`` in the background, calling ``log(line)`` per line.

    Returns the reader task; its result is the number of lines delivered.
    """
    return asyncio.ensure_future(_read_lines(stream, log))


def attach_process_streams(
    proc: asyncio.subprocess.Process,
    log: Any,
) -> tuple[asyncio.Task[int], asyncio.Task[int]]:
    """Attach stderr -> ``log.warning`` and stdout -> ``log.debug``.

    Returns (stderr_task, stdout_task).  Raises ValueError if the process was
    not spawned with both pipes.
    """
    if proc.stderr is None or proc.stdout is None:
        raise ValueError("process was started without stdout/stderr pipes")
    return attach_stream(proc.stderr, log.warning), attach_stream(proc.stdout, log.debug)
