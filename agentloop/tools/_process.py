"""Subprocess helper for tools that shell out."""

import asyncio
import contextlib
from dataclasses import dataclass

from agentloop.logging import get_logger

log = get_logger(__name__)


@dataclass
class ProcessOutput:
    stdout: str
    stderr: str
    exit_code: int


class ProcessTimeoutError(Exception):
    """The process did not finish within its timeout."""


class ProcessAbortedError(Exception):
    """The abort event fired while the process was running."""


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        process.kill()
        await process.wait()


async def run_process(
    program: str,
    args: list[str],
    *,
    cwd: str | None = None,
    timeout: float = 30.0,
    abort_event: asyncio.Event | None = None,
) -> ProcessOutput:
    """Run a program directly (no shell), honouring a timeout and an abort event.

    Raises:
        FileNotFoundError if the program does not exist
        ProcessTimeoutError / ProcessAbortedError
    """
    if abort_event is not None and abort_event.is_set():
        raise ProcessAbortedError("Command aborted")

    process = await asyncio.create_subprocess_exec(
        program,
        *args,
        cwd=cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    communicate_task = asyncio.create_task(process.communicate())
    abort_wait_task: asyncio.Task[bool] | None = None
    if abort_event is not None:
        abort_wait_task = asyncio.create_task(abort_event.wait())
    try:
        wait_tasks: set[asyncio.Task] = {communicate_task}
        if abort_wait_task is not None:
            wait_tasks.add(abort_wait_task)
        done, _ = await asyncio.wait(
            wait_tasks,
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )

        if communicate_task not in done:
            await _kill(process)
            communicate_task.cancel()
            try:
                await communicate_task
            except asyncio.CancelledError:
                pass
            if abort_wait_task is not None and abort_wait_task in done:
                raise ProcessAbortedError("Command aborted")
            label = int(timeout) if float(timeout).is_integer() else timeout
            raise ProcessTimeoutError(f"command timed out after {label}s")

        stdout, stderr = await communicate_task
    except asyncio.CancelledError:
        await _kill(process)
        communicate_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await communicate_task
        raise
    finally:
        if abort_wait_task is not None and not abort_wait_task.done():
            abort_wait_task.cancel()
            try:
                await abort_wait_task
            except asyncio.CancelledError:
                pass

    log.debug("Process finished", program=program, exit_code=process.returncode)
    return ProcessOutput(
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        exit_code=process.returncode if process.returncode is not None else -1,
    )
