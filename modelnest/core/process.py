"""Process runner for the external build toolchain.

Output is forwarded line by line while the child runs; stdout and stderr are
drained concurrently so neither pipe can fill up and stall the child.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Protocol, Sequence

from modelnest.core.exceptions import ProcessLaunchError, ProcessTimeoutError
from modelnest.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class OutputLine:
    """A single line of child output."""

    text: str
    is_error: bool = False


LineSink = Callable[[OutputLine], Awaitable[None] | None]


class ProcessRunnerProtocol(Protocol):
    """Anything that can run a command and report its exit code."""

    async def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        sink: LineSink,
        stdin: str | None = None,
        cwd: str | Path | None = None,
        timeout: float | None = None,
    ) -> int: ...


async def _emit(sink: LineSink, line: OutputLine) -> None:
    result = sink(line)
    if asyncio.iscoroutine(result):
        await result


# Bytes read from a pipe at a time
READ_CHUNK_SIZE = 64 * 1024

# Longer lines are forwarded in pieces of this many bytes
MAX_LINE_BYTES = 64 * 1024


async def _emit_text(sink: LineSink, raw: bytes, is_error: bool) -> None:
    text = raw.decode("utf-8", errors="replace").rstrip("\r\n")
    if text.strip():
        await _emit(sink, OutputLine(text=text, is_error=is_error))


async def _pump(
    reader: asyncio.StreamReader, is_error: bool, sink: LineSink
) -> None:
    buffer = bytearray()
    while True:
        chunk = await reader.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        buffer.extend(chunk)
        while True:
            end = buffer.find(b"\n")
            if end == -1:
                if len(buffer) < MAX_LINE_BYTES:
                    break
                end = MAX_LINE_BYTES - 1
            raw = bytes(buffer[: end + 1])
            del buffer[: end + 1]
            await _emit_text(sink, raw, is_error)
    if buffer:
        await _emit_text(sink, bytes(buffer), is_error)


class ProcessRunner:
    """Runs toolchain commands as child processes."""

    def __init__(self, env: dict[str, str] | None = None):
        self.env = env

    async def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        sink: LineSink,
        stdin: str | None = None,
        cwd: str | Path | None = None,
        timeout: float | None = None,
    ) -> int:
        """Run a command, forwarding each output line to ``sink``.

        Args:
            command: Executable name or path
            args: Arguments passed to the executable
            sink: Called with every non-blank line, in order per stream
            stdin: Text written to the child's stdin before it is closed
            cwd: Working directory for the child
            timeout: Seconds before the child is killed

        Returns:
            The child's exit code

        Raises:
            ProcessLaunchError: If the executable cannot be started
            ProcessTimeoutError: If the child outlives ``timeout``
        """
        logger.info(
            "process.starting",
            command=command,
            args=list(args),
            cwd=str(cwd) if cwd else None,
            stdin=stdin is not None,
        )

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=str(cwd) if cwd else None,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
            )
        except OSError as e:
            raise ProcessLaunchError(command, e.strerror or str(e)) from e

        async def communicate() -> int:
            if stdin is not None and process.stdin is not None:
                try:
                    process.stdin.write(stdin.encode("utf-8"))
                    await process.stdin.drain()
                except (BrokenPipeError, ConnectionResetError):
                    # Child exited without reading; its exit code tells the story
                    pass
                finally:
                    process.stdin.close()

            await asyncio.gather(
                _pump(process.stdout, False, sink),
                _pump(process.stderr, True, sink),
            )
            return await process.wait()

        try:
            returncode = await asyncio.wait_for(communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ProcessTimeoutError(command, timeout or 0) from None
        except BaseException:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        logger.info("process.finished", command=command, returncode=returncode)
        return returncode

    async def stream(
        self,
        command: str,
        args: Sequence[str],
        *,
        stdin: str | None = None,
        cwd: str | Path | None = None,
        timeout: float | None = None,
    ) -> "ProcessOutput":
        """Start a command and return its output as a lazy sequence."""
        output = ProcessOutput()
        output.task = asyncio.create_task(
            self.run(
                command,
                args,
                sink=output.queue.put_nowait,
                stdin=stdin,
                cwd=cwd,
                timeout=timeout,
            )
        )
        output.task.add_done_callback(lambda _: output.queue.put_nowait(None))
        return output


class ProcessOutput:
    """Tagged output lines of a running command plus its exit code.

    Iterate to receive lines as they arrive; ``await output.returncode()``
    afterwards (or instead) for the exit status.
    """

    def __init__(self) -> None:
        self.queue: asyncio.Queue[OutputLine | None] = asyncio.Queue()
        self.task: asyncio.Task[int] | None = None

    def __aiter__(self) -> AsyncIterator[OutputLine]:
        return self._lines()

    async def _lines(self) -> AsyncIterator[OutputLine]:
        while True:
            line = await self.queue.get()
            if line is None:
                return
            yield line

    async def returncode(self) -> int:
        if self.task is None:
            raise RuntimeError("Process output has no running command")
        return await self.task
