"""Line consumption and throughput accounting.

``LineProcessor.process`` drains a line source into a sink. The source hands
out two streams, one of lines and one of errors, and the processor waits on
whichever produces next:

- a line is written to the sink followed by a single ``\\n``
- the line stream closing ends the transfer successfully
- an ``EndOfStream`` error ends it successfully as well
- any other error ends it with that error; written lines stay in the sink
- the error stream closing without an error is not a termination condition

When a line and an error are both ready, the line is written first.
"""

from __future__ import annotations

import asyncio
import sys
import time
from dataclasses import dataclass
from typing import IO, TYPE_CHECKING, Protocol

from loguru import logger

from linecast.domain.streaming.signal_stream import SignalStream, StreamClosed
from linecast.utils.app_errors import EndOfStream, FileIOError

if TYPE_CHECKING:
    from loguru import Logger


class LineSource(Protocol):
    def receive_lines(self) -> tuple[SignalStream[str], SignalStream[BaseException]]: ...


@dataclass
class TransferStats:
    line_count: int
    elapsed: float
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def lines_per_second(self) -> float:
        if self.elapsed <= 0:
            return 0.0
        return self.line_count / self.elapsed


def open_sink(sink_path: str) -> tuple[IO[str], bool]:
    """Resolve the output sink.

    Returns:
        (sink, owned): ``owned`` is True when the caller must close the sink

    Raises:
        FileIOError: If the file cannot be created
    """
    if not sink_path:
        return sys.stdout, False
    try:
        return open(sink_path, "w", encoding="utf-8", newline="\n"), True
    except OSError as exc:
        raise FileIOError(f"failed to create output file {sink_path}: {exc}") from exc


class LineProcessor:
    def __init__(self, log: Logger = logger) -> None:
        self._log = log.bind(component="processor")

    async def process(self, source: LineSource, sink_path: str) -> TransferStats:
        """Consume every line from ``source`` into ``sink_path`` (stdout when empty).

        Returns:
            TransferStats with the number of lines written, the elapsed time
            and the terminating error, if any
        """
        start = time.monotonic()

        try:
            sink, owned = open_sink(sink_path)
        except FileIOError as exc:
            self._log.error("Failed to create output file: {}", exc)
            return TransferStats(line_count=0, elapsed=time.monotonic() - start, error=exc)

        if owned:
            self._log.info("Writing output to file: {}", sink_path)
        else:
            self._log.info("Writing output to stdout")

        line_count = 0
        error: BaseException | None = None
        try:
            line_count, error = await self._run(source, sink, flush_each=not owned)
        finally:
            if owned:
                try:
                    sink.close()
                except OSError as exc:
                    if error is None:
                        error = FileIOError(f"failed to close output file {sink_path}: {exc}")

        stats = TransferStats(line_count=line_count, elapsed=time.monotonic() - start, error=error)
        if stats.ok:
            self._log.info(
                "Received {} lines in {:.3f}s ({:.2f} lines/sec)",
                stats.line_count,
                stats.elapsed,
                stats.lines_per_second,
            )
        else:
            self._log.error("Error receiving line {}: {}", stats.line_count + 1, stats.error)
        return stats

    async def _run(
        self,
        source: LineSource,
        sink: IO[str],
        *,
        flush_each: bool,
    ) -> tuple[int, BaseException | None]:
        lines, errors = source.receive_lines()
        line_count = 0
        line_task: asyncio.Future[str] | None = None
        error_task: asyncio.Future[BaseException] | None = None
        errors_open = True

        try:
            while True:
                if line_task is None:
                    line_task = asyncio.ensure_future(lines.receive())
                if error_task is None and errors_open:
                    error_task = asyncio.ensure_future(errors.receive())

                waiting = {task for task in (line_task, error_task) if task is not None}
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)

                # an error must not overtake lines that were already queued
                if line_task not in done and lines.pending:
                    await asyncio.wait({line_task})
                    done = {line_task}

                if line_task in done:
                    task, line_task = line_task, None
                    try:
                        line = task.result()
                    except StreamClosed:
                        return line_count, None

                    try:
                        sink.write(line + "\n")
                        if flush_each:
                            sink.flush()
                    except OSError as exc:
                        self._log.error("Failed to write to output: {}", exc)
                        return line_count, FileIOError(
                            f"failed to write line {line_count + 1}: {exc}"
                        )

                    line_count += 1
                    self._log.debug("Received line {}: {}", line_count, line)
                    continue

                if error_task is not None and error_task in done:
                    task, error_task = error_task, None
                    try:
                        err = task.result()
                    except StreamClosed:
                        errors_open = False
                        continue

                    if isinstance(err, EndOfStream):
                        return line_count, None
                    return line_count, err
        finally:
            for task in (line_task, error_task):
                if task is None:
                    continue
                if not task.done():
                    task.cancel()
                elif not task.cancelled():
                    # retrieve it so asyncio does not report it as unhandled
                    task.exception()
