"""Paced line-by-line file streaming.

The streamer reads a UTF-8 text file and sends each line as one message,
strictly in file order, sleeping ``delay_ms`` after every send. The sleep
only suspends the streaming task.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from typing import IO, TYPE_CHECKING, Protocol

from loguru import logger

from linecast.utils.app_errors import AppError, FileIOError, TransportError

if TYPE_CHECKING:
    from loguru import Logger


class LineSender(Protocol):
    def send_text(self, text: str) -> None: ...


def iter_lines(handle: IO[bytes]) -> Iterator[bytes]:
    """Yield raw lines without their terminators.

    A line ends at ``b"\\n"``; a trailing ``b"\\r"`` is dropped as well. A final
    line without a newline is still yielded. Decoding is left to the caller so
    a bad byte only affects the line that holds it.
    """
    for raw in handle:
        line = raw[:-1] if raw.endswith(b"\n") else raw
        if line.endswith(b"\r"):
            line = line[:-1]
        yield line


class FileStreamer:
    """Streams one file over one channel.

    ``lines_sent`` tracks progress while streaming, so callers can report how
    far a failed stream got.
    """

    def __init__(self, log: Logger = logger) -> None:
        self._log = log.bind(component="streamer")
        self.lines_sent = 0

    async def stream(self, channel: LineSender, path: str, delay_ms: int) -> int:
        """Send every line of ``path`` over ``channel``.

        Args:
            channel: Open channel to send on
            path: Text file to stream
            delay_ms: Pause after each line, in milliseconds

        Returns:
            Number of lines sent

        Raises:
            FileIOError: If the file cannot be opened or read. The channel is
                left untouched for the caller to close.
            TransportError: If a send fails. Lines already sent stay sent.
        """
        if delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got {delay_ms}")

        try:
            handle = open(path, "rb")
        except OSError as exc:
            self._log.error("Failed to open file: {}", exc)
            raise FileIOError(f"failed to open {path}: {exc}") from exc

        delay = delay_ms / 1000
        line_count = 0
        self.lines_sent = 0

        with handle:
            lines = iter_lines(handle)
            while True:
                try:
                    raw = next(lines)
                except StopIteration:
                    break
                except OSError as exc:
                    self._log.error("Error reading file after line {}: {}", line_count, exc)
                    raise FileIOError(
                        f"failed reading {path} after line {line_count}: {exc}"
                    ) from exc

                line_count += 1
                try:
                    line = raw.decode("utf-8")
                except UnicodeDecodeError as exc:
                    self._log.error("Line {} is not valid UTF-8: {}", line_count, exc)
                    raise FileIOError(
                        f"failed reading {path} at line {line_count}: {exc}"
                    ) from exc

                try:
                    channel.send_text(line)
                except AppError as exc:
                    self._log.error("Failed to send line {}: {}", line_count, exc)
                    raise
                except Exception as exc:
                    self._log.error("Failed to send line {}: {}", line_count, exc)
                    raise TransportError(f"failed to send line {line_count}: {exc}") from exc

                self.lines_sent = line_count
                self._log.debug("Sent line {}: {}", line_count, line)

                await asyncio.sleep(delay)

        self._log.info("Finished streaming file, sent {} lines", line_count)
        return line_count
