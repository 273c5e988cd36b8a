"""Tests for FileStreamer line emission."""

import time
from pathlib import Path

import pytest

from linecast.domain.streaming.file_streamer import FileStreamer
from linecast.utils.app_errors import FileIOError, TransportError


class RecordingSender:
    """Records every line, optionally failing from a given send onwards."""

    def __init__(self, fail_on: int | None = None, error: Exception | None = None):
        self.lines: list[str] = []
        self.fail_on = fail_on
        self.error = error or TransportError("send failed")

    def send_text(self, text: str) -> None:
        if self.fail_on is not None and len(self.lines) + 1 >= self.fail_on:
            raise self.error
        self.lines.append(text)


@pytest.fixture
def sample_file(tmp_path: Path) -> Path:
    path = tmp_path / "sample.txt"
    path.write_text(
        "Line 1\nLine 2\nLine 3\nThis is a longer line with some special characters: !@#$%^&*()\n",
        encoding="utf-8",
    )
    return path


class TestStream:
    @pytest.mark.asyncio
    async def test_sends_every_line_in_order(self, sample_file: Path):
        sender = RecordingSender()

        sent = await FileStreamer().stream(sender, str(sample_file), 1)

        assert sent == 4
        assert sender.lines == [
            "Line 1",
            "Line 2",
            "Line 3",
            "This is a longer line with some special characters: !@#$%^&*()",
        ]

    @pytest.mark.asyncio
    async def test_strips_carriage_returns(self, tmp_path: Path):
        """Test CRLF files produce the same lines as LF files."""
        path = tmp_path / "crlf.txt"
        path.write_bytes(b"first\r\nsecond\r\n")
        sender = RecordingSender()

        await FileStreamer().stream(sender, str(path), 0)

        assert sender.lines == ["first", "second"]

    @pytest.mark.asyncio
    async def test_final_line_without_newline_is_sent(self, tmp_path: Path):
        path = tmp_path / "partial.txt"
        path.write_text("one\ntwo", encoding="utf-8")
        sender = RecordingSender()

        sent = await FileStreamer().stream(sender, str(path), 0)

        assert sent == 2
        assert sender.lines == ["one", "two"]

    @pytest.mark.asyncio
    async def test_empty_lines_are_preserved(self, tmp_path: Path):
        path = tmp_path / "blank.txt"
        path.write_text("a\n\nb\n", encoding="utf-8")
        sender = RecordingSender()

        await FileStreamer().stream(sender, str(path), 0)

        assert sender.lines == ["a", "", "b"]

    @pytest.mark.asyncio
    async def test_empty_file_sends_nothing(self, tmp_path: Path):
        path = tmp_path / "empty.txt"
        path.write_text("", encoding="utf-8")
        sender = RecordingSender()

        assert await FileStreamer().stream(sender, str(path), 0) == 0
        assert sender.lines == []

    @pytest.mark.asyncio
    async def test_pacing_delay_between_lines(self, tmp_path: Path):
        """Test N lines with delay d take at least (N-1) * d."""
        path = tmp_path / "paced.txt"
        path.write_text("a\nb\nc\n", encoding="utf-8")

        start = time.monotonic()
        await FileStreamer().stream(RecordingSender(), str(path), 20)
        elapsed = time.monotonic() - start

        assert elapsed >= 0.04


class TestFailures:
    @pytest.mark.asyncio
    async def test_missing_file_raises_file_io_error(self, tmp_path: Path):
        sender = RecordingSender()

        with pytest.raises(FileIOError, match="failed to open"):
            await FileStreamer().stream(sender, str(tmp_path / "missing.txt"), 0)

        assert sender.lines == []

    @pytest.mark.asyncio
    async def test_send_failure_stops_immediately(self, sample_file: Path):
        """Test a failing send raises and nothing after it is attempted."""
        sender = RecordingSender(fail_on=3)
        streamer = FileStreamer()

        with pytest.raises(TransportError):
            await streamer.stream(sender, str(sample_file), 0)

        assert sender.lines == ["Line 1", "Line 2"]
        assert streamer.lines_sent == 2

    @pytest.mark.asyncio
    async def test_unexpected_send_error_wrapped_as_transport_error(self, sample_file: Path):
        sender = RecordingSender(fail_on=1, error=ConnectionResetError("reset by peer"))

        with pytest.raises(TransportError, match="failed to send line 1"):
            await FileStreamer().stream(sender, str(sample_file), 0)

    @pytest.mark.asyncio
    async def test_decode_failure_names_the_line(self, tmp_path: Path):
        """Test invalid UTF-8 raises FileIOError distinct from send errors."""
        path = tmp_path / "binary.txt"
        path.write_bytes(b"ok\n" + b"\xff\xfe\xfa" * 4000 + b"\n")
        sender = RecordingSender()

        with pytest.raises(FileIOError, match="at line 2"):
            await FileStreamer().stream(sender, str(path), 0)

        assert sender.lines == ["ok"]

    @pytest.mark.asyncio
    async def test_lines_before_bad_byte_are_sent(self, tmp_path: Path):
        """Test a bad byte on line 4 still lets lines 1-3 through."""
        path = tmp_path / "mixed.txt"
        path.write_bytes(b"Line 1\nLine 2\nLine 3\n\xff bad\nLine 5\n")
        sender = RecordingSender()
        streamer = FileStreamer()

        with pytest.raises(FileIOError, match="at line 4"):
            await streamer.stream(sender, str(path), 0)

        assert sender.lines == ["Line 1", "Line 2", "Line 3"]
        assert streamer.lines_sent == 3

    @pytest.mark.asyncio
    async def test_multibyte_characters_survive(self, tmp_path: Path):
        path = tmp_path / "utf8.txt"
        path.write_text("héllo\r\nwörld ✓\n", encoding="utf-8")
        sender = RecordingSender()

        await FileStreamer().stream(sender, str(path), 0)

        assert sender.lines == ["héllo", "wörld ✓"]

    @pytest.mark.asyncio
    async def test_negative_delay_rejected(self, sample_file: Path):
        with pytest.raises(ValueError):
            await FileStreamer().stream(RecordingSender(), str(sample_file), -1)
