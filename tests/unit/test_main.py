"""
Unit tests for the stdio read loop.
"""

import asyncio
import io
import json
from unittest.mock import MagicMock

import pytest

from meldoc_proxy.mcp_server.main import FileLineReader, StdioServer, open_stdin_reader
from meldoc_proxy.mcp_server.protocol import OutputClosedError, ResponseWriter


def feed(reader: asyncio.StreamReader, *lines: bytes, eof=True) -> None:
    for data in lines:
        reader.feed_data(data)
    if eof:
        reader.feed_eof()


class EchoDispatcher:
    """Answers every line with its id after an optional per-id delay."""

    def __init__(self, delays=None):
        self.delays = delays or {}
        self.lines: list[bytes] = []

    async def handle_line(self, line):
        self.lines.append(line)
        message = json.loads(line)
        await asyncio.sleep(self.delays.get(message["id"], 0))
        return [{"jsonrpc": "2.0", "id": message["id"], "result": {}}]


def output_ids(stream: io.BytesIO) -> list:
    return [json.loads(raw)["id"] for raw in stream.getvalue().splitlines()]


class TestStdioServer:
    """Test reading, concurrency and shutdown."""

    def setup_method(self):
        self.stream = io.BytesIO()

    @pytest.mark.asyncio
    async def test_eof_waits_for_in_flight_requests(self):
        dispatcher = EchoDispatcher(delays={1: 0.05})
        server = StdioServer(dispatcher, ResponseWriter(self.stream), drain_timeout=5)
        reader = asyncio.StreamReader()
        feed(reader, b'{"id": 1}\n', b'{"id": 2}\n')

        await server.run(reader)

        assert sorted(output_ids(self.stream)) == [1, 2]

    @pytest.mark.asyncio
    async def test_slow_request_does_not_block_others(self):
        dispatcher = EchoDispatcher(delays={1: 0.1})
        server = StdioServer(dispatcher, ResponseWriter(self.stream), drain_timeout=5)
        reader = asyncio.StreamReader()
        feed(reader, b'{"id": 1}\n', b'{"id": 2}\n')

        await server.run(reader)

        assert output_ids(self.stream) == [2, 1]

    @pytest.mark.asyncio
    async def test_trailing_line_without_newline(self):
        dispatcher = EchoDispatcher()
        server = StdioServer(dispatcher, ResponseWriter(self.stream), drain_timeout=5)
        reader = asyncio.StreamReader()
        feed(reader, b'{"id": 1}\n{"id": 2}')

        await server.run(reader)

        assert sorted(output_ids(self.stream)) == [1, 2]

    @pytest.mark.asyncio
    async def test_stop_ends_reading(self):
        dispatcher = EchoDispatcher()
        server = StdioServer(dispatcher, ResponseWriter(self.stream), drain_timeout=5)
        reader = asyncio.StreamReader()
        feed(reader, b'{"id": 1}\n', eof=False)

        run_task = asyncio.create_task(server.run(reader))
        await asyncio.sleep(0.01)
        server.stop()
        await asyncio.wait_for(run_task, timeout=1)

        assert output_ids(self.stream) == [1]

    @pytest.mark.asyncio
    async def test_drain_timeout_cancels_stuck_requests(self):
        dispatcher = EchoDispatcher(delays={1: 10})
        server = StdioServer(dispatcher, ResponseWriter(self.stream), drain_timeout=0.05)
        reader = asyncio.StreamReader()
        feed(reader, b'{"id": 1}\n')

        await asyncio.wait_for(server.run(reader), timeout=1)

        assert self.stream.getvalue() == b""
        assert server.tasks == set()

    @pytest.mark.asyncio
    async def test_closed_output_stops_server(self):
        writer = MagicMock()
        writer.write.side_effect = OutputClosedError("stdout closed")
        server = StdioServer(EchoDispatcher(), writer, drain_timeout=5)
        reader = asyncio.StreamReader()
        feed(reader, b'{"id": 1}\n', eof=False)

        await asyncio.wait_for(server.run(reader), timeout=1)

        assert server.output_closed is True
        assert server.stopping.is_set()


class TestFileStdin:
    """Test stdin redirected from a regular file."""

    def setup_method(self):
        self.stream = io.BytesIO()

    @pytest.mark.asyncio
    async def test_regular_file_is_read_line_by_line(self, tmp_path):
        requests = tmp_path / "requests.jsonl"
        requests.write_bytes(b'{"id": 1}\n{"id": 2}\n')
        server = StdioServer(
            EchoDispatcher(), ResponseWriter(self.stream), drain_timeout=5
        )

        with requests.open("rb") as stdin:
            reader = await open_stdin_reader(stdin)
            assert isinstance(reader, FileLineReader)
            await asyncio.wait_for(server.run(reader), timeout=5)

        assert sorted(output_ids(self.stream)) == [1, 2]

    @pytest.mark.asyncio
    async def test_overlong_line_is_dropped(self, tmp_path):
        requests = tmp_path / "requests.jsonl"
        requests.write_bytes(b'{"id": 1, "padding": "xxxxxxxxxxxxxxxx"}\n{"id": 2}\n')
        dispatcher = EchoDispatcher()
        server = StdioServer(dispatcher, ResponseWriter(self.stream), drain_timeout=5)

        with requests.open("rb") as stdin:
            await asyncio.wait_for(server.run(FileLineReader(stdin, limit=20)), timeout=5)

        assert output_ids(self.stream) == [2]
        assert dispatcher.lines == [b'{"id": 2}\n']
