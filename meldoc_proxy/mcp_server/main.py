"""stdio entry point: newline-delimited JSON-RPC in, one response line out."""

import asyncio
import logging
import os
import signal
import stat
import sys
from typing import BinaryIO

from meldoc_proxy.core.logging import setup_logging
from meldoc_proxy.mcp_server.config import Config
from meldoc_proxy.mcp_server.dispatcher import Dispatcher
from meldoc_proxy.mcp_server.protocol import OutputClosedError, ResponseWriter
from meldoc_proxy.models.config import ProxySettings

logger = logging.getLogger(__name__)

# Largest accepted input line (documents travel inline)
STDIN_LIMIT = 16 * 1024 * 1024


class FileLineReader:
    """Line reader for stdin redirected from a regular file.

    Pipe transports refuse regular files, so lines are read in a worker
    thread instead.
    """

    def __init__(self, file: BinaryIO, limit: int = STDIN_LIMIT):
        self.file = file
        self.limit = limit

    async def readline(self) -> bytes:
        line = await asyncio.to_thread(self.file.readline)
        if len(line) > self.limit:
            raise ValueError(f"Line is longer than {self.limit} bytes")
        return line


async def open_stdin_reader(
    stdin: BinaryIO | None = None,
) -> asyncio.StreamReader | FileLineReader:
    stdin = stdin if stdin is not None else sys.stdin.buffer
    if stat.S_ISREG(os.fstat(stdin.fileno()).st_mode):
        logger.debug("stdin is a regular file")
        return FileLineReader(stdin)

    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=STDIN_LIMIT)
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, stdin)
    return reader


class StdioServer:
    """Reads lines and handles each one in its own task.

    Responses are written from the event loop thread, one whole line per
    message, so concurrent requests never interleave on stdout.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        writer: ResponseWriter,
        drain_timeout: float,
    ):
        self.dispatcher = dispatcher
        self.writer = writer
        self.drain_timeout = drain_timeout
        self.tasks: set[asyncio.Task] = set()
        self.stopping = asyncio.Event()
        self.output_closed = False

    def stop(self) -> None:
        if not self.stopping.is_set():
            logger.info("Shutting down")
        self.stopping.set()

    async def handle(self, line: bytes) -> None:
        try:
            for response in await self.dispatcher.handle_line(line):
                self.writer.write(response)
        except OutputClosedError:
            if not self.output_closed:
                logger.info("stdout closed by client")
            self.output_closed = True
            self.stop()

    def spawn(self, line: bytes) -> asyncio.Task:
        task = asyncio.create_task(self.handle(line))
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    async def read_lines(self, reader: asyncio.StreamReader | FileLineReader) -> None:
        while not self.stopping.is_set():
            try:
                line = await reader.readline()
            except ValueError:
                logger.error(f"Dropping input line longer than {STDIN_LIMIT} bytes")
                continue
            if not line:
                logger.info("stdin closed")
                return
            self.spawn(line)

    async def drain(self) -> None:
        """Wait for in-flight requests, cancelling any still running at the deadline."""
        if not self.tasks:
            return
        logger.debug(f"Waiting for {len(self.tasks)} in-flight request(s)")
        _, pending = await asyncio.wait(set(self.tasks), timeout=self.drain_timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Abandoned {len(pending)} request(s) at shutdown")
            await asyncio.gather(*pending, return_exceptions=True)

    async def run(self, reader: asyncio.StreamReader | FileLineReader) -> None:
        read_task = asyncio.create_task(self.read_lines(reader))
        stop_task = asyncio.create_task(self.stopping.wait())
        try:
            await asyncio.wait(
                {read_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            read_task.cancel()
            stop_task.cancel()
        await self.drain()


async def main(settings: ProxySettings | None = None) -> None:
    """Main entry point for the proxy."""
    config = Config(settings)
    logger.info(f"Starting Meldoc MCP proxy for {config.api_url}")

    server = StdioServer(
        Dispatcher.create(config),
        ResponseWriter(),
        drain_timeout=config.request_timeout,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, server.stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops
            pass

    await server.run(await open_stdin_reader())

    if server.output_closed:
        # Keep the interpreter from failing on its final stdout flush
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())


def cli_main():
    """Synchronous entry point for script generation."""
    settings = ProxySettings()
    setup_logging(settings.log_level)
    try:
        asyncio.run(main(settings))
    except KeyboardInterrupt:
        pass
    sys.exit(0)


if __name__ == "__main__":
    cli_main()
