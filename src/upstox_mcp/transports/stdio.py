"""
Line-delimited JSON-RPC over stdin/stdout.

Each non-blank input line is one envelope. Lines are dispatched concurrently
and every response is written as a single line, so responses may come back
in a different order than the requests arrived.
"""

import asyncio
import json
import logging
import sys
from typing import Callable, Optional

from ..dispatcher import Dispatcher
from ..protocol import PARSE_ERROR, error_response

logger = logging.getLogger(__name__)

# Upper bound on a single input line
STDIO_LINE_LIMIT = 1024 * 1024


def _write_stdout(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


class StdioTransport:
    """Reads envelopes from a stream and writes one response line per envelope."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        reader: asyncio.StreamReader,
        write: Optional[Callable[[str], None]] = None,
    ):
        self.dispatcher = dispatcher
        self.reader = reader
        self._write = write or _write_stdout
        self._pending: set[asyncio.Task] = set()

    def _emit(self, response: dict) -> None:
        self._write(json.dumps(response) + "\n")

    async def _respond(self, line: bytes) -> None:
        response = await self.dispatcher.handle_raw(line)
        try:
            self._emit(response)
        except OSError as e:
            logger.error(f"Failed to write stdio response: {e}")

    async def _read_line(self) -> Optional[bytes]:
        """
        Read one newline-terminated line.

        Returns b"" at end of input, or None when the line exceeded the
        reader limit and was discarded up to and including its newline.
        """
        try:
            return await self.reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            return e.partial
        except asyncio.LimitOverrunError as e:
            consumed = e.consumed

        # The oversized line may still be arriving; drop it chunk by chunk
        while True:
            await self.reader.readexactly(consumed)
            try:
                await self.reader.readuntil(b"\n")
                return None
            except asyncio.IncompleteReadError:
                return None
            except asyncio.LimitOverrunError as e:
                consumed = e.consumed

    async def run(self) -> None:
        """
        Serve until end of input.

        In-flight dispatches are awaited before returning so that every
        request read gets its response.
        """
        logger.info("Stdio transport started")
        while True:
            line = await self._read_line()
            if line is None:
                logger.warning("Discarding oversized stdio line")
                self._emit(error_response(None, PARSE_ERROR, "Parse error: line too long").to_dict())
                continue
            if not line:
                break
            if not line.strip():
                continue
            task = asyncio.create_task(self._respond(line))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        logger.info("Stdio input closed")


async def open_stdin_reader(limit: int = STDIO_LINE_LIMIT) -> asyncio.StreamReader:
    """Wrap the process stdin in an asyncio StreamReader."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=limit)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    return reader


async def serve_stdio(dispatcher: Dispatcher) -> None:
    """Run the stdio transport against the process stdin/stdout."""
    reader = await open_stdin_reader()
    await StdioTransport(dispatcher, reader).run()
