import asyncio
import json
from asyncio import StreamReader, StreamWriter

from pydantic import ValidationError

from config.config import MAX_INGEST_LINE_BYTES
from errors.exceptions import BackpressureError, DecodingError
from log_utils import get_logger
from models.events import parse_event
from node.ingest import IngestionAdapter

logger = get_logger(__name__)


class IngestServer:
    """
    JSON-lines host binding: each line is one ledger event, forwarded to the
    ingestion adapter in arrival order.
    """

    def __init__(self, adapter: IngestionAdapter):
        self.adapter = adapter
        self.server = None
        self.server_task = None
        self.stats = {
            'received': 0,
            'invalid': 0,
            'rejected': 0,
        }

    async def start_server(self, host="127.0.0.1", port=10001):
        self.server = await asyncio.start_server(
            self.handle_client, host, port, limit=MAX_INGEST_LINE_BYTES
        )
        self.server_task = asyncio.create_task(self.server.serve_forever())
        sockets = self.server.sockets or []
        bound = sockets[0].getsockname() if sockets else (host, port)
        logger.info(f"Ingest server listening on {bound[0]}:{bound[1]}")
        return bound

    async def stop(self):
        if self.server:
            self.server.close()
            await self.server.wait_closed()
        if self.server_task:
            self.server_task.cancel()
            try:
                await self.server_task
            except asyncio.CancelledError:
                pass

    async def handle_line(self, line: bytes):
        line = line.strip()
        if not line:
            return
        self.stats['received'] += 1
        try:
            message = parse_event(line)
        except (ValidationError, DecodingError, json.JSONDecodeError) as e:
            self.stats['invalid'] += 1
            logger.warning(f"Invalid ingest event: {e}")
            return
        try:
            await self.adapter.handle(message)
        except BackpressureError as e:
            self.stats['rejected'] += 1
            logger.warning(f"Dropped {type(message).__name__}: {e.message}")

    async def handle_client(self, reader: StreamReader, writer: StreamWriter):
        peer = writer.get_extra_info('peername')
        conn_log = logger.with_context(peer=str(peer))
        conn_log.info("Ingest source connected")
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                await self.handle_line(line)
        except (ConnectionError, asyncio.LimitOverrunError, ValueError) as e:
            conn_log.warning(f"Ingest connection error: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass
            conn_log.info("Ingest source disconnected")
