import asyncio
from typing import AsyncIterator, Optional

from bankhash.codec import decode_update, read_frame
from bankhash.types import Update
from config.config import MAX_FRAME_BYTES
from errors.exceptions import TransportError
from log_utils import get_logger

logger = get_logger(__name__)


class UpdateClient:
    """Reads length-prefixed Update records from a proof node"""

    def __init__(self, host: str = "127.0.0.1", port: int = 10000, max_frame_bytes: int = MAX_FRAME_BYTES):
        self.host = host
        self.port = port
        self.max_frame_bytes = max_frame_bytes
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None

    async def connect(self, timeout: float = 10.0):
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"unable to connect to {self.host}:{self.port}: {e}") from e
        logger.info(f"Connected to proof node at {self.host}:{self.port}")

    async def close(self):
        if self.writer:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError):
                pass
            self.writer = None
            self.reader = None

    async def recv(self) -> Optional[Update]:
        """Next update, or None once the node closes the connection"""
        if self.reader is None:
            raise TransportError("not connected")
        payload = await read_frame(self.reader, self.max_frame_bytes)
        if payload is None:
            return None
        return decode_update(payload)

    async def updates(self) -> AsyncIterator[Update]:
        while True:
            update = await self.recv()
            if update is None:
                logger.info("Proof node closed the connection")
                return
            yield update

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, *exc):
        await self.close()
        return False
