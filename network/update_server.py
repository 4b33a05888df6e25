import asyncio
from asyncio import StreamReader, StreamWriter
from typing import Optional

from bankhash.codec import encode_frame, encode_update
from errors.exceptions import FrameError
from events.broadcast import SubscriberLagged, SubscriptionClosed, UpdateBroadcaster
from log_utils import get_logger
from monitoring import metrics

logger = get_logger(__name__)


def split_address(address: str):
    host, _, port = address.rpartition(":")
    if not host or not port.isdigit():
        raise ValueError(f"Invalid address {address!r}, expected host:port")
    return host, int(port)


class UpdateServer:
    """Streams every published update to each connected subscriber as length-prefixed frames"""

    def __init__(self, broadcaster: UpdateBroadcaster):
        self.broadcaster = broadcaster
        self.server = None
        self.server_task = None
        self.connections = set()
        self._last_frame = None

    async def start_server(self, host="127.0.0.1", port=10000):
        self.server = await asyncio.start_server(self.handle_subscriber, host, port)
        self.server_task = asyncio.create_task(self.server.serve_forever())
        sockets = self.server.sockets or []
        bound = sockets[0].getsockname() if sockets else (host, port)
        logger.info(f"Update server listening on {bound[0]}:{bound[1]}")
        return bound

    async def stop(self):
        if self.server:
            self.server.close()
        tasks = list(self.connections)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self.server:
            await self.server.wait_closed()
        if self.server_task:
            self.server_task.cancel()
            try:
                await self.server_task
            except asyncio.CancelledError:
                pass
        logger.info("Update server stopped")

    def frame_for(self, update) -> Optional[bytes]:
        """
        Encode ``update`` once and reuse the frame for every subscriber.

        Returns None for an update that does not fit the wire format; it is
        skipped on every connection instead of closing them.
        """
        if self._last_frame is not None and self._last_frame[0] is update:
            return self._last_frame[1]
        try:
            frame = encode_frame(encode_update(update))
        except (ValueError, FrameError) as e:
            metrics.updates_unencodable.inc()
            logger.with_context(slot=update.slot).error(f"Skipping update that cannot be encoded: {e}")
            frame = None
        self._last_frame = (update, frame)
        return frame

    async def handle_subscriber(self, reader: StreamReader, writer: StreamWriter):
        peer = writer.get_extra_info('peername')
        conn_log = logger.with_context(subscriber=str(peer))
        conn_log.info("Subscriber connected")
        metrics.subscribers_connected.inc()
        task = asyncio.current_task()
        self.connections.add(task)

        subscription = self.broadcaster.subscribe()
        try:
            while True:
                try:
                    update = await subscription.recv()
                except SubscriberLagged as e:
                    metrics.subscriber_lagged.inc(e.skipped)
                    conn_log.warning(f"Subscriber fell behind, skipped {e.skipped} updates")
                    continue
                except SubscriptionClosed:
                    break
                frame = self.frame_for(update)
                if frame is None:
                    continue
                writer.write(frame)
                await writer.drain()
        except (ConnectionError, OSError) as e:
            conn_log.info(f"Subscriber disconnected: {e}")
        except asyncio.CancelledError:
            pass
        except Exception as e:
            conn_log.exception(f"Error serving subscriber: {e}")
        finally:
            subscription.close()
            self.connections.discard(task)
            metrics.subscribers_connected.dec()
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass
            conn_log.info("Subscriber connection closed")
