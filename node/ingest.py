"""
Ingestion boundary: the callbacks a host binding drives, and the bounded
queue that hands events to the slot processor.
"""

import asyncio
from typing import Optional, Union

from bankhash.types import (
    AccountInfo,
    BlockInfo,
    EndOfStartup,
    SlotInfo,
    SlotStatus,
    TransactionInfo,
    VoteInfo,
)
from errors.exceptions import BackpressureError
from log_utils import get_logger
from monitoring import metrics

logger = get_logger(__name__)

IngestMessage = Union[AccountInfo, TransactionInfo, VoteInfo, BlockInfo, SlotInfo]

BACKPRESSURE_POLICIES = ("block", "drop_oldest", "reject")

STARTUP_END_OF_RECEIVED = 1 << 0
STARTUP_PROCESSED_RECEIVED = 1 << 1
STARTUP_READY = STARTUP_END_OF_RECEIVED | STARTUP_PROCESSED_RECEIVED


class IngestQueue:
    """
    Bounded queue between the host binding and the slot processor.

    Policies when full:
        block: the producer waits for space
        drop_oldest: the oldest queued event is discarded
        reject: BackpressureError is raised to the producer
    """

    def __init__(self, maxsize: int = 100000, policy: str = "block"):
        if policy not in BACKPRESSURE_POLICIES:
            raise ValueError(f"Unknown backpressure policy {policy!r}")
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.policy = policy
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    async def put(self, message: IngestMessage):
        if self.policy == "block":
            await self.queue.put(message)
        elif self.policy == "drop_oldest":
            while True:
                try:
                    self.queue.put_nowait(message)
                    break
                except asyncio.QueueFull:
                    self.queue.get_nowait()
                    self.queue.task_done()
                    self.dropped += 1
                    metrics.ingress_dropped.labels(policy=self.policy).inc()
        else:
            try:
                self.queue.put_nowait(message)
            except asyncio.QueueFull:
                self.dropped += 1
                metrics.ingress_dropped.labels(policy=self.policy).inc()
                raise BackpressureError(f"Ingress queue full ({self.queue.maxsize} events)")
        metrics.ingress_queue_depth.set(self.queue.qsize())

    async def get(self) -> IngestMessage:
        message = await self.queue.get()
        metrics.ingress_queue_depth.set(self.queue.qsize())
        return message

    def task_done(self):
        self.queue.task_done()

    async def join(self):
        await self.queue.join()

    def qsize(self) -> int:
        return self.queue.qsize()


class IngestionAdapter:
    """
    Host-facing callbacks. A concrete binding (plugin bridge, message queue
    consumer, JSON-lines socket) calls these; they only enqueue.

    Until the host has signalled end of startup and then reported a Processed
    slot, events describe snapshot replay rather than live blocks and are
    dropped.
    """

    def __init__(self, queue: IngestQueue, require_startup: bool = True):
        self.queue = queue
        self.startup_status = 0 if require_startup else STARTUP_READY

    @property
    def ready(self) -> bool:
        return self.startup_status == STARTUP_READY

    async def _send(self, kind: str, message):
        if not self.ready:
            return
        await self.queue.put(message)
        metrics.ingress_events.labels(kind=kind).inc()

    def notify_end_of_startup(self):
        self.startup_status |= STARTUP_END_OF_RECEIVED
        logger.info("Host reported end of startup")

    async def update_account(self, account: AccountInfo):
        await self._send("account", account)

    async def notify_transaction(self, txn: TransactionInfo, vote: Optional[VoteInfo] = None):
        """A transaction's signature count, plus its decoded vote if it was a vote"""
        if vote is not None:
            await self._send("vote", vote)
        await self._send("transaction", txn)

    async def notify_vote(self, vote: VoteInfo):
        await self._send("vote", vote)

    async def notify_block_metadata(self, block: BlockInfo):
        await self._send("block", block)

    async def update_slot_status(self, slot: int, status: Optional[SlotStatus]):
        if self.startup_status == STARTUP_END_OF_RECEIVED and status == SlotStatus.PROCESSED:
            self.startup_status |= STARTUP_PROCESSED_RECEIVED
            logger.info(f"First processed slot {slot} after startup, accepting events")
        await self._send("slot", SlotInfo(slot=slot, status=status))

    async def handle(self, message):
        """Route an already-built message to the matching callback"""
        if isinstance(message, AccountInfo):
            await self.update_account(message)
        elif isinstance(message, TransactionInfo):
            await self.notify_transaction(message)
        elif isinstance(message, VoteInfo):
            await self.notify_vote(message)
        elif isinstance(message, BlockInfo):
            await self.notify_block_metadata(message)
        elif isinstance(message, SlotInfo):
            await self.update_slot_status(message.slot, message.status)
        elif isinstance(message, EndOfStartup):
            self.notify_end_of_startup()
        else:
            raise TypeError(f"Unsupported ingest message {type(message).__name__}")
