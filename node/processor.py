"""
Single consumer of the ingress queue: owns all slot state, finalizes
confirmed slots and hands updates to the broadcaster.
"""

import asyncio
import time
from typing import List, Optional, Sequence

from bankhash.types import (
    AccountInfo,
    BlockInfo,
    SlotInfo,
    SlotStatus,
    TransactionInfo,
    Update,
    VoteInfo,
)
from errors.exceptions import DecodingError, SlotDataMissingError, SlotError, SlotNotApplicableError
from events.broadcast import UpdateBroadcaster
from log_utils import get_logger
from monitoring import metrics
from node.ingest import IngestQueue
from proof.finalizer import finalize_slot
from state.accumulator import BlockStore, SlotAccumulator

logger = get_logger(__name__)


class SlotProcessor:
    def __init__(
        self,
        queue: IngestQueue,
        broadcaster: UpdateBroadcaster,
        pubkeys_for_proofs: Sequence[bytes],
        max_inflight_slots: int = 256,
    ):
        self.queue = queue
        self.broadcaster = broadcaster
        self.pubkeys_for_proofs: List[bytes] = list(pubkeys_for_proofs)
        self.max_inflight_slots = max_inflight_slots
        self.accumulator = SlotAccumulator()
        self.blocks = BlockStore()
        self.highest_processed_slot: Optional[int] = None
        self.running = False
        self.processor_task = None
        self.stats = {
            'finalized': 0,
            'skipped': 0,
            'failed': 0,
            'pruned': 0,
        }

    async def start(self):
        if not self.running:
            self.running = True
            self.processor_task = asyncio.create_task(self._process_events())
            logger.info("SlotProcessor started")

    async def stop(self):
        self.running = False
        if self.processor_task:
            self.processor_task.cancel()
            try:
                await self.processor_task
            except asyncio.CancelledError:
                pass
            self.processor_task = None
            logger.info("SlotProcessor stopped")

    async def _process_events(self):
        while self.running:
            message = await self.queue.get()
            try:
                self.process_message(message)
            except Exception as e:
                logger.exception(f"Error processing {type(message).__name__}: {e}")
            finally:
                self.queue.task_done()

    def process_message(self, message) -> Optional[Update]:
        """Apply one event; returns the Update when a slot was finalized"""
        if isinstance(message, AccountInfo):
            self.accumulator.add_account(message)
        elif isinstance(message, TransactionInfo):
            self.accumulator.add_transaction(message)
        elif isinstance(message, VoteInfo):
            self.accumulator.add_vote(message)
        elif isinstance(message, BlockInfo):
            self.blocks.add(message)
        elif isinstance(message, SlotInfo):
            return self.handle_slot_status(message.slot, message.status)
        else:
            logger.warning(f"Ignoring unknown message type {type(message).__name__}")
        return None

    def handle_slot_status(self, slot: int, status: Optional[SlotStatus]) -> Optional[Update]:
        if status == SlotStatus.PROCESSED:
            self.handle_processed_slot(slot)
        elif status == SlotStatus.CONFIRMED:
            return self.handle_confirmed_slot(slot)
        return None

    def handle_processed_slot(self, slot: int):
        self.accumulator.mark_processed(slot)
        if self.highest_processed_slot is None or slot > self.highest_processed_slot:
            self.highest_processed_slot = slot
            self._prune()
        self._record_stage_sizes()

    def handle_confirmed_slot(self, slot: int) -> Optional[Update]:
        slot_log = logger.with_context(slot=slot)
        start_time = time.perf_counter()
        try:
            update = finalize_slot(slot, self.accumulator, self.blocks, self.pubkeys_for_proofs)
        except SlotNotApplicableError as e:
            self.stats['skipped'] += 1
            metrics.slots_skipped.labels(reason="not_applicable").inc()
            slot_log.debug(e.message)
            return None
        except SlotDataMissingError as e:
            self.stats['failed'] += 1
            metrics.slots_failed.labels(reason="missing_" + e.missing.replace(" ", "_").lower()).inc()
            slot_log.error(e.message)
            return None
        except (SlotError, DecodingError) as e:
            self.stats['failed'] += 1
            metrics.slots_failed.labels(reason=e.code.lower()).inc()
            slot_log.error(f"Failed to finalize slot: {e.message}")
            return None
        finally:
            metrics.finalize_seconds.observe(time.perf_counter() - start_time)
            self._record_stage_sizes()

        self.stats['finalized'] += 1
        metrics.slots_finalized.inc()
        self.broadcaster.publish(update)
        metrics.updates_published.inc()
        return update

    def _prune(self):
        if self.max_inflight_slots <= 0 or self.highest_processed_slot is None:
            return
        horizon = self.highest_processed_slot - self.max_inflight_slots
        if horizon <= 0:
            return
        pruned = self.accumulator.prune(horizon) + self.blocks.prune(horizon)
        if pruned:
            self.stats['pruned'] += pruned
            metrics.slots_pruned.inc(pruned)
            logger.warning(f"Pruned {pruned} stale slot entries older than slot {horizon}")

    def _record_stage_sizes(self):
        for stage, count in self.accumulator.stats().items():
            metrics.tracked_slots.labels(stage=stage).set(count)
        metrics.tracked_slots.labels(stage="blocks").set(len(self.blocks))
