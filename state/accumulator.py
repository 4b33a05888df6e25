import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from bankhash.hashing import hash_account_info
from bankhash.types import AccountInfo, BlockInfo, TransactionInfo, VoteInfo

logger = logging.getLogger(__name__)

# pubkey -> (write_version, content hash, record)
AccountTable = Dict[bytes, Tuple[int, bytes, AccountInfo]]
VoteTable = Dict[bytes, VoteInfo]


@dataclass
class SlotSnapshot:
    """Processed-stage data for one slot, handed to finalization"""
    slot: int
    accounts: Optional[AccountTable]
    num_sigs: Optional[int]
    votes: Optional[VoteTable]


@dataclass
class _Stage:
    accounts: Dict[int, AccountTable] = field(default_factory=dict)
    num_sigs: Dict[int, int] = field(default_factory=dict)
    votes: Dict[int, VoteTable] = field(default_factory=dict)

    def slots(self):
        return set(self.accounts) | set(self.num_sigs) | set(self.votes)

    def pop(self, slot: int):
        return (
            self.accounts.pop(slot, None),
            self.num_sigs.pop(slot, None),
            self.votes.pop(slot, None),
        )


class SlotAccumulator:
    """
    Per-slot account hashes, signature counts and votes in two stages.

    Events land in the raw stage. A Processed status moves the slot's raw
    entries into the processed stage in one step; finalization reads the
    processed stage and purges it. The accumulator is owned by a single
    consumer and is not safe for concurrent use.
    """

    def __init__(self):
        self.raw = _Stage()
        self.processed = _Stage()

    def add_account(self, account: AccountInfo) -> bool:
        """
        Record an account write in the raw stage.

        Returns:
            bool: True if the write replaced the stored entry. A write only
            replaces an entry with a strictly lower write version, so the
            first of two same-version writes wins.
        """
        table = self.raw.accounts.setdefault(account.slot, {})
        current = table.get(account.pubkey)
        if current is not None and account.write_version <= current[0]:
            return False
        table[account.pubkey] = (account.write_version, hash_account_info(account), account)
        return True

    def add_transaction(self, txn: TransactionInfo):
        self.raw.num_sigs[txn.slot] = self.raw.num_sigs.get(txn.slot, 0) + txn.num_sigs

    def add_vote(self, vote: VoteInfo):
        self.raw.votes.setdefault(vote.slot, {})[vote.signature] = vote

    def mark_processed(self, slot: int) -> bool:
        """Move a slot from raw to processed. A slot with no raw data is a no-op."""
        accounts, num_sigs, votes = self.raw.pop(slot)
        moved = False
        if accounts is not None:
            self.processed.accounts[slot] = accounts
            moved = True
        if num_sigs is not None:
            self.processed.num_sigs[slot] = num_sigs
            moved = True
        if votes is not None:
            self.processed.votes[slot] = votes
            moved = True
        if moved:
            logger.debug(f"Slot {slot} moved to processed stage")
        return moved

    def processed_snapshot(self, slot: int) -> SlotSnapshot:
        return SlotSnapshot(
            slot=slot,
            accounts=self.processed.accounts.get(slot),
            num_sigs=self.processed.num_sigs.get(slot),
            votes=self.processed.votes.get(slot),
        )

    def purge_slot(self, slot: int):
        """Drop all processed-stage state for a slot"""
        self.processed.pop(slot)

    def prune(self, before_slot: int) -> int:
        """Drop raw and processed entries for slots older than ``before_slot``"""
        stale = {s for s in self.raw.slots() | self.processed.slots() if s < before_slot}
        for slot in stale:
            self.raw.pop(slot)
            self.processed.pop(slot)
        return len(stale)

    def stats(self) -> Dict[str, int]:
        return {
            "raw": len(self.raw.slots()),
            "processed": len(self.processed.slots()),
        }


class BlockStore:
    """Block metadata keyed by slot; no staging"""

    def __init__(self):
        self.blocks: Dict[int, BlockInfo] = {}

    def add(self, block: BlockInfo):
        if block.slot in self.blocks:
            logger.warning(f"Duplicate block metadata for slot {block.slot}, keeping the first")
            return
        self.blocks[block.slot] = block

    def get(self, slot: int) -> Optional[BlockInfo]:
        return self.blocks.get(slot)

    def remove(self, slot: int):
        self.blocks.pop(slot, None)

    def prune(self, before_slot: int) -> int:
        stale = [slot for slot in self.blocks if slot < before_slot]
        for slot in stale:
            del self.blocks[slot]
        return len(stale)

    def __len__(self):
        return len(self.blocks)
