"""
Ledger event records and the proof artifacts built from them
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import base58

HASH_BYTES = 32
PUBKEY_BYTES = 32
ZERO_HASH = bytes(HASH_BYTES)
U64_MAX = 2 ** 64 - 1


class SlotStatus(Enum):
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    ROOTED = "rooted"
    FIRST_SHRED_RECEIVED = "first_shred_received"
    COMPLETED = "completed"
    CREATED_BANK = "created_bank"
    DEAD = "dead"

    @classmethod
    def parse(cls, value: str) -> Optional["SlotStatus"]:
        """Map a host status name to a SlotStatus; unknown names return None"""
        try:
            return cls(value.lower())
        except ValueError:
            return None


@dataclass
class AccountInfo:
    pubkey: bytes
    lamports: int
    owner: bytes
    executable: bool
    rent_epoch: int
    data: bytes
    write_version: int
    slot: int

    def __repr__(self) -> str:
        return (
            f"AccountInfo(pubkey={base58.b58encode(self.pubkey).decode()}, "
            f"lamports={self.lamports}, slot={self.slot}, "
            f"write_version={self.write_version}, data_len={len(self.data)})"
        )


@dataclass
class TransactionInfo:
    slot: int
    num_sigs: int


@dataclass
class VoteInfo:
    slot: int
    signature: bytes
    vote_for_slot: int
    vote_for_hash: bytes
    message: bytes


@dataclass
class BlockInfo:
    slot: int
    parent_bankhash: str
    blockhash: str
    executed_transaction_count: int


@dataclass
class SlotInfo:
    slot: int
    status: Optional[SlotStatus]


@dataclass
class EndOfStartup:
    """Host finished replaying its snapshot"""


@dataclass
class Proof:
    """
    Inclusion path from a leaf to the Merkle root.

    Level ``i`` hashes the group ``siblings[i]`` with the running hash
    inserted at position ``path[i]``.
    """
    path: List[int] = field(default_factory=list)
    siblings: List[List[bytes]] = field(default_factory=list)

    def levels(self):
        return zip(self.path, self.siblings)


@dataclass
class AccountDeltaProof:
    pubkey: bytes
    hash: bytes
    account: AccountInfo
    proof: Proof


@dataclass
class BankHashProof:
    proofs: List[AccountDeltaProof]
    num_sigs: int
    account_delta_root: bytes
    parent_bankhash: bytes
    blockhash: bytes


@dataclass
class Update:
    slot: int
    root: bytes
    proof: BankHashProof


@dataclass
class AccountSnapshot:
    """Account state obtained outside the proof stream, e.g. from RPC"""
    lamports: int
    owner: bytes
    executable: bool
    rent_epoch: int
    data: bytes
