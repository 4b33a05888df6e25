"""
SlotHashes sysvar: the slot-ancestry account written in every slot
"""

import struct
from typing import List, Tuple

from bankhash.hashing import pubkey_from_str
from bankhash.types import HASH_BYTES
from errors.exceptions import DecodingError

SLOT_HASHES_ACCOUNT = "SysvarS1otHashes111111111111111111111111111"
SLOT_HASHES_PUBKEY = pubkey_from_str(SLOT_HASHES_ACCOUNT)
MAX_SLOT_HASH_ENTRIES = 512

_ENTRY = struct.Struct("<Q32s")


def decode_slot_hashes(data: bytes) -> List[Tuple[int, bytes]]:
    """bincode Vec<(Slot, Hash)>, newest first; trailing padding is ignored"""
    if len(data) < 8:
        raise DecodingError(f"SlotHashes data too short: {len(data)} bytes")
    (count,) = struct.unpack_from("<Q", data, 0)
    if count > MAX_SLOT_HASH_ENTRIES:
        raise DecodingError(f"SlotHashes declares {count} entries, limit is {MAX_SLOT_HASH_ENTRIES}")
    needed = 8 + count * _ENTRY.size
    if needed > len(data):
        raise DecodingError(
            f"SlotHashes declares {count} entries but only {len(data)} bytes present"
        )
    return [
        _ENTRY.unpack_from(data, 8 + i * _ENTRY.size)
        for i in range(count)
    ]


def encode_slot_hashes(entries: List[Tuple[int, bytes]]) -> bytes:
    out = bytearray(struct.pack("<Q", len(entries)))
    for slot, slot_hash in entries:
        if len(slot_hash) != HASH_BYTES:
            raise ValueError("slot hash must be 32 bytes")
        out += _ENTRY.pack(slot, slot_hash)
    return bytes(out)
