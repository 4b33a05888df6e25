"""
Binary encoding of Update records and the length-prefixed stream framing.

Record layout is Borsh: little-endian fixed-width integers, u32 length prefix
on vectors and byte strings, one byte per bool, raw 32-byte hashes/pubkeys.
Every record on the wire is preceded by a u32 LE payload length.
"""

import asyncio
import struct
from typing import List, Tuple

from bankhash.types import (
    HASH_BYTES,
    U64_MAX,
    AccountDeltaProof,
    AccountInfo,
    BankHashProof,
    Proof,
    Update,
)
from config.config import MAX_FRAME_BYTES
from errors.exceptions import DecodingError, FrameError

FRAME_HEADER = struct.Struct("<I")


# ─────────────────────────────── encoding ────────────────────────────────
def _u32(value: int) -> bytes:
    if not 0 <= value <= 0xFFFFFFFF:
        raise ValueError(f"{value} does not fit a u32")
    return struct.pack("<I", value)

def _u64(value: int) -> bytes:
    if not 0 <= value <= U64_MAX:
        raise ValueError(f"{value} does not fit a u64")
    return struct.pack("<Q", value)

def _bytes(value: bytes) -> bytes:
    return _u32(len(value)) + value

def _fixed(value: bytes) -> bytes:
    if len(value) != HASH_BYTES:
        raise ValueError(f"expected {HASH_BYTES} bytes, got {len(value)}")
    return value


def _encode_account(account: AccountInfo) -> bytes:
    return b"".join([
        _fixed(account.pubkey),
        _u64(account.lamports),
        _fixed(account.owner),
        b"\x01" if account.executable else b"\x00",
        _u64(account.rent_epoch),
        _bytes(account.data),
        _u64(account.write_version),
        _u64(account.slot),
    ])


def _encode_proof(proof: Proof) -> bytes:
    out = [_u32(len(proof.path))]
    out.extend(_u64(index) for index in proof.path)
    out.append(_u32(len(proof.siblings)))
    for group in proof.siblings:
        out.append(_u32(len(group)))
        out.extend(_fixed(h) for h in group)
    return b"".join(out)


def _encode_account_proof(item: AccountDeltaProof) -> bytes:
    return b"".join([
        _fixed(item.pubkey),
        _fixed(item.account.pubkey),
        _fixed(item.hash),
        _encode_account(item.account),
        _encode_proof(item.proof),
    ])


def encode_update(update: Update) -> bytes:
    """Borsh bytes of ``update``; raises ValueError if a field does not fit its wire type"""
    bundle = update.proof
    out = [_u64(update.slot), _fixed(update.root), _u32(len(bundle.proofs))]
    out.extend(_encode_account_proof(item) for item in bundle.proofs)
    out.extend([
        _u64(bundle.num_sigs),
        _fixed(bundle.account_delta_root),
        _fixed(bundle.parent_bankhash),
        _fixed(bundle.blockhash),
    ])
    return b"".join(out)


# ─────────────────────────────── decoding ────────────────────────────────
def _take(raw: bytes, offset: int, size: int) -> Tuple[bytes, int]:
    end = offset + size
    if end > len(raw):
        raise DecodingError(f"unexpected end of record at offset {offset} (+{size})")
    return raw[offset:end], end

def _read_u8(raw: bytes, offset: int) -> Tuple[int, int]:
    chunk, offset = _take(raw, offset, 1)
    return chunk[0], offset

def _read_u32(raw: bytes, offset: int) -> Tuple[int, int]:
    chunk, offset = _take(raw, offset, 4)
    return struct.unpack("<I", chunk)[0], offset

def _read_u64(raw: bytes, offset: int) -> Tuple[int, int]:
    chunk, offset = _take(raw, offset, 8)
    return struct.unpack("<Q", chunk)[0], offset

def _read_hash(raw: bytes, offset: int) -> Tuple[bytes, int]:
    return _take(raw, offset, HASH_BYTES)

def _read_bool(raw: bytes, offset: int) -> Tuple[bool, int]:
    value, offset = _read_u8(raw, offset)
    if value > 1:
        raise DecodingError(f"invalid bool byte {value} at offset {offset - 1}")
    return value == 1, offset


def _read_account(raw: bytes, offset: int) -> Tuple[AccountInfo, int]:
    pubkey, offset = _read_hash(raw, offset)
    lamports, offset = _read_u64(raw, offset)
    owner, offset = _read_hash(raw, offset)
    executable, offset = _read_bool(raw, offset)
    rent_epoch, offset = _read_u64(raw, offset)
    data_len, offset = _read_u32(raw, offset)
    data, offset = _take(raw, offset, data_len)
    write_version, offset = _read_u64(raw, offset)
    slot, offset = _read_u64(raw, offset)
    return AccountInfo(
        pubkey=pubkey,
        lamports=lamports,
        owner=owner,
        executable=executable,
        rent_epoch=rent_epoch,
        data=data,
        write_version=write_version,
        slot=slot,
    ), offset


def _read_proof(raw: bytes, offset: int) -> Tuple[Proof, int]:
    path_len, offset = _read_u32(raw, offset)
    path: List[int] = []
    for _ in range(path_len):
        index, offset = _read_u64(raw, offset)
        path.append(index)
    levels, offset = _read_u32(raw, offset)
    siblings: List[List[bytes]] = []
    for _ in range(levels):
        count, offset = _read_u32(raw, offset)
        group = []
        for _ in range(count):
            h, offset = _read_hash(raw, offset)
            group.append(h)
        siblings.append(group)
    return Proof(path=path, siblings=siblings), offset


def _read_account_proof(raw: bytes, offset: int) -> Tuple[AccountDeltaProof, int]:
    pubkey, offset = _read_hash(raw, offset)
    data_pubkey, offset = _read_hash(raw, offset)
    leaf_hash, offset = _read_hash(raw, offset)
    account, offset = _read_account(raw, offset)
    proof, offset = _read_proof(raw, offset)
    if data_pubkey != pubkey:
        raise DecodingError("account proof pubkey does not match its data pubkey")
    return AccountDeltaProof(pubkey=pubkey, hash=leaf_hash, account=account, proof=proof), offset


def decode_update(raw: bytes) -> Update:
    slot, offset = _read_u64(raw, 0)
    root, offset = _read_hash(raw, offset)
    count, offset = _read_u32(raw, offset)
    proofs = []
    for _ in range(count):
        item, offset = _read_account_proof(raw, offset)
        proofs.append(item)
    num_sigs, offset = _read_u64(raw, offset)
    delta_root, offset = _read_hash(raw, offset)
    parent_bankhash, offset = _read_hash(raw, offset)
    blockhash, offset = _read_hash(raw, offset)
    if offset != len(raw):
        raise DecodingError(f"{len(raw) - offset} trailing bytes after update record")
    return Update(
        slot=slot,
        root=root,
        proof=BankHashProof(
            proofs=proofs,
            num_sigs=num_sigs,
            account_delta_root=delta_root,
            parent_bankhash=parent_bankhash,
            blockhash=blockhash,
        ),
    )


# ─────────────────────────────── framing ─────────────────────────────────
def encode_frame(payload: bytes, max_bytes: int = MAX_FRAME_BYTES) -> bytes:
    if len(payload) > max_bytes:
        raise FrameError(f"frame of {len(payload)} bytes exceeds limit {max_bytes}")
    return FRAME_HEADER.pack(len(payload)) + payload


async def read_frame(reader: asyncio.StreamReader, max_bytes: int = MAX_FRAME_BYTES):
    """
    Read one length-prefixed frame.

    Returns None on a clean EOF before the header; raises FrameError if the
    stream ends mid-frame or the header announces more than ``max_bytes``.
    """
    try:
        header = await reader.readexactly(FRAME_HEADER.size)
    except asyncio.IncompleteReadError as e:
        if not e.partial:
            return None
        raise FrameError("stream closed inside frame header") from e

    (length,) = FRAME_HEADER.unpack(header)
    if length > max_bytes:
        raise FrameError(f"frame of {length} bytes exceeds limit {max_bytes}")
    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise FrameError(
            f"stream closed after {len(e.partial)} of {length} frame bytes"
        ) from e
