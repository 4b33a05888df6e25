import hashlib
import struct
from typing import Iterable, Union

import base58
import blake3

from bankhash.types import HASH_BYTES, PUBKEY_BYTES, U64_MAX, ZERO_HASH
from errors.exceptions import DecodingError


def hashv(parts: Iterable[bytes]) -> bytes:
    """SHA-256 over the concatenation of ``parts``"""
    hasher = hashlib.sha256()
    for part in parts:
        hasher.update(part)
    return hasher.digest()


def hash_solana_account(
    lamports: int,
    owner: bytes,
    executable: bool,
    rent_epoch: int,
    data: bytes,
    pubkey: bytes,
) -> bytes:
    """
    Content hash of one account as stored in the accounts database.

    Args:
        lamports: Account balance
        owner: 32-byte owner program id
        executable: Executable flag
        rent_epoch: Next epoch rent is due
        data: Raw account data
        pubkey: 32-byte account address

    Returns:
        bytes: 32-byte BLAKE3 digest; deleted (zero-lamport) accounts hash to
        all zeros.

    Raises:
        DecodingError: lamports or rent_epoch does not fit a u64
    """
    for name, value in (("lamports", lamports), ("rent_epoch", rent_epoch)):
        if not 0 <= value <= U64_MAX:
            raise DecodingError(f"account {name} {value} outside u64 range")
    if lamports == 0:
        return ZERO_HASH

    hasher = blake3.blake3()
    hasher.update(struct.pack("<Q", lamports))
    hasher.update(struct.pack("<Q", rent_epoch))
    hasher.update(data)
    hasher.update(b"\x01" if executable else b"\x00")
    hasher.update(owner)
    hasher.update(pubkey)
    return hasher.digest()


def hash_account_info(account) -> bytes:
    return hash_solana_account(
        account.lamports,
        account.owner,
        account.executable,
        account.rent_epoch,
        account.data,
        account.pubkey,
    )


def compute_bank_hash(
    parent_bankhash: bytes,
    accounts_delta_hash: bytes,
    num_sigs: int,
    blockhash: bytes,
) -> bytes:
    """parent ‖ accounts delta ‖ signature count (u64 LE) ‖ blockhash, SHA-256"""
    return hashv([
        parent_bankhash,
        accounts_delta_hash,
        struct.pack("<Q", num_sigs),
        blockhash,
    ])


def encode_base58(value: bytes) -> str:
    return base58.b58encode(value).decode()


def _decode_fixed(value: Union[str, bytes], size: int, kind: str) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        try:
            raw = base58.b58decode(value)
        except ValueError as e:
            raise DecodingError(f"Invalid {kind} {value!r}: {e}") from e
    if len(raw) != size:
        raise DecodingError(f"Invalid {kind} {value!r}: expected {size} bytes, got {len(raw)}")
    return raw


def pubkey_from_str(value: Union[str, bytes]) -> bytes:
    return _decode_fixed(value, PUBKEY_BYTES, "pubkey")


def hash_from_str(value: Union[str, bytes]) -> bytes:
    return _decode_fixed(value, HASH_BYTES, "hash")
