# tests/conftest.py
"""
Shared fixtures for the test suite.

Key design points
─────────────────
1.  Make project-root importable so `from bankhash.merkle import …` works no
    matter where pytest is launched.
2.  Provide factories for account writes and a well-formed SlotHashes
    account, since every finalized slot needs one.
3.  Hand each test a fresh accumulator / block store pair.
"""

from __future__ import annotations
import asyncio
import base64
import json
import pathlib
import sys

import base58
import pytest

# ─────────────────────────────────────────────────────────────────────────────
#  Ensure the repo root is on sys.path
# ─────────────────────────────────────────────────────────────────────────────
ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from bankhash.sysvar import SLOT_HASHES_PUBKEY, encode_slot_hashes
from bankhash.types import AccountInfo, BlockInfo, SlotInfo, SlotStatus, TransactionInfo
from proof.finalizer import finalize_slot
from state.accumulator import BlockStore, SlotAccumulator

MONITORED = bytes([7] * 32)
OTHER = bytes([200] * 32)
OWNER = bytes([3] * 32)
PARENT_HASH = bytes([0x11] * 32)
BLOCK_HASH = bytes([0x22] * 32)


def b58(raw: bytes) -> str:
    return base58.b58encode(raw).decode()


# ───────────────────────────── factories ─────────────────────────────────────
@pytest.fixture
def make_account():
    def _make(pubkey=MONITORED, slot=100, write_version=1, lamports=1_000,
              data=b"state", owner=OWNER, executable=False, rent_epoch=0):
        return AccountInfo(
            pubkey=pubkey,
            lamports=lamports,
            owner=owner,
            executable=executable,
            rent_epoch=rent_epoch,
            data=data,
            write_version=write_version,
            slot=slot,
        )
    return _make


@pytest.fixture
def slot_hashes_account(make_account):
    def _make(slot=100, write_version=1, data=None):
        if data is None:
            data = encode_slot_hashes([(slot - 1, bytes([9] * 32)), (slot - 2, bytes([8] * 32))])
        return make_account(
            pubkey=SLOT_HASHES_PUBKEY,
            slot=slot,
            write_version=write_version,
            lamports=143_487_360,
            data=data,
            owner=base58.b58decode("Sysvar1111111111111111111111111111111111111"),
        )
    return _make


@pytest.fixture
def block_info():
    def _make(slot=100, parent=PARENT_HASH, blockhash=BLOCK_HASH, tx_count=5):
        return BlockInfo(
            slot=slot,
            parent_bankhash=b58(parent) if isinstance(parent, bytes) else parent,
            blockhash=b58(blockhash) if isinstance(blockhash, bytes) else blockhash,
            executed_transaction_count=tx_count,
        )
    return _make


@pytest.fixture
def slot_events(make_account, slot_hashes_account, block_info):
    """Everything a slot needs to finalize, in arrival order"""
    def _make(slot=100, num_sigs=5, accounts=None):
        if accounts is None:
            accounts = [make_account(slot=slot)]
        return [
            *accounts,
            slot_hashes_account(slot=slot),
            block_info(slot=slot, tx_count=num_sigs),
            TransactionInfo(slot=slot, num_sigs=num_sigs),
            SlotInfo(slot=slot, status=SlotStatus.PROCESSED),
            SlotInfo(slot=slot, status=SlotStatus.CONFIRMED),
        ]
    return _make


# ───────────────────────────── state ─────────────────────────────────────────
@pytest.fixture
def accumulator():
    return SlotAccumulator()


@pytest.fixture
def blocks():
    return BlockStore()


def stage(accumulator, blocks, messages, slot=100):
    """Feed account/tx/block messages and move ``slot`` to processed"""
    for message in messages:
        if isinstance(message, AccountInfo):
            accumulator.add_account(message)
        elif isinstance(message, TransactionInfo):
            accumulator.add_transaction(message)
        elif isinstance(message, BlockInfo):
            blocks.add(message)
    accumulator.mark_processed(slot)


@pytest.fixture
def update(accumulator, blocks, slot_events, make_account):
    """A finalized slot-100 update proving MONITORED and the SlotHashes sysvar"""
    stage(accumulator, blocks, slot_events(accounts=[
        make_account(lamports=500, data=b"copy-digest"),
        make_account(pubkey=OTHER, lamports=9),
    ])[:-2])
    return finalize_slot(100, accumulator, blocks, [MONITORED])


def json_line(message) -> bytes:
    """Render an ingest message as one line of the JSON-lines feed"""
    if isinstance(message, AccountInfo):
        body = {
            "type": "account", "slot": message.slot, "pubkey": b58(message.pubkey),
            "lamports": message.lamports, "owner": b58(message.owner),
            "executable": message.executable, "rent_epoch": message.rent_epoch,
            "data": base64.b64encode(message.data).decode(),
            "write_version": message.write_version,
        }
    elif isinstance(message, TransactionInfo):
        body = {"type": "transaction", "slot": message.slot, "num_sigs": message.num_sigs}
    elif isinstance(message, BlockInfo):
        body = {
            "type": "block", "slot": message.slot,
            "parent_bankhash": message.parent_bankhash, "blockhash": message.blockhash,
            "executed_transaction_count": message.executed_transaction_count,
        }
    elif isinstance(message, SlotInfo):
        body = {"type": "slot", "slot": message.slot, "status": message.status.value}
    else:
        raise TypeError(message)
    return json.dumps(body).encode() + b"\n"


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)
