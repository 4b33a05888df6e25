# tests/test_servers.py
"""
Subscriber stream and JSON-lines ingestion over real loopback sockets
"""
import asyncio
import copy

import pytest

from bankhash.types import TransactionInfo
from client.update_client import UpdateClient
from errors.exceptions import TransportError
from events.broadcast import UpdateBroadcaster
from network.ingest_server import IngestServer
from network.update_server import UpdateServer, split_address
from node.ingest import IngestionAdapter, IngestQueue

from conftest import json_line, wait_until


def test_split_address():
    assert split_address("127.0.0.1:10000") == ("127.0.0.1", 10000)
    assert split_address("[::1]:9") == ("[::1]", 9)
    with pytest.raises(ValueError):
        split_address("localhost")


# ──────────────────────────────────────────────────────────────────────────────
# update stream
# ──────────────────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_subscriber_receives_published_update(update):
    broadcaster = UpdateBroadcaster(capacity=4)
    server = UpdateServer(broadcaster)
    host, port = (await server.start_server("127.0.0.1", 0))[:2]
    try:
        async with UpdateClient(host, port) as client:
            await wait_until(lambda: len(broadcaster.subscribers) == 1)
            broadcaster.publish(update)
            received = await asyncio.wait_for(client.recv(), timeout=2)
        assert received == update
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_disconnected_subscriber_does_not_affect_others(update):
    broadcaster = UpdateBroadcaster(capacity=4)
    server = UpdateServer(broadcaster)
    host, port = (await server.start_server("127.0.0.1", 0))[:2]
    try:
        stays = UpdateClient(host, port)
        leaves = UpdateClient(host, port)
        await stays.connect()
        await leaves.connect()
        await wait_until(lambda: len(broadcaster.subscribers) == 2)
        await leaves.close()

        for _ in range(3):
            broadcaster.publish(update)
        for _ in range(3):
            assert (await asyncio.wait_for(stays.recv(), timeout=2)).slot == 100
        await stays.close()
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_client_stream_ends_when_server_stops(update):
    broadcaster = UpdateBroadcaster(capacity=4)
    server = UpdateServer(broadcaster)
    host, port = (await server.start_server("127.0.0.1", 0))[:2]
    client = UpdateClient(host, port)
    await client.connect()
    await wait_until(lambda: len(broadcaster.subscribers) == 1)
    broadcaster.publish(update)

    seen = []

    async def drain():
        async for item in client.updates():
            seen.append(item.slot)
            await server.stop()

    await asyncio.wait_for(drain(), timeout=2)
    await client.close()
    assert seen == [100]


@pytest.mark.asyncio
async def test_unencodable_update_is_skipped_without_dropping_subscribers(update):
    broadcaster = UpdateBroadcaster(capacity=4)
    server = UpdateServer(broadcaster)
    host, port = (await server.start_server("127.0.0.1", 0))[:2]
    bad = copy.deepcopy(update)
    bad.proof.proofs[0].account.write_version = 2 ** 64
    try:
        first = UpdateClient(host, port)
        second = UpdateClient(host, port)
        await first.connect()
        await second.connect()
        await wait_until(lambda: len(broadcaster.subscribers) == 2)

        broadcaster.publish(bad)
        broadcaster.publish(update)
        for client in (first, second):
            assert await asyncio.wait_for(client.recv(), timeout=2) == update
        assert len(broadcaster.subscribers) == 2
        assert len(server.connections) == 2
        await first.close()
        await second.close()
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_stop_waits_for_connection_handlers():
    broadcaster = UpdateBroadcaster(capacity=4)
    server = UpdateServer(broadcaster)
    host, port = (await server.start_server("127.0.0.1", 0))[:2]
    client = UpdateClient(host, port)
    await client.connect()
    await wait_until(lambda: len(server.connections) == 1)

    await server.stop()

    assert server.connections == set()
    assert not broadcaster.subscribers
    await client.close()


@pytest.mark.asyncio
async def test_client_errors():
    client = UpdateClient("127.0.0.1", 1)
    with pytest.raises(TransportError):
        await client.recv()
    with pytest.raises(TransportError):
        await client.connect(timeout=1)


# ──────────────────────────────────────────────────────────────────────────────
# JSON-lines ingestion
# ──────────────────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_handle_line_builds_messages(slot_events):
    queue = IngestQueue(maxsize=100)
    server = IngestServer(IngestionAdapter(queue, require_startup=False))
    messages = slot_events()

    for message in messages:
        await server.handle_line(json_line(message))

    assert [await queue.get() for _ in messages] == messages
    assert server.stats == {'received': 6, 'invalid': 0, 'rejected': 0}


@pytest.mark.asyncio
@pytest.mark.parametrize("line", [
    b"{not json",
    b'{"type": "nonsense", "slot": 1}',
    b'{"type": "transaction", "slot": -1, "num_sigs": 1}',
    b'{"type": "account", "slot": 1, "pubkey": "0OIl", "lamports": 1, '
    b'"owner": "11111111111111111111111111111111", "write_version": 1}',
    b'{"type": "vote", "slot": 1, "signature": "5", "vote_for_slot": 0, '
    b'"vote_for_hash": "11111111111111111111111111111111", "message": "!!"}',
    b'{"type": "account", "slot": 1, "pubkey": "11111111111111111111111111111111", '
    b'"lamports": 1, "owner": "11111111111111111111111111111111", '
    b'"write_version": 18446744073709551616}',
    b'{"type": "transaction", "slot": 1, "num_sigs": 18446744073709551616}',
])
async def test_invalid_lines_are_counted(line):
    queue = IngestQueue(maxsize=10)
    server = IngestServer(IngestionAdapter(queue, require_startup=False))
    await server.handle_line(line)
    await server.handle_line(b"   \n")
    assert server.stats == {'received': 1, 'invalid': 1, 'rejected': 0}
    assert queue.qsize() == 0


@pytest.mark.asyncio
async def test_rejected_lines_are_counted():
    queue = IngestQueue(maxsize=1, policy="reject")
    server = IngestServer(IngestionAdapter(queue, require_startup=False))
    line = json_line(TransactionInfo(slot=1, num_sigs=1))
    await server.handle_line(line)
    await server.handle_line(line)
    assert server.stats['rejected'] == 1


@pytest.mark.asyncio
async def test_ingest_over_socket(slot_events):
    queue = IngestQueue(maxsize=100)
    server = IngestServer(IngestionAdapter(queue, require_startup=False))
    host, port = (await server.start_server("127.0.0.1", 0))[:2]
    try:
        reader, writer = await asyncio.open_connection(host, port)
        writer.write(b"".join(json_line(m) for m in slot_events()))
        await writer.drain()
        writer.close()
        await writer.wait_closed()
        await wait_until(lambda: queue.qsize() == 6)
    finally:
        await server.stop()
    assert server.stats['received'] == 6
