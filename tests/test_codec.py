# tests/test_codec.py
"""
Update record encoding and length-prefixed stream framing
"""
import asyncio
import struct

import pytest

from bankhash.codec import FRAME_HEADER, decode_update, encode_frame, encode_update, read_frame
from errors.exceptions import DecodingError, FrameError


def test_update_survives_the_wire(update):
    raw = encode_update(update)
    assert decode_update(raw) == update
    # slot, then root, then proof count
    assert raw[:8] == struct.pack("<Q", 100)
    assert raw[8:40] == update.root
    assert raw[40:44] == struct.pack("<I", 2)


def test_trailing_bytes_rejected(update):
    with pytest.raises(DecodingError):
        decode_update(encode_update(update) + b"\x00")


def test_truncated_record_rejected(update):
    raw = encode_update(update)
    with pytest.raises(DecodingError):
        decode_update(raw[:-1])


def test_mismatched_data_pubkey_rejected(update):
    raw = bytearray(encode_update(update))
    # first proof: pubkey at 44..76, data pubkey at 76..108
    raw[76] ^= 0xFF
    with pytest.raises(DecodingError):
        decode_update(bytes(raw))


def test_oversize_frame_refused_on_encode():
    with pytest.raises(FrameError):
        encode_frame(b"x" * 11, max_bytes=10)


def test_out_of_range_field_refused_on_encode(update):
    update.proof.proofs[0].account.write_version = 2 ** 64
    with pytest.raises(ValueError):
        encode_update(update)
    update.proof.proofs[0].account.write_version = -1
    with pytest.raises(ValueError):
        encode_update(update)


@pytest.mark.asyncio
async def test_frames_split_across_reads(update):
    payload = encode_update(update)
    stream = encode_frame(payload) + encode_frame(b"second")
    reader = asyncio.StreamReader()

    async def trickle():
        for i in range(0, len(stream), 7):
            reader.feed_data(stream[i:i + 7])
            await asyncio.sleep(0)
        reader.feed_eof()

    feeder = asyncio.create_task(trickle())
    assert await read_frame(reader) == payload
    assert await read_frame(reader) == b"second"
    assert await read_frame(reader) is None
    await feeder


@pytest.mark.asyncio
async def test_eof_inside_header():
    reader = asyncio.StreamReader()
    reader.feed_data(b"\x05\x00")
    reader.feed_eof()
    with pytest.raises(FrameError):
        await read_frame(reader)


@pytest.mark.asyncio
async def test_eof_inside_payload():
    reader = asyncio.StreamReader()
    reader.feed_data(FRAME_HEADER.pack(10) + b"abc")
    reader.feed_eof()
    with pytest.raises(FrameError):
        await read_frame(reader)


@pytest.mark.asyncio
async def test_announced_length_over_limit():
    reader = asyncio.StreamReader()
    reader.feed_data(FRAME_HEADER.pack(1024))
    with pytest.raises(FrameError):
        await read_frame(reader, max_bytes=512)
