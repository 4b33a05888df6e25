"""
Minimal JSON-RPC access used to fetch a reference account snapshot
"""

import base64
import itertools

import aiohttp

from bankhash.hashing import encode_base58, pubkey_from_str
from bankhash.types import AccountSnapshot
from errors.exceptions import DecodingError, TransportError
from log_utils import get_logger

logger = get_logger(__name__)

_request_ids = itertools.count(1)


def parse_account_info(value: dict) -> AccountSnapshot:
    """Convert a getAccountInfo ``value`` (base64 encoding) to an AccountSnapshot"""
    try:
        data_field = value["data"]
        if isinstance(data_field, list):
            encoded, encoding = data_field[0], data_field[1]
        else:
            encoded, encoding = data_field, "base64"
        if encoding != "base64":
            raise DecodingError(f"unsupported account data encoding {encoding!r}")
        return AccountSnapshot(
            lamports=int(value["lamports"]),
            owner=pubkey_from_str(value["owner"]),
            executable=bool(value["executable"]),
            rent_epoch=int(value["rentEpoch"]),
            data=base64.b64decode(encoded),
        )
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise DecodingError(f"malformed getAccountInfo result: {e}") from e


async def fetch_account_snapshot(rpc_url: str, pubkey: bytes, commitment: str = "confirmed",
                                 session: aiohttp.ClientSession = None) -> AccountSnapshot:
    payload = {
        "jsonrpc": "2.0",
        "id": next(_request_ids),
        "method": "getAccountInfo",
        "params": [encode_base58(pubkey), {"encoding": "base64", "commitment": commitment}],
    }
    owns_session = session is None
    if owns_session:
        session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30))
    try:
        async with session.post(rpc_url, json=payload) as resp:
            if resp.status != 200:
                raise TransportError(f"RPC {rpc_url} returned HTTP {resp.status}")
            body = await resp.json()
    except aiohttp.ClientError as e:
        raise TransportError(f"RPC request to {rpc_url} failed: {e}") from e
    finally:
        if owns_session:
            await session.close()

    if "error" in body:
        raise TransportError(f"RPC error: {body['error']}")
    value = (body.get("result") or {}).get("value")
    if value is None:
        raise TransportError(f"account {encode_base58(pubkey)} not found")
    logger.debug(f"Fetched snapshot for {encode_base58(pubkey)}")
    return parse_account_info(value)
