#!/usr/bin/env python3
"""
Verifying client: subscribe to a proof node and check every update
"""

import asyncio
import argparse

from bankhash.hashing import encode_base58, pubkey_from_str
from client.rpc import fetch_account_snapshot
from client.update_client import UpdateClient
from config.config import DEFAULT_RPC_URL
from errors.exceptions import ProofNodeError
from log_utils import setup_logging
from network.update_server import split_address
from proof.verifier import verify_update


async def run(args, logger) -> int:
    snapshots = {}
    if args.account:
        pubkey = pubkey_from_str(args.account)
        snapshots[pubkey] = await fetch_account_snapshot(args.rpc_url, pubkey)
        logger.info(f"Fetched reference snapshot for {args.account} from {args.rpc_url}")

    host, port = split_address(args.node)
    failures = 0
    seen = 0
    async with UpdateClient(host, port) as client:
        async for update in client.updates():
            result = verify_update(update, snapshots)
            seen += 1
            slot_log = logger.with_context(slot=update.slot, bank_hash=encode_base58(update.root))
            if not result.root_ok:
                slot_log.error("Bank hash does not match its recomposed inputs")
            for account in result.accounts:
                name = encode_base58(account.pubkey)
                if account.ok:
                    checked = " and matches the RPC snapshot" if account.snapshot_checked else ""
                    slot_log.info(f"Proof verified for {name}{checked}")
                else:
                    slot_log.error(
                        f"Proof failed for {name}: {', '.join(f.value for f in account.failures)}"
                    )
            if not result.ok:
                failures += 1
            if args.count and seen >= args.count:
                break
    logger.info(f"Verified {seen} updates, {failures} failed")
    return 1 if failures else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description='Verify account proofs streamed by a proof node')
    parser.add_argument('--node', type=str, default='127.0.0.1:10000',
                        help='host:port of the proof node update stream')
    parser.add_argument('--account', type=str, default=None,
                        help='Account to cross-check against an RPC snapshot')
    parser.add_argument('--rpc-url', type=str, default=DEFAULT_RPC_URL)
    parser.add_argument('--count', type=int, default=0,
                        help='Stop after this many updates (0 = run until closed)')
    parser.add_argument('--log-level', type=str, default='INFO')
    args = parser.parse_args()

    logger = setup_logging(level=args.log_level, enable_structured=False)
    try:
        raise SystemExit(asyncio.run(run(args, logger)))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except ProofNodeError as e:
        logger.critical(f"{e.code}: {e.message}")
        raise SystemExit(2)
