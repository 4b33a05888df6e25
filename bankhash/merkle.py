"""
Accounts delta Merkle tree.

Leaves are the content hashes of every account written in a slot, ordered by
pubkey. Each level hashes consecutive groups of up to ``fanout`` nodes with
SHA-256 until a single node remains; there is always at least one hashing
round, so a lone leaf is hashed once and an empty tree is ``sha256(b"")``.
"""

from typing import Dict, Iterable, List, Sequence, Tuple

from bankhash.hashing import hashv
from bankhash.types import Proof

MERKLE_FANOUT = 16


def _next_level(hashes: Sequence[bytes], fanout: int) -> List[bytes]:
    return [hashv(hashes[i:i + fanout]) for i in range(0, len(hashes), fanout)]


def compute_merkle_root(hashes: Sequence[bytes], fanout: int = MERKLE_FANOUT) -> bytes:
    if not hashes:
        return hashv([])
    level = list(hashes)
    while True:
        level = _next_level(level, fanout)
        if len(level) == 1:
            return level[0]


def calculate_root_and_proofs(
    account_hashes: Iterable[Tuple[bytes, bytes]],
    pubkeys_for_proofs: Iterable[bytes],
    fanout: int = MERKLE_FANOUT,
) -> Tuple[bytes, List[Tuple[bytes, Proof]]]:
    """
    Build the accounts delta tree and inclusion proofs.

    Args:
        account_hashes: (pubkey, content hash) for every account in the slot
        pubkeys_for_proofs: Accounts to prove; absent ones are skipped
        fanout: Children per internal node

    Returns:
        (root, [(pubkey, Proof), ...]) with proofs in request order
    """
    if fanout < 2:
        raise ValueError("fanout must be at least 2")

    ordered = sorted(account_hashes, key=lambda item: item[0])
    if not ordered:
        return hashv([]), []

    index_of = {pubkey: i for i, (pubkey, _) in enumerate(ordered)}
    requested: List[bytes] = []
    for pubkey in pubkeys_for_proofs:
        if pubkey in index_of and pubkey not in requested:
            requested.append(pubkey)

    positions: Dict[bytes, int] = {pubkey: index_of[pubkey] for pubkey in requested}
    proofs: Dict[bytes, Proof] = {pubkey: Proof() for pubkey in requested}

    level = [account_hash for _, account_hash in ordered]
    while True:
        for pubkey in requested:
            position = positions[pubkey]
            start = position - position % fanout
            group = level[start:start + fanout]
            offset = position - start
            proofs[pubkey].path.append(offset)
            proofs[pubkey].siblings.append(group[:offset] + group[offset + 1:])
            positions[pubkey] = position // fanout

        level = _next_level(level, fanout)
        if len(level) == 1:
            break

    return level[0], [(pubkey, proofs[pubkey]) for pubkey in requested]


def fold_proof(leaf_hash: bytes, proof: Proof) -> bytes:
    """Recompute the root reached from ``leaf_hash`` along ``proof``"""
    current = leaf_hash
    for index, siblings in proof.levels():
        if index < 0 or index > len(siblings):
            raise ValueError(f"proof position {index} outside group of {len(siblings) + 1}")
        group = list(siblings[:index]) + [current] + list(siblings[index:])
        current = hashv(group)
    return current


def verify_proof(leaf_hash: bytes, proof: Proof, root: bytes) -> bool:
    try:
        return fold_proof(leaf_hash, proof) == root
    except ValueError:
        return False
