# tests/test_merkle.py
"""
Accounts delta Merkle tree: determinism, proof soundness, small-tree layouts
"""
import hashlib
import random

import pytest

from bankhash.merkle import (
    MERKLE_FANOUT,
    calculate_root_and_proofs,
    compute_merkle_root,
    fold_proof,
    verify_proof,
)
from bankhash.types import Proof


def _leaves(n, seed=0):
    rng = random.Random(seed)
    return [
        (rng.randbytes(32), hashlib.sha256(f"leaf-{seed}-{i}".encode()).digest())
        for i in range(n)
    ]


def _sha(*parts):
    return hashlib.sha256(b"".join(parts)).digest()


def test_empty_tree():
    root, proofs = calculate_root_and_proofs([], [bytes(32)])
    assert root == hashlib.sha256(b"").digest()
    assert proofs == []


def test_single_leaf_is_hashed_once():
    (pubkey, leaf), = _leaves(1)
    root, proofs = calculate_root_and_proofs([(pubkey, leaf)], [pubkey])
    assert root == _sha(leaf)
    assert proofs == [(pubkey, Proof(path=[0], siblings=[[]]))]


def test_two_leaves_sorted_by_pubkey():
    low, high = bytes([1] * 32), bytes([2] * 32)
    h_low, h_high = _sha(b"low"), _sha(b"high")
    root, _ = calculate_root_and_proofs([(high, h_high), (low, h_low)], [])
    assert root == _sha(h_low, h_high)


def test_seventeen_leaves_make_two_levels():
    leaves = sorted(_leaves(17), key=lambda item: item[0])
    hashes = [h for _, h in leaves]
    expected = _sha(_sha(*hashes[:16]), _sha(hashes[16]))
    assert compute_merkle_root(hashes) == expected

    target = leaves[16][0]
    root, [(pubkey, proof)] = calculate_root_and_proofs(leaves, [target])
    assert root == expected
    assert pubkey == target
    assert proof.path == [0, 1]
    assert proof.siblings == [[], [_sha(*hashes[:16])]]


@pytest.mark.parametrize("n", [2, 15, 16, 17, 255, 256, 257, 700])
def test_root_independent_of_arrival_order(n):
    leaves = _leaves(n, seed=n)
    shuffled = leaves[:]
    random.Random(99).shuffle(shuffled)
    root_a, _ = calculate_root_and_proofs(leaves, [])
    root_b, _ = calculate_root_and_proofs(shuffled, [])
    assert root_a == root_b


@pytest.mark.parametrize("fanout", [2, 3, MERKLE_FANOUT])
@pytest.mark.parametrize("n", [1, 2, 5, 16, 33, 300])
def test_every_leaf_proof_folds_to_root(n, fanout):
    leaves = _leaves(n, seed=n * fanout)
    pubkeys = [pubkey for pubkey, _ in leaves]
    root, proofs = calculate_root_and_proofs(leaves, pubkeys, fanout)
    assert root == compute_merkle_root([h for _, h in sorted(leaves)], fanout)
    assert [pubkey for pubkey, _ in proofs] == pubkeys

    hashes = dict(leaves)
    for pubkey, proof in proofs:
        assert fold_proof(hashes[pubkey], proof) == root
        assert verify_proof(hashes[pubkey], proof, root)


def test_proofs_follow_request_order_and_skip_unknown():
    leaves = _leaves(40)
    wanted = [leaves[30][0], bytes([0xEE] * 32), leaves[2][0], leaves[30][0]]
    _, proofs = calculate_root_and_proofs(leaves, wanted)
    assert [pubkey for pubkey, _ in proofs] == [leaves[30][0], leaves[2][0]]


def test_tampered_leaf_or_sibling_fails():
    leaves = _leaves(50)
    target, leaf = leaves[10]
    root, [(_, proof)] = calculate_root_and_proofs(leaves, [target])

    assert not verify_proof(_sha(b"forged"), proof, root)

    proof.siblings[0][0] = _sha(b"other")
    assert not verify_proof(leaf, proof, root)


def test_out_of_range_position_is_rejected():
    proof = Proof(path=[5], siblings=[[_sha(b"a")]])
    assert not verify_proof(_sha(b"leaf"), proof, _sha(b"root"))
    with pytest.raises(ValueError):
        fold_proof(_sha(b"leaf"), proof)
