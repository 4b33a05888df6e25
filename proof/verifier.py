"""
Update verification for consumers of the proof stream.

Three checks are kept apart so a caller can tell which one failed:

* the account's recomputed hash folds along its Merkle path to the asserted
  accounts delta root (PROOF_INVALID otherwise)
* parent bank hash, delta root, signature count and blockhash recompose to
  the asserted bank hash (ROOT_MISMATCH otherwise)
* the proven account matches an independently obtained snapshot
  (SNAPSHOT_MISMATCH otherwise; only when a snapshot is supplied)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Mapping, Optional

from bankhash.hashing import compute_bank_hash, encode_base58, hash_account_info, hash_solana_account
from bankhash.merkle import verify_proof
from bankhash.types import AccountDeltaProof, AccountSnapshot, Update
from errors.exceptions import ProofInvalidError, RootMismatchError, SnapshotMismatchError


class VerificationFailure(Enum):
    PROOF_INVALID = "proof_invalid"
    ROOT_MISMATCH = "root_mismatch"
    SNAPSHOT_MISMATCH = "snapshot_mismatch"


_ERRORS = {
    VerificationFailure.PROOF_INVALID: ProofInvalidError,
    VerificationFailure.ROOT_MISMATCH: RootMismatchError,
    VerificationFailure.SNAPSHOT_MISMATCH: SnapshotMismatchError,
}


@dataclass
class AccountVerification:
    pubkey: bytes
    leaf_hash: bytes
    failures: List[VerificationFailure] = field(default_factory=list)
    snapshot_checked: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class VerificationResult:
    slot: int
    root: bytes
    recomputed_root: bytes
    accounts: List[AccountVerification] = field(default_factory=list)

    @property
    def root_ok(self) -> bool:
        return self.recomputed_root == self.root

    @property
    def failures(self) -> List[VerificationFailure]:
        found = []
        if not self.root_ok:
            found.append(VerificationFailure.ROOT_MISMATCH)
        for account in self.accounts:
            for failure in account.failures:
                if failure not in found:
                    found.append(failure)
        return found

    @property
    def ok(self) -> bool:
        return not self.failures

    def account(self, pubkey: bytes) -> Optional[AccountVerification]:
        for item in self.accounts:
            if item.pubkey == pubkey:
                return item
        return None

    def raise_for_status(self):
        """Raise the error for the first failed check, if any"""
        failures = self.failures
        if not failures:
            return
        first = failures[0]
        raise _ERRORS[first](
            f"slot {self.slot}: {first.value} "
            f"(failed checks: {', '.join(f.value for f in failures)})"
        )


def _check_account(
    item: AccountDeltaProof,
    account_delta_root: bytes,
    snapshot: Optional[AccountSnapshot],
) -> AccountVerification:
    leaf_hash = hash_account_info(item.account)
    result = AccountVerification(pubkey=item.pubkey, leaf_hash=leaf_hash)

    if (
        item.account.pubkey != item.pubkey
        or leaf_hash != item.hash
        or not verify_proof(leaf_hash, item.proof, account_delta_root)
    ):
        result.failures.append(VerificationFailure.PROOF_INVALID)

    if snapshot is not None:
        result.snapshot_checked = True
        snapshot_hash = hash_solana_account(
            snapshot.lamports,
            snapshot.owner,
            snapshot.executable,
            snapshot.rent_epoch,
            snapshot.data,
            item.pubkey,
        )
        if snapshot_hash != leaf_hash:
            result.failures.append(VerificationFailure.SNAPSHOT_MISMATCH)
    return result


def verify_update(
    update: Update,
    snapshots: Optional[Mapping[bytes, AccountSnapshot]] = None,
) -> VerificationResult:
    """
    Check every account proof in ``update`` and the bank hash it asserts.

    Args:
        update: Update received from the node
        snapshots: Optional pubkey -> independently fetched account state

    Returns:
        VerificationResult with per-account outcomes
    """
    bundle = update.proof
    snapshots = snapshots or {}
    recomputed_root = compute_bank_hash(
        bundle.parent_bankhash,
        bundle.account_delta_root,
        bundle.num_sigs,
        bundle.blockhash,
    )
    result = VerificationResult(slot=update.slot, root=update.root, recomputed_root=recomputed_root)
    for item in bundle.proofs:
        result.accounts.append(
            _check_account(item, bundle.account_delta_root, snapshots.get(item.pubkey))
        )
    return result


def verify_leaves_against_bankhash(
    item: AccountDeltaProof,
    bank_hash: bytes,
    num_sigs: int,
    account_delta_root: bytes,
    parent_bankhash: bytes,
    blockhash: bytes,
):
    """Single-account check that raises on the first failure"""
    leaf_hash = hash_account_info(item.account)
    if leaf_hash != item.hash or not verify_proof(leaf_hash, item.proof, account_delta_root):
        raise ProofInvalidError(
            f"account {encode_base58(item.pubkey)} does not fold to delta root "
            f"{encode_base58(account_delta_root)}"
        )
    recomputed = compute_bank_hash(parent_bankhash, account_delta_root, num_sigs, blockhash)
    if recomputed != bank_hash:
        raise RootMismatchError(
            f"bank hash {encode_base58(recomputed)} != asserted {encode_base58(bank_hash)}"
        )

