"""
Confirmed-slot finalization: accounts delta root, bank hash and the proof
bundle for monitored accounts.
"""

from typing import Dict, List, Sequence, Tuple

from bankhash.hashing import compute_bank_hash, encode_base58, hash_from_str
from bankhash.merkle import MERKLE_FANOUT, calculate_root_and_proofs
from bankhash.sysvar import SLOT_HASHES_PUBKEY, decode_slot_hashes
from bankhash.types import U64_MAX, AccountDeltaProof, BankHashProof, Proof, Update
from errors.exceptions import (
    DecodingError,
    SignatureCountOverflowError,
    SlotDataMissingError,
    SlotNotApplicableError,
)
from log_utils import get_logger, log_performance
from state.accumulator import AccountTable, BlockStore, SlotAccumulator

logger = get_logger(__name__)


def assemble_account_delta_inclusion_proof(
    account_table: AccountTable,
    account_proofs: Sequence[Tuple[bytes, Proof]],
    pubkeys_for_proofs: Sequence[bytes],
) -> List[AccountDeltaProof]:
    """Pair each requested pubkey's Merkle path with its stored record and hash"""
    by_pubkey: Dict[bytes, Proof] = dict(account_proofs)
    assembled = []
    for pubkey in pubkeys_for_proofs:
        proof = by_pubkey.get(pubkey)
        entry = account_table.get(pubkey)
        if proof is None or entry is None:
            raise KeyError(f"no proof material for {encode_base58(pubkey)}")
        _, account_hash, account = entry
        assembled.append(AccountDeltaProof(
            pubkey=pubkey,
            hash=account_hash,
            account=account,
            proof=proof,
        ))
    return assembled


@log_performance(logger, "finalize_slot")
def finalize_slot(
    slot: int,
    accumulator: SlotAccumulator,
    blocks: BlockStore,
    pubkeys_for_proofs: Sequence[bytes],
    fanout: int = MERKLE_FANOUT,
) -> Update:
    """
    Build the Update for a confirmed slot from its processed-stage state.

    The slot's processed state and block metadata are purged whether or not
    an Update is produced.

    Raises:
        SlotDataMissingError: block metadata, signature count, account table
            or the SlotHashes account is absent
        SignatureCountOverflowError: summed signature count exceeds u64
        SlotNotApplicableError: none of the monitored accounts was written
        DecodingError: SlotHashes data or a block hash string is malformed
    """
    try:
        return _build_update(slot, accumulator, blocks, pubkeys_for_proofs, fanout)
    finally:
        blocks.remove(slot)
        accumulator.purge_slot(slot)


def _build_update(slot, accumulator, blocks, pubkeys_for_proofs, fanout) -> Update:
    slot_log = logger.with_context(slot=slot)

    block = blocks.get(slot)
    if block is None:
        raise SlotDataMissingError(slot, "block")
    snapshot = accumulator.processed_snapshot(slot)
    if snapshot.num_sigs is None:
        raise SlotDataMissingError(slot, "list of txns")
    if snapshot.num_sigs > U64_MAX:
        raise SignatureCountOverflowError(slot, snapshot.num_sigs)
    if snapshot.accounts is None:
        raise SlotDataMissingError(slot, "account hashes")
    account_table = snapshot.accounts

    filtered_pubkeys = [
        pubkey for pubkey in dict.fromkeys(pubkeys_for_proofs)
        if pubkey in account_table and pubkey != SLOT_HASHES_PUBKEY
    ]
    if not filtered_pubkeys:
        raise SlotNotApplicableError(slot)

    slot_hashes_entry = account_table.get(SLOT_HASHES_PUBKEY)
    if slot_hashes_entry is None:
        raise SlotDataMissingError(slot, "SlotHashes account")
    try:
        slot_hashes = decode_slot_hashes(slot_hashes_entry[2].data)
    except DecodingError as e:
        raise DecodingError(f"slot {slot}: {e.message}") from e
    if slot_hashes:
        slot_log.debug(f"SlotHashes newest entry: slot {slot_hashes[0][0]}")
    filtered_pubkeys.append(SLOT_HASHES_PUBKEY)

    try:
        parent_bankhash = hash_from_str(block.parent_bankhash)
        blockhash = hash_from_str(block.blockhash)
    except DecodingError as e:
        raise DecodingError(f"slot {slot}: {e.message}") from e

    account_hashes = [(pubkey, entry[1]) for pubkey, entry in account_table.items()]
    accounts_delta_hash, account_proofs = calculate_root_and_proofs(
        account_hashes, filtered_pubkeys, fanout
    )

    bank_hash = compute_bank_hash(
        parent_bankhash, accounts_delta_hash, snapshot.num_sigs, blockhash
    )

    proofs = assemble_account_delta_inclusion_proof(
        account_table, account_proofs, filtered_pubkeys
    )

    slot_log.info(
        f"Slot finalized with {len(proofs)} account proofs over {len(account_hashes)} accounts",
        extra={"bank_hash": encode_base58(bank_hash)},
    )
    return Update(
        slot=slot,
        root=bank_hash,
        proof=BankHashProof(
            proofs=proofs,
            num_sigs=snapshot.num_sigs,
            account_delta_root=accounts_delta_hash,
            parent_bankhash=parent_bankhash,
            blockhash=blockhash,
        ),
    )
