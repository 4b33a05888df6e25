"""
Pydantic models for JSON-lines ingestion events
"""

import base64
from typing import Annotated, Literal, Optional, Union

import base58
from pydantic import BaseModel, Field, TypeAdapter, field_validator

from bankhash.hashing import hash_from_str, pubkey_from_str
from bankhash.types import (
    AccountInfo,
    BlockInfo,
    EndOfStartup,
    SlotInfo,
    SlotStatus,
    TransactionInfo,
    U64_MAX,
    VoteInfo,
)
from errors.exceptions import DecodingError


def _check_pubkey(v: str) -> str:
    try:
        pubkey_from_str(v)
    except DecodingError as e:
        raise ValueError(e.message)
    return v

def _check_hash(v: str) -> str:
    try:
        hash_from_str(v)
    except DecodingError as e:
        raise ValueError(e.message)
    return v

def _check_base64(v: str) -> str:
    try:
        base64.b64decode(v, validate=True)
    except ValueError:
        raise ValueError('Must be valid base64 encoded string')
    return v


class AccountEvent(BaseModel):
    type: Literal["account"]
    slot: int = Field(..., ge=0, le=U64_MAX)
    pubkey: str
    lamports: int = Field(..., ge=0, le=U64_MAX)
    owner: str
    executable: bool = False
    rent_epoch: int = Field(0, ge=0, le=U64_MAX)
    data: str = Field("", description="Base64 encoded account data")
    write_version: int = Field(..., ge=0, le=U64_MAX)

    @field_validator('pubkey', 'owner')
    @classmethod
    def validate_pubkey(cls, v):
        return _check_pubkey(v)

    @field_validator('data')
    @classmethod
    def validate_data(cls, v):
        return _check_base64(v)

    def to_message(self) -> AccountInfo:
        return AccountInfo(
            pubkey=pubkey_from_str(self.pubkey),
            lamports=self.lamports,
            owner=pubkey_from_str(self.owner),
            executable=self.executable,
            rent_epoch=self.rent_epoch,
            data=base64.b64decode(self.data),
            write_version=self.write_version,
            slot=self.slot,
        )


class TransactionEvent(BaseModel):
    type: Literal["transaction"]
    slot: int = Field(..., ge=0, le=U64_MAX)
    num_sigs: int = Field(..., ge=0, le=U64_MAX)

    def to_message(self) -> TransactionInfo:
        return TransactionInfo(slot=self.slot, num_sigs=self.num_sigs)


class VoteEvent(BaseModel):
    type: Literal["vote"]
    slot: int = Field(..., ge=0, le=U64_MAX)
    signature: str = Field(..., min_length=1, description="Base58 transaction signature")
    vote_for_slot: int = Field(..., ge=0, le=U64_MAX)
    vote_for_hash: str
    message: str = Field("", description="Base64 encoded vote message")

    @field_validator('vote_for_hash')
    @classmethod
    def validate_vote_hash(cls, v):
        return _check_hash(v)

    @field_validator('message')
    @classmethod
    def validate_message(cls, v):
        return _check_base64(v)

    @field_validator('signature')
    @classmethod
    def validate_signature(cls, v):
        try:
            base58.b58decode(v)
        except ValueError:
            raise ValueError('Signature must be base58')
        return v

    def to_message(self) -> VoteInfo:
        return VoteInfo(
            slot=self.slot,
            signature=base58.b58decode(self.signature),
            vote_for_slot=self.vote_for_slot,
            vote_for_hash=hash_from_str(self.vote_for_hash),
            message=base64.b64decode(self.message),
        )


class BlockEvent(BaseModel):
    type: Literal["block"]
    slot: int = Field(..., ge=0, le=U64_MAX)
    parent_bankhash: str = Field(..., min_length=1)
    blockhash: str = Field(..., min_length=1)
    executed_transaction_count: int = Field(0, ge=0, le=U64_MAX)

    def to_message(self) -> BlockInfo:
        # Hash strings are parsed at finalization so a bad one fails only its slot
        return BlockInfo(
            slot=self.slot,
            parent_bankhash=self.parent_bankhash,
            blockhash=self.blockhash,
            executed_transaction_count=self.executed_transaction_count,
        )


class SlotEvent(BaseModel):
    type: Literal["slot"]
    slot: int = Field(..., ge=0, le=U64_MAX)
    status: str
    parent: Optional[int] = Field(None, ge=0, le=U64_MAX)

    def to_message(self) -> SlotInfo:
        return SlotInfo(slot=self.slot, status=SlotStatus.parse(self.status))


class EndOfStartupEvent(BaseModel):
    type: Literal["end_of_startup"]

    def to_message(self) -> EndOfStartup:
        return EndOfStartup()


IngestEvent = Annotated[
    Union[AccountEvent, TransactionEvent, VoteEvent, BlockEvent, SlotEvent, EndOfStartupEvent],
    Field(discriminator='type'),
]

_event_adapter = TypeAdapter(IngestEvent)


def parse_event(raw: Union[str, bytes]):
    """Validate one JSON line and convert it to an ingest message"""
    event = _event_adapter.validate_json(raw)
    return event.to_message()
