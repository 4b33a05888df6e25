"""
Node configuration file: monitored accounts and listener addresses
"""

import json
from typing import List

from pydantic import BaseModel, Field, ValidationError, field_validator

from bankhash.hashing import pubkey_from_str
from config.config import (
    BIND_ADDRESS,
    BROADCAST_CAPACITY,
    INGEST_ADDRESS,
    INGRESS_BACKPRESSURE,
    INGRESS_QUEUE_SIZE,
    MAX_INFLIGHT_SLOTS,
)
from errors.exceptions import ConfigError, DecodingError


class NodeConfig(BaseModel):
    account_list: List[str] = Field(default_factory=list, description="Base58 accounts to prove")
    bind_address: str = BIND_ADDRESS
    ingest_address: str = INGEST_ADDRESS
    broadcast_capacity: int = Field(BROADCAST_CAPACITY, ge=1)
    ingress_queue_size: int = Field(INGRESS_QUEUE_SIZE, ge=1)
    ingress_backpressure: str = INGRESS_BACKPRESSURE
    max_inflight_slots: int = Field(MAX_INFLIGHT_SLOTS, ge=0)

    @field_validator('account_list')
    @classmethod
    def validate_accounts(cls, v):
        for address in v:
            try:
                pubkey_from_str(address)
            except DecodingError as e:
                raise ValueError(e.message)
        return v

    @field_validator('bind_address', 'ingest_address')
    @classmethod
    def validate_address(cls, v):
        host, _, port = v.rpartition(':')
        if not host or not port.isdigit() or not 0 <= int(port) <= 65535:
            raise ValueError(f'Address must be host:port, got {v!r}')
        return v

    @field_validator('ingress_backpressure')
    @classmethod
    def validate_backpressure(cls, v):
        allowed = ['block', 'drop_oldest', 'reject']
        if v not in allowed:
            raise ValueError(f'Backpressure must be one of: {", ".join(allowed)}')
        return v

    def pubkeys_for_proofs(self) -> List[bytes]:
        """Monitored accounts as raw pubkeys, in configured order without duplicates"""
        return list(dict.fromkeys(pubkey_from_str(a) for a in self.account_list))


def load_config(path: str) -> NodeConfig:
    try:
        with open(path, 'r') as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    try:
        return NodeConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e
