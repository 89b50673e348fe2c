"""
Pydantic Data Models for the Solana Launchpad

This module defines the records kept by the launchpad program. They are plain
keyed records: nothing here holds a live reference to another record, and every
cross-record read goes through the key (mint, or mint and buyer).

Key Components:
- GlobalConfig: singleton administrator-controlled parameters
- BondingCurve: per-token sale state, with the ConfigStore values snapshotted
  at creation time
- UserPurchase: per-(sale, buyer) accumulator of purchased-but-unclaimed tokens
- TokenMetadata: name/symbol/uri registered for a mint

Addresses are solders ``Pubkey`` values and serialize to base58 strings; 32-byte
digests serialize to hex. Integer fields are bounded to their on-ledger widths.
"""
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, PlainValidator
from solders.pubkey import Pubkey

from mcp_solana_launchpad.utils import U16_MAX, U64_MAX


def _to_pubkey(value: Any) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, str):
        return Pubkey.from_string(value)
    raise ValueError(f"Expected a public key, got {type(value).__name__}")


def _to_hash32(value: Any) -> bytes:
    if isinstance(value, str):
        value = bytes.fromhex(value[2:] if value.startswith("0x") else value)
    if not isinstance(value, (bytes, bytearray)) or len(value) != 32:
        raise ValueError("Expected a 32-byte digest")
    return bytes(value)


PubkeyField = Annotated[Pubkey, PlainValidator(_to_pubkey), PlainSerializer(str, return_type=str)]
Hash32 = Annotated[bytes, PlainValidator(_to_hash32), PlainSerializer(lambda v: v.hex(), return_type=str)]
U64 = Annotated[int, Field(ge=0, le=U64_MAX)]
Bps = Annotated[int, Field(ge=0, le=U16_MAX)]

ZERO_HASH = bytes(32)


class LaunchpadModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)


class GlobalConfig(LaunchpadModel):
    initialized: bool = False
    authority: PubkeyField = Field(default_factory=Pubkey.default)
    fee_bps: Bps = 0
    token_price_up_bps: Bps = 0
    withdraw_fee_bps: Bps = 0
    token_total_supply: U64 = 0
    token_investing_supply: U64 = 0
    fee_recipient: PubkeyField = Field(default_factory=Pubkey.default)
    lp_recipient: PubkeyField = Field(default_factory=Pubkey.default)
    migration_caller: PubkeyField = Field(default_factory=Pubkey.default)
    token_creator_reserve: U64 = 0
    token_platform_reserve: U64 = 0
    token_pool_reserve: U64 = 0


class BondingCurve(LaunchpadModel):
    mint: PubkeyField
    sol_reserves: U64 = 0
    token_reserves: U64 = 0
    token_total_supply: U64
    token_investing_supply: U64
    token_investing_price: U64
    token_investing_deadline: U64
    token_launching_price: U64
    withdraw_fee_bps: Bps
    withdraw_recipient: PubkeyField
    completed: bool = False
    investing_start_at: U64
    whitelisted: bool = False
    merkle_root: Hash32 = ZERO_HASH
    whitelist_start_at: U64
    token_creator_reserve: U64
    token_platform_reserve: U64
    token_pool_reserve: U64
    migrated: bool = False
    withdrawed: bool = False

    @property
    def tokens_sold(self) -> int:
        """Investing allocation taken by buyers; withdrawal never changes it."""
        if self.completed:
            return self.token_investing_supply
        return self.token_total_supply - self.token_reserves

    @property
    def phase(self) -> str:
        if self.migrated:
            return "Migrated"
        if self.withdrawed:
            return "Withdrawn"
        if self.completed:
            return "Completed"
        return "Active"


class UserPurchase(LaunchpadModel):
    user: PubkeyField
    mint: PubkeyField
    token_amount: U64 = 0


class TokenMetadata(LaunchpadModel):
    mint: PubkeyField
    name: str
    symbol: str
    uri: str
    update_authority: PubkeyField
