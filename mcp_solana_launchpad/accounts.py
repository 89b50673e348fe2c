"""
Address derivation for launchpad records and vaults.

Every record and vault address is a program-derived address computed from a seed
tag, the token mint and (for purchase records) the buyer, so any caller can derive
and verify it. Token balances live in associated token accounts.
"""
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from mcp_solana_launchpad.config import (
    BONDING_CURVE_SEED,
    BONDING_CURVE_VAULT_SEED,
    GLOBAL_SEED,
    MINT_AUTHORITY_SEED,
    PROGRAM_ID,
    USER_PURCHASE_SEED,
)


def global_address(program_id: Pubkey = PROGRAM_ID) -> Pubkey:
    return Pubkey.find_program_address([GLOBAL_SEED], program_id)[0]


def mint_authority_address(program_id: Pubkey = PROGRAM_ID) -> Pubkey:
    return Pubkey.find_program_address([MINT_AUTHORITY_SEED], program_id)[0]


def bonding_curve_address(mint: Pubkey, program_id: Pubkey = PROGRAM_ID) -> Pubkey:
    return Pubkey.find_program_address([BONDING_CURVE_SEED, bytes(mint)], program_id)[0]


def bonding_curve_vault_address(mint: Pubkey, program_id: Pubkey = PROGRAM_ID) -> Pubkey:
    """Native-currency vault holding the sale proceeds."""
    return Pubkey.find_program_address([BONDING_CURVE_VAULT_SEED, bytes(mint)], program_id)[0]


def user_purchase_address(mint: Pubkey, user: Pubkey, program_id: Pubkey = PROGRAM_ID) -> Pubkey:
    return Pubkey.find_program_address([USER_PURCHASE_SEED, bytes(mint), bytes(user)], program_id)[0]


def get_token_account(owner: Pubkey, mint: Pubkey) -> Pubkey:
    """Gets the associated token account of an owner for a mint."""
    return get_associated_token_address(owner, mint)
