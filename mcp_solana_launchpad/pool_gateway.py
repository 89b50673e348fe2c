"""
External Pool Gateway

Translates a withdrawn sale's remaining reserves into liquidity on an external
automated market, or sends them straight to the LP recipient when no pool is
created.

Pool path (the pool and the vault balances are validated before step 1):
1. Move the native reserves from the sale vault into the migration caller's
   wrapped-native account and sync it.
2. Move the token reserves from the sale's token vault into the caller's token
   account.
3. Ask the pool provisioner to create the pool. The two mints are passed in
   ascending byte order, which is not the native-first order used elsewhere.
4. Create the LP recipient's LP-token account if absent and forward the caller's
   whole LP balance to it.

Fallback path: wrapped-native and token reserves go directly to the LP recipient's
accounts.

``InMemoryPoolProvisioner`` is a constant-product pool provisioner that mints
``isqrt(amount_0 * amount_1) - locked_liquidity`` LP units to the pool creator.
"""
import math
from typing import Dict, NamedTuple, Optional, Tuple

from solders.pubkey import Pubkey

from mcp_solana_launchpad.accounts import bonding_curve_address, bonding_curve_vault_address
from mcp_solana_launchpad.config import NATIVE_MINT, POOL_LOCKED_LIQUIDITY, POOL_OPEN_TIME, POOL_PROGRAM_ID
from mcp_solana_launchpad.errors import TransactionFailedError
from mcp_solana_launchpad.ledger import NativeLedger, TokenProgram
from mcp_solana_launchpad.schemas import LaunchpadModel, PubkeyField, U64
from mcp_solana_launchpad.utils import checked_mul
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

POOL_SEED = b"pool"
POOL_LP_MINT_SEED = b"pool_lp_mint"
POOL_AUTHORITY_SEED = b"vault_and_lp_mint_auth_seed"
LP_DECIMALS = 9


class PoolReceipt(NamedTuple):
    pool: Pubkey
    lp_mint: Pubkey
    lp_amount: int


class MigrationReceipt(NamedTuple):
    token_amount: int
    sol_amount: int
    lp_amount: int = 0
    pool: Optional[Pubkey] = None
    lp_mint: Optional[Pubkey] = None


class PoolState(LaunchpadModel):
    pool: PubkeyField
    token_0_mint: PubkeyField
    token_1_mint: PubkeyField
    lp_mint: PubkeyField
    amount_0: U64
    amount_1: U64
    lp_supply: int
    open_time: int


def sort_mints(mint_a: Pubkey, mint_b: Pubkey) -> Tuple[Pubkey, Pubkey]:
    """Canonical (ascending byte) order of a mint pair."""
    if bytes(mint_a) < bytes(mint_b):
        return mint_a, mint_b
    return mint_b, mint_a


class InMemoryPoolProvisioner:
    def __init__(self, tokens: TokenProgram, program_id: Pubkey = POOL_PROGRAM_ID,
                 locked_liquidity: int = POOL_LOCKED_LIQUIDITY):
        self.tokens = tokens
        self.undo = tokens.undo
        self.program_id = program_id
        self.locked_liquidity = locked_liquidity
        self.pools: Dict[Pubkey, PoolState] = {}
        self.authority = Pubkey.find_program_address([POOL_AUTHORITY_SEED], program_id)[0]

    def pool_address(self, token_0_mint: Pubkey, token_1_mint: Pubkey) -> Pubkey:
        return Pubkey.find_program_address([POOL_SEED, bytes(token_0_mint), bytes(token_1_mint)], self.program_id)[0]

    def validate_pool(self, token_0_mint: Pubkey, token_1_mint: Pubkey, amount_0: int, amount_1: int) -> int:
        """
        Check that a pool can be created without touching any balance.

        Returns:
            The initial liquidity, ``isqrt(amount_0 * amount_1)``.
        """
        if bytes(token_0_mint) >= bytes(token_1_mint):
            raise TransactionFailedError("Pool mints must be passed in ascending order")
        if amount_0 == 0 or amount_1 == 0:
            raise TransactionFailedError("Pool needs a non-zero amount of both tokens")

        pool = self.pool_address(token_0_mint, token_1_mint)
        if pool in self.pools:
            raise TransactionFailedError(f"Pool {pool} already exists")

        liquidity = math.isqrt(checked_mul(amount_0, amount_1))
        if liquidity <= self.locked_liquidity:
            raise TransactionFailedError(f"Initial liquidity {liquidity} does not exceed the locked amount")
        return liquidity

    def create_pool(self, creator: Pubkey, token_0_mint: Pubkey, token_1_mint: Pubkey,
                    amount_0: int, amount_1: int, open_time: int) -> PoolReceipt:
        liquidity = self.validate_pool(token_0_mint, token_1_mint, amount_0, amount_1)
        for mint, amount in ((token_0_mint, amount_0), (token_1_mint, amount_1)):
            available = self.tokens.balance(creator, mint)
            if available < amount:
                raise TransactionFailedError(f"Creator holds {available} of {mint}, pool needs {amount}")

        pool = self.pool_address(token_0_mint, token_1_mint)
        lp_amount = liquidity - self.locked_liquidity
        for mint, amount in ((token_0_mint, amount_0), (token_1_mint, amount_1)):
            self.tokens.create_associated_account(self.authority, mint)
            self.tokens.transfer(mint, creator, self.authority, amount, authority=creator)

        lp_mint = Pubkey.find_program_address([POOL_LP_MINT_SEED, bytes(pool)], self.program_id)[0]
        self.tokens.create_mint(lp_mint, LP_DECIMALS, self.authority)
        self.tokens.create_associated_account(creator, lp_mint)
        self.tokens.mint_to(lp_mint, creator, lp_amount, authority=self.authority)

        self.undo.touch(self.pools, pool)
        self.pools[pool] = PoolState(
            pool=pool,
            token_0_mint=token_0_mint,
            token_1_mint=token_1_mint,
            lp_mint=lp_mint,
            amount_0=amount_0,
            amount_1=amount_1,
            lp_supply=liquidity,
            open_time=open_time,
        )
        logger.info(f"Created pool {pool}: {amount_0} of {token_0_mint}, {amount_1} of {token_1_mint}, "
                    f"lp={lp_amount}")
        return PoolReceipt(pool, lp_mint, lp_amount)

    def to_state(self) -> list:
        return [p.model_dump(mode="json") for p in self.pools.values()]

    def load_state(self, state: list) -> None:
        pools = [PoolState.model_validate(p) for p in state]
        self.pools = {p.pool: p for p in pools}


class ExternalPoolGateway:
    def __init__(self, native: NativeLedger, tokens: TokenProgram, provisioner: InMemoryPoolProvisioner,
                 open_time: int = POOL_OPEN_TIME):
        self.native = native
        self.tokens = tokens
        self.provisioner = provisioner
        self.open_time = open_time

    def check_reserves(self, mint: Pubkey, token_amount: int, sol_amount: int) -> None:
        """Check that the sale vaults hold the reserves about to be moved."""
        vault_balance = self.native.balance(bonding_curve_vault_address(mint))
        if vault_balance < sol_amount:
            raise TransactionFailedError(f"Sale vault holds {vault_balance} lamports, needs {sol_amount}")
        token_balance = self.tokens.balance(bonding_curve_address(mint), mint)
        if token_balance < token_amount:
            raise TransactionFailedError(f"Sale token vault holds {token_balance}, needs {token_amount}")

    def provision(self, mint: Pubkey, caller: Pubkey, lp_recipient: Pubkey,
                  token_amount: int, sol_amount: int) -> MigrationReceipt:
        """Seed a new pool with the sale reserves and forward the LP tokens."""
        token_0_mint, token_1_mint = sort_mints(NATIVE_MINT, mint)
        if token_0_mint == NATIVE_MINT:
            amount_0, amount_1 = sol_amount, token_amount
        else:
            amount_0, amount_1 = token_amount, sol_amount
        self.provisioner.validate_pool(token_0_mint, token_1_mint, amount_0, amount_1)
        self.check_reserves(mint, token_amount, sol_amount)

        curve = bonding_curve_address(mint)
        vault = bonding_curve_vault_address(mint)

        caller_native = self.tokens.create_associated_account(caller, NATIVE_MINT)
        self.native.transfer(vault, caller_native, sol_amount, signer=vault)
        self.tokens.sync_native(caller)

        self.tokens.create_associated_account(caller, mint)
        self.tokens.transfer(mint, curve, caller, token_amount, authority=curve)

        receipt = self.provisioner.create_pool(caller, token_0_mint, token_1_mint, amount_0, amount_1, self.open_time)

        if not self.tokens.account_exists(lp_recipient, receipt.lp_mint):
            logger.debug(f"Creating LP token account for {lp_recipient}")
            self.tokens.create_associated_account(lp_recipient, receipt.lp_mint)
        lp_amount = self.tokens.balance(caller, receipt.lp_mint)
        self.tokens.transfer(receipt.lp_mint, caller, lp_recipient, lp_amount, authority=caller)

        return MigrationReceipt(token_amount, sol_amount, lp_amount, receipt.pool, receipt.lp_mint)

    def transfer_direct(self, mint: Pubkey, lp_recipient: Pubkey,
                        token_amount: int, sol_amount: int) -> MigrationReceipt:
        """Send the sale reserves to the LP recipient without creating a pool."""
        self.check_reserves(mint, token_amount, sol_amount)
        if sol_amount > 0:
            vault = bonding_curve_vault_address(mint)
            recipient_native = self.tokens.create_associated_account(lp_recipient, NATIVE_MINT)
            self.native.transfer(vault, recipient_native, sol_amount, signer=vault)
            self.tokens.sync_native(lp_recipient)

        if token_amount > 0:
            curve = bonding_curve_address(mint)
            self.tokens.create_associated_account(lp_recipient, mint)
            self.tokens.transfer(mint, curve, lp_recipient, token_amount, authority=curve)

        return MigrationReceipt(token_amount, sol_amount)
