"""
Solana Launchpad Server - MCP Server Implementation

This module exposes the launchpad program over the Model Context Protocol. Every
instruction and read-only view of the token-sale engine is a tool; callers are
identified by base58 public keys, and Merkle roots and proof nodes travel as hex
strings.

Key Features:
- Global configuration: initialize, authority hand-over, sale parameters
- Token creation with an optional Merkle allowlist window
- Fixed-price buying, refund selling after an expired sale
- One-time withdrawal settlement, pool migration (with a direct-transfer fallback)
- Post-migration claims
- Allowlist tooling: Merkle root and per-address proofs

Error Handling:
- Launchpad rejections are returned as "Error [<code>]: <message>"
- Malformed input is reported without touching the program state
- Unexpected failures are logged with traceback and reported generically

State:
    The program lives in memory. When STATE_FILE is set, it is loaded on startup
    and written back after every successful mutating tool.
"""

import json
import time
from typing import Callable, List, Optional

from pydantic import Field
from solders.pubkey import Pubkey

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_solana_launchpad import config
from mcp_solana_launchpad.accounts import (
    bonding_curve_address,
    bonding_curve_vault_address,
    global_address,
    user_purchase_address,
)
from mcp_solana_launchpad.errors import LaunchpadError, TransactionFailedError, ValidationError
from mcp_solana_launchpad.ledger import lamports_to_sol
from mcp_solana_launchpad.merkle import build_allowlist as build_allowlist_tree
from mcp_solana_launchpad.program import LaunchpadProgram
from mcp_solana_launchpad.schemas import ZERO_HASH
from mcp_solana_launchpad.utils import U64_MAX, parse_hash32, parse_proof, parse_pubkey

logger = get_logger(__name__)

MAX_ALLOWLIST_SIZE = 10_000

# --- Server Setup ---
mcp = FastMCP(name="Solana Launchpad Server")


def _load_program() -> LaunchpadProgram:
    if config.STATE_FILE:
        return LaunchpadProgram.load(config.STATE_FILE)
    return LaunchpadProgram()


program = _load_program()


def _persist() -> None:
    if config.STATE_FILE:
        program.save(config.STATE_FILE)


# --- Helper Functions ---

def _pubkey(value: str, name: str) -> Pubkey:
    try:
        return parse_pubkey(value, name)
    except ValueError as e:
        raise ValidationError(str(e))


def _amount(value: int, name: str, allow_zero: bool = False) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    lower = 0 if allow_zero else 1
    if not lower <= value <= U64_MAX:
        raise ValidationError(f"{name} must be between {lower} and {U64_MAX}")
    return value


def _hash32(value: Optional[str], name: str, default: Optional[bytes] = None) -> bytes:
    if not value:
        if default is None:
            raise ValidationError(f"{name} must be a non-empty hex string")
        return default
    try:
        return parse_hash32(value, name)
    except ValueError as e:
        raise ValidationError(str(e))


def _proof(nodes: Optional[List[str]]) -> Optional[List[bytes]]:
    try:
        return parse_proof(nodes)
    except ValueError as e:
        raise ValidationError(str(e))


def _error_response(operation: str, error: Exception) -> str:
    """Log a rejected operation and turn it into the message returned to the client."""
    if isinstance(error, LaunchpadError):
        logger.warning(f"{operation} rejected [{error.code}]: {error}")
        return f"Error [{error.code}]: {error}"
    if isinstance(error, ValidationError):
        logger.error(f"Validation error in {operation}: {error}")
        return f"Error: Invalid input - {error}"
    if isinstance(error, TransactionFailedError):
        logger.error(f"{operation} failed: {error}")
        return f"Error: Transaction failed - {error}"
    logger.exception(f"Unexpected error in {operation}: {error}")
    return f"An unexpected server error occurred during {operation}."


def _execute(operation: str, action: Callable[[], str], mutates: bool = True) -> str:
    start_time = time.perf_counter()
    try:
        result = action()
    except Exception as e:
        return _error_response(operation, e)
    if mutates:
        _persist()
    logger.debug(f"{operation} completed in {time.perf_counter() - start_time:.3f}s")
    return result


# --- Read-only Views ---

@mcp.tool()
async def get_global_config(context: Context) -> str:
    """Get the global launchpad parameters."""
    def action() -> str:
        data = program.global_config.model_dump(mode="json")
        data["address"] = str(global_address())
        return json.dumps(data, indent=2)

    return _execute("get_global_config", action, mutates=False)


@mcp.tool()
async def get_bonding_curve(context: Context, mint: str = Field(..., description="The token mint address.")) -> str:
    """Get the sale state of a token, including its phase."""
    def action() -> str:
        curve = program.get_bonding_curve(_pubkey(mint, "mint"))
        data = curve.model_dump(mode="json")
        data["phase"] = curve.phase
        data["tokens_sold"] = curve.tokens_sold
        data["bonding_curve"] = str(bonding_curve_address(curve.mint))
        data["vault"] = str(bonding_curve_vault_address(curve.mint))
        data["vault_balance"] = program.vault_balance(curve.mint)
        metadata = program.get_token_metadata(curve.mint)
        if metadata is not None:
            data["name"] = metadata.name
            data["symbol"] = metadata.symbol
            data["uri"] = metadata.uri
        return json.dumps(data, indent=2)

    return _execute("get_bonding_curve", action, mutates=False)


@mcp.tool()
async def get_user_purchase(
    context: Context,
    mint: str = Field(..., description="The token mint address."),
    user: str = Field(..., description="The buyer's address."),
) -> str:
    """Get the number of purchased, unclaimed token base units of a buyer."""
    def action() -> str:
        mint_key = _pubkey(mint, "mint")
        user_key = _pubkey(user, "user")
        program.get_bonding_curve(mint_key)
        record = program.get_user_purchase(mint_key, user_key)
        if record is None:
            return f"No purchase record for {user} on {mint}."
        data = record.model_dump(mode="json")
        data["address"] = str(user_purchase_address(mint_key, user_key))
        return json.dumps(data, indent=2)

    return _execute("get_user_purchase", action, mutates=False)


@mcp.tool()
async def get_balance(
    context: Context,
    owner: str = Field(..., description="The account owner address."),
    mint: Optional[str] = Field(None, description="Token mint; omit for the native balance."),
) -> str:
    """Get the lamport balance of an address, or its token balance for a mint."""
    def action() -> str:
        owner_key = _pubkey(owner, "owner")
        if mint is None:
            lamports = program.native.balance(owner_key)
            return json.dumps({"owner": owner, "lamports": lamports, "sol": lamports_to_sol(lamports)})
        mint_key = _pubkey(mint, "mint")
        return json.dumps({"owner": owner, "mint": mint, "amount": program.tokens.balance(owner_key, mint_key)})

    return _execute("get_balance", action, mutates=False)


@mcp.tool()
async def quote_buy(
    context: Context,
    mint: str = Field(..., description="The token mint address."),
    amount: int = Field(..., description="Requested token amount (in base units)."),
) -> str:
    """Price a buy without executing it; the amount is clipped to the remaining allocation."""
    def action() -> str:
        quote = program.quote_buy(_pubkey(mint, "mint"), _amount(amount, "amount"))
        return json.dumps(quote._asdict())

    return _execute("quote_buy", action, mutates=False)


@mcp.tool()
async def quote_sell(
    context: Context,
    mint: str = Field(..., description="The token mint address."),
    amount: int = Field(..., description="Token amount to sell back (in base units)."),
) -> str:
    """Price a refund sell without executing it."""
    def action() -> str:
        sol_amount = program.quote_sell(_pubkey(mint, "mint"), _amount(amount, "amount"))
        return json.dumps({"token_amount": amount, "sol_amount": sol_amount})

    return _execute("quote_sell", action, mutates=False)


# --- Administration ---

@mcp.tool()
async def initialize(context: Context, caller: str = Field(..., description="The initial authority address.")) -> str:
    """Create the global configuration with the caller as its authority."""
    def action() -> str:
        cfg = program.initialize(_pubkey(caller, "caller"))
        return f"Launchpad initialized. Authority: {cfg.authority}"

    return _execute("initialize", action)


@mcp.tool()
async def set_authority(
    context: Context,
    caller: str = Field(..., description="The current authority address."),
    new_authority: str = Field(..., description="The new authority address."),
) -> str:
    """Hand the global authority over to another address."""
    def action() -> str:
        cfg = program.set_authority(_pubkey(caller, "caller"), _pubkey(new_authority, "new_authority"))
        return f"Authority changed to {cfg.authority}"

    return _execute("set_authority", action)


@mcp.tool()
async def set_params(
    context: Context,
    caller: str = Field(..., description="The authority address."),
    fee_bps: int = Field(..., description="Trade fee in basis points (< 10000)."),
    token_price_up_bps: int = Field(..., description="Launch price multiplier in basis points (>= 10000)."),
    withdraw_fee_bps: int = Field(..., description="Platform cut of the withdrawn proceeds in basis points (< 10000)."),
    token_total_supply: int = Field(..., description="Total supply minted per token (in base units)."),
    token_investing_supply: int = Field(..., description="Allocation sold during the sale (in base units)."),
    token_creator_reserve: int = Field(..., description="Tokens paid to the creator on withdrawal."),
    token_platform_reserve: int = Field(..., description="Tokens paid to the platform on withdrawal."),
    token_pool_reserve: int = Field(..., description="Tokens used to seed the pool on migration."),
    fee_recipient: str = Field(..., description="Platform fee recipient address."),
    lp_recipient: str = Field(..., description="Recipient of the pool LP tokens."),
    migration_caller: str = Field(..., description="The only address allowed to withdraw and migrate."),
) -> str:
    """Replace every global sale parameter at once. Existing sales are not affected."""
    def action() -> str:
        program.set_params(
            _pubkey(caller, "caller"),
            _amount(fee_bps, "fee_bps", allow_zero=True),
            _amount(token_price_up_bps, "token_price_up_bps", allow_zero=True),
            _amount(withdraw_fee_bps, "withdraw_fee_bps", allow_zero=True),
            _amount(token_total_supply, "token_total_supply", allow_zero=True),
            _amount(token_investing_supply, "token_investing_supply", allow_zero=True),
            _amount(token_creator_reserve, "token_creator_reserve", allow_zero=True),
            _amount(token_platform_reserve, "token_platform_reserve", allow_zero=True),
            _amount(token_pool_reserve, "token_pool_reserve", allow_zero=True),
            _pubkey(fee_recipient, "fee_recipient"),
            _pubkey(lp_recipient, "lp_recipient"),
            _pubkey(migration_caller, "migration_caller"),
        )
        return "Global parameters updated."

    return _execute("set_params", action)


@mcp.tool()
async def set_merkle_root(
    context: Context,
    caller: str = Field(..., description="The authority address."),
    mint: str = Field(..., description="The token mint address."),
    merkle_root: str = Field(..., description="New allowlist root as a 32-byte hex string."),
) -> str:
    """Replace the allowlist root of a sale that has not completed."""
    def action() -> str:
        root = _hash32(merkle_root, "merkle_root")
        curve = program.set_merkle_root(_pubkey(caller, "caller"), _pubkey(mint, "mint"), root)
        return f"Merkle root for {curve.mint} set to {root.hex()}"

    return _execute("set_merkle_root", action)


@mcp.tool()
async def set_migrated(
    context: Context,
    caller: str = Field(..., description="The migration caller address."),
    mint: str = Field(..., description="The token mint address."),
) -> str:
    """Mark a withdrawn sale as migrated without moving funds (recovery only)."""
    def action() -> str:
        curve = program.set_migrated(_pubkey(caller, "caller"), _pubkey(mint, "mint"))
        return f"Bonding curve for {curve.mint} marked as migrated. No funds were moved."

    return _execute("set_migrated", action)


@mcp.tool()
async def airdrop(
    context: Context,
    address: str = Field(..., description="The address to credit."),
    lamports: int = Field(..., description="Lamports to credit."),
) -> str:
    """Credit lamports to an address in the in-memory ledger."""
    def action() -> str:
        owner = _pubkey(address, "address")
        program.native.deposit(owner, _amount(lamports, "lamports"))
        return f"Credited {lamports} lamports to {address}. Balance: {program.native.balance(owner)}"

    return _execute("airdrop", action)


# --- Sale Lifecycle ---

@mcp.tool()
async def create_token(
    context: Context,
    payer: str = Field(..., description="The creator's address."),
    mint: str = Field(..., description="Address of the new token mint."),
    name: str = Field(..., description="Token name (max 32 characters)."),
    symbol: str = Field(..., description="Token symbol (max 10 characters)."),
    uri: str = Field(..., description="Metadata URI (max 200 characters)."),
    token_investing_price: int = Field(..., description="Lamports per whole token during the sale."),
    token_investing_deadline: int = Field(..., description="UNIX time at which the sale ends."),
    investing_start_at: int = Field(..., description="UNIX time at which the public sale starts."),
    whitelisted: bool = Field(False, description="Enable the allowlist window before the public sale."),
    merkle_root: Optional[str] = Field(None, description="Allowlist root as a 32-byte hex string."),
    whitelist_start_at: Optional[int] = Field(None, description="UNIX time at which the allowlist window opens."),
    withdraw_recipient: Optional[str] = Field(None, description="Recipient of the creator proceeds; defaults to payer."),
) -> str:
    """
    Create a token and open its sale.

    The full supply is minted into the sale vault and the mint authority revoked.
    The current global parameters are copied into the sale.

    Returns:
        str: Summary of the new sale, or an error message
    """
    def action() -> str:
        payer_key = _pubkey(payer, "payer")
        recipient = _pubkey(withdraw_recipient, "withdraw_recipient") if withdraw_recipient else None
        curve = program.create_token(
            payer_key,
            _pubkey(mint, "mint"),
            name,
            symbol,
            uri,
            _amount(token_investing_price, "token_investing_price"),
            _amount(token_investing_deadline, "token_investing_deadline"),
            _amount(investing_start_at, "investing_start_at", allow_zero=True),
            whitelisted=bool(whitelisted),
            merkle_root=_hash32(merkle_root, "merkle_root", default=ZERO_HASH),
            whitelist_start_at=whitelist_start_at,
            withdraw_recipient=recipient,
        )
        logger.info(f"Token {symbol} created by {payer}")
        return (f"Created token {symbol} ({curve.mint}). "
                f"Investing supply: {curve.token_investing_supply}, "
                f"price: {curve.token_investing_price} lamports, "
                f"launch price: {curve.token_launching_price} lamports, "
                f"deadline: {curve.token_investing_deadline}")

    return _execute("create_token", action)


@mcp.tool()
async def buy_tokens(
    context: Context,
    buyer: str = Field(..., description="The buyer's address."),
    mint: str = Field(..., description="The token mint address."),
    amount: int = Field(..., description="The number of tokens to purchase (in base units)."),
    max_sol_cost: int = Field(..., description="Slippage bound: most lamports the buyer will pay."),
    merkle_proof: Optional[List[str]] = Field(None, description="Allowlist proof as hex nodes (allowlist window only)."),
) -> str:
    """
    Buy tokens from an active sale.

    The amount is clipped to the remaining investing allocation; the buy that takes
    the last of it completes the sale. Tokens are recorded, not delivered: they are
    claimed after migration.

    Returns:
        str: Filled amount and cost, or an error message
    """
    def action() -> str:
        quote = program.buy(
            _pubkey(buyer, "buyer"),
            _pubkey(mint, "mint"),
            _amount(amount, "amount"),
            _amount(max_sol_cost, "max_sol_cost"),
            _proof(merkle_proof),
        )
        message = f"Bought {quote.token_amount} token units of {mint} for {quote.sol_cost} lamports."
        if quote.completes:
            message += " The sale is now complete."
        return message

    return _execute("buy_tokens", action)


@mcp.tool()
async def sell_tokens(
    context: Context,
    seller: str = Field(..., description="The seller's address."),
    mint: str = Field(..., description="The token mint address."),
    amount: int = Field(..., description="The number of recorded tokens to sell back (in base units)."),
    min_sol_output: int = Field(..., description="Slippage bound: fewest lamports the seller accepts."),
) -> str:
    """Sell recorded tokens back for a refund after the sale expired without completing."""
    def action() -> str:
        sol_amount = program.sell(
            _pubkey(seller, "seller"),
            _pubkey(mint, "mint"),
            _amount(amount, "amount"),
            _amount(min_sol_output, "min_sol_output"),
        )
        return f"Sold {amount} token units of {mint} for {sol_amount} lamports."

    return _execute("sell_tokens", action)


@mcp.tool()
async def withdraw(
    context: Context,
    caller: str = Field(..., description="The migration caller address."),
    mint: str = Field(..., description="The token mint address."),
) -> str:
    """Settle a completed sale: burn excess tokens and pay the creator and the platform."""
    def action() -> str:
        settlement = program.withdraw(_pubkey(caller, "caller"), _pubkey(mint, "mint"))
        return json.dumps(settlement._asdict(), indent=2)

    return _execute("withdraw", action)


@mcp.tool()
async def migrate_liquidity(
    context: Context,
    caller: str = Field(..., description="The migration caller address."),
    mint: str = Field(..., description="The token mint address."),
) -> str:
    """Seed an external pool with the remaining reserves of a withdrawn sale."""
    def action() -> str:
        receipt = program.migrate_liquidity(_pubkey(caller, "caller"), _pubkey(mint, "mint"))
        return (f"Migrated {receipt.token_amount} token units and {receipt.sol_amount} lamports "
                f"to pool {receipt.pool}. LP tokens forwarded: {receipt.lp_amount}")

    return _execute("migrate_liquidity", action)


@mcp.tool()
async def migrate_liquidity_fallback(
    context: Context,
    caller: str = Field(..., description="The migration caller address."),
    mint: str = Field(..., description="The token mint address."),
) -> str:
    """Send the remaining reserves of a withdrawn sale straight to the LP recipient."""
    def action() -> str:
        receipt = program.migrate_liquidity_fallback(_pubkey(caller, "caller"), _pubkey(mint, "mint"))
        return (f"Transferred {receipt.token_amount} token units and {receipt.sol_amount} lamports "
                f"to the LP recipient.")

    return _execute("migrate_liquidity_fallback", action)


@mcp.tool()
async def claim_tokens(
    context: Context,
    user: str = Field(..., description="The buyer's address."),
    mint: str = Field(..., description="The token mint address."),
) -> str:
    """Deliver a buyer's purchased tokens once the sale has migrated."""
    def action() -> str:
        token_amount = program.claim(_pubkey(user, "user"), _pubkey(mint, "mint"))
        return f"Claimed {token_amount} token units of {mint}."

    return _execute("claim_tokens", action)


# --- Allowlist Tooling ---

@mcp.tool()
async def build_allowlist(
    context: Context,
    addresses: List[str] = Field(..., description="Addresses admitted to the allowlist window."),
) -> str:
    """Build the allowlist Merkle root and a proof for every address."""
    def action() -> str:
        if not addresses:
            raise ValidationError("At least one address is required")
        if len(addresses) > MAX_ALLOWLIST_SIZE:
            raise ValidationError(f"Too many addresses (max {MAX_ALLOWLIST_SIZE})")
        keys = [_pubkey(address, "address") for address in addresses]
        return json.dumps(build_allowlist_tree(keys), indent=2)

    return _execute("build_allowlist", action, mutates=False)


# --- Main Execution ---
if __name__ == "__main__":
    logger.info("Starting Solana Launchpad MCP Server...")
    logger.info(f"Loaded {len(program.store.bonding_curves)} sale(s), program id {config.PROGRAM_ID}")

    try:
        mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("Server shutdown requested by user")
    except Exception as e:
        logger.exception(f"Server error: {e}")
