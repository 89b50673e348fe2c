"""
Token Pricing and Settlement Arithmetic

This module holds every formula that turns token amounts into native-currency
amounts. The sale phase uses a static administrator-set price, not a continuous
curve function.

Rounding Rules:
- All division is floor (truncating) division.
- Products are computed in a u128-wide intermediate and must fit back into u64.
- Floor rounding favors the protocol over the trader and must be reproduced
  exactly: a buyer pays floor(amount * price / 10^decimals), a seller receives
  the same floor-rounded value.

Formulas:
- token_value(amount)   = floor(amount * price / 10^decimals)
- launching_price       = floor(price * price_up_bps / 10000)
- final_sol_reserves    = floor(pool_reserve * launching_price / 10^decimals)
- withdraw fee          = floor(sol_withdraw * withdraw_fee_bps / 10000)
"""
from typing import NamedTuple

from mcp_solana_launchpad.config import BASE_POINTS
from mcp_solana_launchpad.errors import BondingCurveCompleteError
from mcp_solana_launchpad.schemas import BondingCurve
from mcp_solana_launchpad.utils import checked_div, checked_mul, checked_sub, checked_sum, to_u64
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

# Cost charged when a closing buy rounds down to zero
MIN_BUY_COST = 1


class BuyQuote(NamedTuple):
    token_amount: int
    sol_cost: int
    completes: bool


class WithdrawSettlement(NamedTuple):
    token_burn: int
    final_token_reserves: int
    final_sol_reserves: int
    sol_withdraw: int
    fee: int
    creator_amount: int


def token_value(amount: int, price: int, decimals: int) -> int:
    """
    Value of ``amount`` token base units at ``price`` lamports per whole token.

    Raises:
        MathOverflowError: If the product exceeds u128 or the result exceeds u64.
    """
    return to_u64(checked_div(checked_mul(amount, price), 10**decimals))


def calculate_launching_price(price: int, price_up_bps: int) -> int:
    return to_u64(checked_div(checked_mul(price, price_up_bps), BASE_POINTS))


def quote_buy(curve: BondingCurve, amount: int, decimals: int) -> BuyQuote:
    """
    Clip a requested buy to the remaining allocation and price it.

    A request that reaches or exceeds the remaining investing allocation is filled
    only up to that allocation and completes the sale. A cost that rounds to zero
    is raised to MIN_BUY_COST so the sale can still close.

    Raises:
        BondingCurveCompleteError: If the allocation is already sold out.
    """
    if curve.completed:
        raise BondingCurveCompleteError()
    remaining = checked_sub(curve.token_investing_supply, curve.tokens_sold)

    token_amount = amount
    completes = False
    if amount >= remaining:
        token_amount = remaining
        completes = True

    sol_cost = token_value(token_amount, curve.token_investing_price, decimals)
    if sol_cost == 0:
        sol_cost = MIN_BUY_COST

    logger.debug(f"Buy quote for {curve.mint}: requested={amount}, filled={token_amount}, "
                 f"cost={sol_cost}, completes={completes}")
    return BuyQuote(token_amount, sol_cost, completes)


def quote_sell(curve: BondingCurve, amount: int, decimals: int) -> int:
    if curve.completed:
        raise BondingCurveCompleteError()
    return token_value(amount, curve.token_investing_price, decimals)


def calculate_withdraw_settlement(curve: BondingCurve, decimals: int) -> WithdrawSettlement:
    """
    Split the raised proceeds and the token reserves for the one-time withdrawal.

    Everything beyond the pool, creator and platform reserves is burned; the native
    currency needed to seed the pool at the launch price stays in the vault and the
    rest is split between the platform fee and the creator.

    Raises:
        MathOverflowError: If the reserves cannot cover the fixed token partition or
            the raised proceeds cannot cover the pool seed.
    """
    reserved = checked_sum([
        curve.token_pool_reserve,
        curve.token_creator_reserve,
        curve.token_platform_reserve,
    ])
    token_burn = checked_sub(curve.token_reserves, reserved)
    final_token_reserves = curve.token_pool_reserve
    final_sol_reserves = token_value(final_token_reserves, curve.token_launching_price, decimals)
    sol_withdraw = checked_sub(curve.sol_reserves, final_sol_reserves)
    fee = checked_div(checked_mul(sol_withdraw, curve.withdraw_fee_bps), BASE_POINTS)
    creator_amount = checked_sub(sol_withdraw, fee)
    return WithdrawSettlement(
        token_burn=token_burn,
        final_token_reserves=final_token_reserves,
        final_sol_reserves=final_sol_reserves,
        sol_withdraw=sol_withdraw,
        fee=fee,
        creator_amount=creator_amount,
    )
