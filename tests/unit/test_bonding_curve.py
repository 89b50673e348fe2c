import pytest
from solders.pubkey import Pubkey

from mcp_solana_launchpad.accounts import bonding_curve_address, bonding_curve_vault_address
from mcp_solana_launchpad.errors import (
    AccountAlreadyInUseError,
    BondingCurveAlreadyMigratedError,
    BondingCurveAlreadyWithdrawedError,
    BondingCurveCompleteError,
    BondingCurveEndedError,
    BondingCurveNotCompleteError,
    BondingCurveNotEndedError,
    BondingCurveNotFoundError,
    BondingCurveNotStartError,
    BondingCurveNotWithdrawedError,
    InsufficientBalanceError,
    InvalidValueError,
    MerkleProofMissingError,
    NameTooLongError,
    NotAuthorizedError,
    NotInitializedError,
    NotWhitelistedError,
    SymbolTooLongError,
    TooLittleSolReceivedError,
    TooMuchSolRequiredError,
)
from mcp_solana_launchpad.events import CompleteEvent, CreateEvent, TradeEvent, WithdrawEvent
from mcp_solana_launchpad.merkle import MerkleTree, get_leaf_hash


def sold_out(program, actors, mint, terms, clock):
    clock.now = terms.start_at
    program.buy(actors.buyer, mint, terms.investing_supply - 100_000_000, 10**12)
    program.buy(actors.other, mint, 100_000_000, 10**12)


def create_allowlisted(program, actors, terms, members):
    tree = MerkleTree(get_leaf_hash(m) for m in members)
    mint = Pubkey.new_unique()
    program.create_token(
        actors.creator, mint, "Allowlisted", "ALLOW", "https://example.com/a.json",
        terms.price, terms.deadline, terms.start_at,
        whitelisted=True, merkle_root=tree.root, whitelist_start_at=terms.whitelist_start_at,
    )
    return mint, tree


# --- Creation ---

def test_create_token(configured, mint, actors, terms):
    curve = configured.get_bonding_curve(mint)
    assert curve.phase == "Active"
    assert curve.token_reserves == terms.total_supply
    assert curve.sol_reserves == 0
    assert curve.token_investing_supply == terms.investing_supply
    assert curve.token_launching_price == 1_500_000
    assert curve.withdraw_fee_bps == terms.withdraw_fee_bps
    assert curve.withdraw_recipient == actors.creator
    assert curve.whitelist_start_at == terms.start_at

    mint_info = configured.tokens.get_mint(mint)
    assert mint_info.supply == terms.total_supply
    assert mint_info.decimals == terms.decimals
    assert mint_info.mint_authority is None
    assert configured.tokens.balance(bonding_curve_address(mint), mint) == terms.total_supply
    assert configured.metadata.get(mint).symbol == "LAUNCH"
    assert len(configured.events.of_type(CreateEvent, mint)) == 1


def test_create_requires_initialized_config(program, actors, terms):
    with pytest.raises(NotInitializedError):
        program.create_token(actors.creator, Pubkey.new_unique(), "T", "T", "u",
                             terms.price, terms.deadline, terms.start_at)


def test_create_requires_configured_supply(program, actors, terms):
    program.initialize(actors.authority)
    with pytest.raises(InvalidValueError):
        program.create_token(actors.creator, Pubkey.new_unique(), "T", "T", "u",
                             terms.price, terms.deadline, terms.start_at)


@pytest.mark.parametrize("price, deadline, start, whitelist_start", [
    (0, 2_000, 1_000, 1_000),
    (1, 0, 0, 0),
    (1, 2_000, 2_000, 2_000),
    (1, 2_000, 1_000, 1_500),
])
def test_create_rejects_bad_schedule(configured, actors, terms, price, deadline, start, whitelist_start):
    with pytest.raises(InvalidValueError):
        configured.create_token(actors.creator, Pubkey.new_unique(), "T", "T", "u",
                                price, terms.now + deadline, terms.now + start,
                                whitelist_start_at=terms.now + whitelist_start)


def test_create_rejects_past_whitelist_start(configured, actors, terms):
    with pytest.raises(InvalidValueError):
        configured.create_token(actors.creator, Pubkey.new_unique(), "T", "T", "u",
                                terms.price, terms.deadline, terms.start_at,
                                whitelisted=True, whitelist_start_at=terms.now - 1)


def test_create_rejects_long_metadata(configured, actors, terms):
    with pytest.raises(NameTooLongError):
        configured.create_token(actors.creator, Pubkey.new_unique(), "N" * 33, "T", "u",
                                terms.price, terms.deadline, terms.start_at)
    with pytest.raises(SymbolTooLongError):
        configured.create_token(actors.creator, Pubkey.new_unique(), "N", "S" * 11, "u",
                                terms.price, terms.deadline, terms.start_at)


def test_create_rejects_existing_mint(configured, mint, actors, terms):
    with pytest.raises(AccountAlreadyInUseError):
        configured.create_token(actors.creator, mint, "T", "T", "u",
                                terms.price, terms.deadline, terms.start_at)


def test_sale_keeps_parameters_from_creation(configured, mint, actors, terms):
    configured.set_params(
        actors.authority, 0, 20_000, 0, 2 * terms.total_supply, terms.investing_supply,
        0, 0, 0, actors.fee_recipient, actors.lp_recipient, actors.migration_caller,
    )
    curve = configured.get_bonding_curve(mint)
    assert curve.token_total_supply == terms.total_supply
    assert curve.token_launching_price == 1_500_000
    assert curve.withdraw_fee_bps == terms.withdraw_fee_bps


# --- Buying ---

def test_buy_records_purchase(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    quote = configured.buy(actors.buyer, mint, 100_000_000, 100_000_000)
    assert quote == (100_000_000, 100_000_000, False)

    curve = configured.get_bonding_curve(mint)
    assert curve.sol_reserves == 100_000_000
    assert curve.token_reserves == terms.total_supply - 100_000_000
    assert configured.get_user_purchase(mint, actors.buyer).token_amount == 100_000_000
    assert configured.vault_balance(mint) == 100_000_000
    assert configured.native.balance(actors.buyer) == 10**12 - 100_000_000
    # nothing is delivered until claim
    assert configured.tokens.balance(actors.buyer, mint) == 0

    trade = configured.events.of_type(TradeEvent, mint)[-1]
    assert trade.is_buy and trade.fee_amount == 0 and trade.timestamp == terms.start_at


def test_buy_before_start_is_rejected(configured, mint, actors, terms, clock):
    clock.now = terms.start_at - 1
    with pytest.raises(BondingCurveNotStartError):
        configured.buy(actors.buyer, mint, 1_000_000, 10**12)


def test_buy_after_deadline_is_rejected(configured, mint, actors, terms, clock):
    clock.now = terms.deadline
    with pytest.raises(BondingCurveEndedError):
        configured.buy(actors.buyer, mint, 1_000_000, 10**12)


def test_buy_slippage(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    with pytest.raises(TooMuchSolRequiredError):
        configured.buy(actors.buyer, mint, 100_000_000, 99_999_999)
    assert configured.get_user_purchase(mint, actors.buyer) is None
    assert configured.vault_balance(mint) == 0


def test_buy_rejects_zero_amounts(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    with pytest.raises(InvalidValueError):
        configured.buy(actors.buyer, mint, 0, 10**12)
    with pytest.raises(InvalidValueError):
        configured.buy(actors.buyer, mint, 1, 0)


def test_buy_unknown_mint(configured, actors, terms, clock):
    clock.now = terms.start_at
    with pytest.raises(BondingCurveNotFoundError):
        configured.buy(actors.buyer, Pubkey.new_unique(), 1, 10**12)


def test_closing_buy_is_clipped_and_completes(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    configured.buy(actors.buyer, mint, terms.investing_supply - 50_000_000, 10**12)
    quote = configured.buy(actors.other, mint, 100_000_000, 10**12)
    assert quote.token_amount == 50_000_000
    assert quote.sol_cost == 50_000_000
    assert quote.completes
    assert configured.events.of_type(TradeEvent, mint)[-1].token_amount == 50_000_000

    curve = configured.get_bonding_curve(mint)
    assert curve.completed
    assert curve.phase == "Completed"
    assert curve.tokens_sold == terms.investing_supply
    assert len(configured.events.of_type(CompleteEvent, mint)) == 1
    with pytest.raises(BondingCurveCompleteError):
        configured.buy(actors.buyer, mint, 1, 10**12)


def test_views_after_completion(configured, mint, actors, terms, clock):
    sold_out(configured, actors, mint, terms, clock)
    with pytest.raises(BondingCurveCompleteError):
        configured.quote_buy(mint, 1)
    with pytest.raises(BondingCurveCompleteError):
        configured.quote_sell(mint, 1)

    configured.withdraw(actors.migration_caller, mint)
    assert configured.get_bonding_curve(mint).tokens_sold == terms.investing_supply
    with pytest.raises(BondingCurveCompleteError):
        configured.quote_buy(mint, 1)

    configured.migrate_liquidity(actors.migration_caller, mint)
    assert configured.get_bonding_curve(mint).tokens_sold == terms.investing_supply


def test_reserves_are_conserved(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    for amount in (1, 333_333, 7_000_000, 123_456_789):
        configured.buy(actors.buyer, mint, amount, 10**12)
        curve = configured.get_bonding_curve(mint)
        recorded = configured.get_user_purchase(mint, actors.buyer).token_amount
        assert curve.token_reserves + recorded == terms.total_supply
        assert configured.vault_balance(mint) == curve.sol_reserves


# --- Allowlist window ---

def test_allowlisted_buyer_can_buy_early(configured, actors, terms, clock):
    mint, tree = create_allowlisted(configured, actors, terms, [actors.buyer, actors.creator])
    clock.now = terms.whitelist_start_at
    proof = tree.proof(get_leaf_hash(actors.buyer))
    quote = configured.buy(actors.buyer, mint, 1_000_000, 10**12, merkle_proof=proof)
    assert quote.token_amount == 1_000_000


def test_allowlist_window_rejections(configured, actors, terms, clock):
    mint, tree = create_allowlisted(configured, actors, terms, [actors.buyer, actors.creator])
    proof = tree.proof(get_leaf_hash(actors.buyer))

    clock.now = terms.whitelist_start_at - 1
    with pytest.raises(BondingCurveNotStartError):
        configured.buy(actors.buyer, mint, 1_000_000, 10**12, merkle_proof=proof)

    clock.now = terms.whitelist_start_at
    with pytest.raises(MerkleProofMissingError):
        configured.buy(actors.buyer, mint, 1_000_000, 10**12)
    with pytest.raises(NotWhitelistedError):
        configured.buy(actors.other, mint, 1_000_000, 10**12, merkle_proof=proof)


def test_public_window_needs_no_proof(configured, actors, terms, clock):
    mint, _ = create_allowlisted(configured, actors, terms, [actors.buyer])
    clock.now = terms.start_at
    quote = configured.buy(actors.other, mint, 1_000_000, 10**12)
    assert quote.token_amount == 1_000_000


def test_not_whitelisted_sale_is_closed_before_start(configured, mint, actors, terms, clock):
    clock.now = terms.whitelist_start_at
    with pytest.raises(BondingCurveNotStartError):
        configured.buy(actors.buyer, mint, 1_000_000, 10**12, merkle_proof=[])


def test_set_merkle_root(configured, actors, terms, clock):
    mint, _ = create_allowlisted(configured, actors, terms, [actors.buyer])
    new_tree = MerkleTree([get_leaf_hash(actors.other)])
    with pytest.raises(NotAuthorizedError):
        configured.set_merkle_root(actors.creator, mint, new_tree.root)
    configured.set_merkle_root(actors.authority, mint, new_tree.root)

    clock.now = terms.whitelist_start_at
    configured.buy(actors.other, mint, 1_000_000, 10**12, merkle_proof=new_tree.proof(new_tree.root))
    with pytest.raises(InvalidValueError):
        configured.set_merkle_root(actors.authority, mint, b"short")


# --- Selling ---

def test_sell_refunds_after_deadline(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    configured.buy(actors.buyer, mint, 100_000_000, 10**12)
    balance_after_buy = configured.native.balance(actors.buyer)

    clock.now = terms.deadline
    refund = configured.sell(actors.buyer, mint, 40_000_000, 40_000_000)
    assert refund == 40_000_000
    assert configured.native.balance(actors.buyer) == balance_after_buy + 40_000_000
    assert configured.get_user_purchase(mint, actors.buyer).token_amount == 60_000_000

    curve = configured.get_bonding_curve(mint)
    assert curve.sol_reserves == 60_000_000
    assert curve.token_reserves == terms.total_supply - 60_000_000
    assert not configured.events.of_type(TradeEvent, mint)[-1].is_buy


def test_sell_before_deadline_is_rejected(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    configured.buy(actors.buyer, mint, 100_000_000, 10**12)
    with pytest.raises(BondingCurveNotEndedError):
        configured.sell(actors.buyer, mint, 1_000_000, 1)


def test_sell_more_than_recorded(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    configured.buy(actors.buyer, mint, 100_000_000, 10**12)
    clock.now = terms.deadline
    with pytest.raises(InsufficientBalanceError):
        configured.sell(actors.buyer, mint, 100_000_001, 1)
    with pytest.raises(InsufficientBalanceError):
        configured.sell(actors.other, mint, 1, 1)


def test_sell_slippage(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    configured.buy(actors.buyer, mint, 100_000_000, 10**12)
    clock.now = terms.deadline
    with pytest.raises(TooLittleSolReceivedError):
        configured.sell(actors.buyer, mint, 40_000_000, 40_000_001)


def test_sell_of_completed_sale_is_rejected(configured, mint, actors, terms, clock):
    sold_out(configured, actors, mint, terms, clock)
    clock.now = terms.deadline
    with pytest.raises(BondingCurveCompleteError):
        configured.sell(actors.buyer, mint, 1_000_000, 1)


# --- Withdrawal ---

def test_withdraw_settles_once(configured, mint, actors, terms, clock):
    sold_out(configured, actors, mint, terms, clock)
    settlement = configured.withdraw(actors.migration_caller, mint)
    assert settlement.token_burn == 50_000_000
    assert settlement.fee == 15_000_000
    assert settlement.creator_amount == 285_000_000

    curve = configured.get_bonding_curve(mint)
    assert curve.withdrawed and curve.phase == "Withdrawn"
    assert curve.token_reserves == terms.pool_reserve
    assert curve.sol_reserves == 300_000_000
    assert configured.vault_balance(mint) == 300_000_000
    assert configured.native.balance(actors.creator) == 285_000_000
    assert configured.native.balance(actors.fee_recipient) == 15_000_000
    assert configured.tokens.balance(actors.creator, mint) == terms.creator_reserve
    assert configured.tokens.balance(actors.fee_recipient, mint) == terms.platform_reserve
    assert configured.tokens.get_mint(mint).supply == terms.total_supply - 50_000_000
    assert len(configured.events.of_type(WithdrawEvent, mint)) == 1

    with pytest.raises(BondingCurveAlreadyWithdrawedError):
        configured.withdraw(actors.migration_caller, mint)


def test_withdraw_pays_custom_recipient(configured, actors, terms, clock):
    mint = Pubkey.new_unique()
    recipient = Pubkey.new_unique()
    configured.create_token(actors.creator, mint, "T", "T", "u", terms.price, terms.deadline,
                            terms.start_at, withdraw_recipient=recipient)
    sold_out(configured, actors, mint, terms, clock)
    configured.withdraw(actors.migration_caller, mint)
    assert configured.native.balance(recipient) == 285_000_000
    assert configured.native.balance(actors.creator) == 0


def test_withdraw_requires_migration_caller(configured, mint, actors, terms, clock):
    sold_out(configured, actors, mint, terms, clock)
    with pytest.raises(NotAuthorizedError):
        configured.withdraw(actors.authority, mint)


def test_withdraw_requires_completion(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    configured.buy(actors.buyer, mint, 1_000_000, 10**12)
    with pytest.raises(BondingCurveNotCompleteError):
        configured.withdraw(actors.migration_caller, mint)


# --- Migration ---

def test_migrate_requires_withdrawal(configured, mint, actors, terms, clock):
    sold_out(configured, actors, mint, terms, clock)
    with pytest.raises(BondingCurveNotWithdrawedError):
        configured.migrate_liquidity(actors.migration_caller, mint)


def test_migrate_liquidity(configured, mint, actors, terms, clock):
    sold_out(configured, actors, mint, terms, clock)
    configured.withdraw(actors.migration_caller, mint)
    receipt = configured.migrate_liquidity(actors.migration_caller, mint)

    assert receipt.token_amount == terms.pool_reserve
    assert receipt.sol_amount == 300_000_000
    assert receipt.lp_amount > 0
    assert configured.tokens.balance(actors.lp_recipient, receipt.lp_mint) == receipt.lp_amount
    assert configured.tokens.balance(actors.migration_caller, receipt.lp_mint) == 0
    assert configured.vault_balance(mint) == 0

    curve = configured.get_bonding_curve(mint)
    assert curve.migrated and curve.phase == "Migrated"
    assert curve.sol_reserves == 0 and curve.token_reserves == 0
    # only the buyers' tokens are left in the sale vault
    assert configured.tokens.balance(bonding_curve_address(mint), mint) == terms.investing_supply

    with pytest.raises(BondingCurveAlreadyMigratedError):
        configured.migrate_liquidity(actors.migration_caller, mint)
    with pytest.raises(BondingCurveAlreadyMigratedError):
        configured.migrate_liquidity_fallback(actors.migration_caller, mint)


def test_migrate_liquidity_fallback(configured, mint, actors, terms, clock):
    sold_out(configured, actors, mint, terms, clock)
    configured.withdraw(actors.migration_caller, mint)
    receipt = configured.migrate_liquidity_fallback(actors.migration_caller, mint)

    assert receipt.lp_amount == 0 and receipt.pool is None
    assert configured.tokens.balance(actors.lp_recipient, mint) == terms.pool_reserve
    assert configured.tokens.sync_native(actors.lp_recipient) == 300_000_000
    assert configured.get_bonding_curve(mint).migrated


def test_migrate_rechecks_vault_balance(configured, mint, actors, terms, clock):
    sold_out(configured, actors, mint, terms, clock)
    configured.withdraw(actors.migration_caller, mint)
    vault = bonding_curve_vault_address(mint)
    configured.native.lamports[vault] -= 1
    with pytest.raises(BondingCurveAlreadyMigratedError):
        configured.migrate_liquidity(actors.migration_caller, mint)
    assert not configured.get_bonding_curve(mint).migrated


def test_set_migrated_moves_no_funds(configured, mint, actors, terms, clock):
    sold_out(configured, actors, mint, terms, clock)
    configured.withdraw(actors.migration_caller, mint)
    with pytest.raises(NotAuthorizedError):
        configured.set_migrated(actors.authority, mint)

    curve = configured.set_migrated(actors.migration_caller, mint)
    assert curve.migrated
    assert curve.sol_reserves == 300_000_000
    assert configured.vault_balance(mint) == 300_000_000
    with pytest.raises(BondingCurveAlreadyMigratedError):
        configured.set_migrated(actors.migration_caller, mint)


def test_flags_only_move_forward(configured, mint, actors, terms, clock):
    sold_out(configured, actors, mint, terms, clock)
    phases = [configured.get_bonding_curve(mint).phase]
    configured.withdraw(actors.migration_caller, mint)
    phases.append(configured.get_bonding_curve(mint).phase)
    configured.migrate_liquidity(actors.migration_caller, mint)
    phases.append(configured.get_bonding_curve(mint).phase)

    for rejected in (
        lambda: configured.buy(actors.buyer, mint, 1, 10**12),
        lambda: configured.withdraw(actors.migration_caller, mint),
        lambda: configured.set_migrated(actors.migration_caller, mint),
    ):
        with pytest.raises(Exception):
            rejected()
        curve = configured.get_bonding_curve(mint)
        assert curve.completed and curve.withdrawed and curve.migrated
    assert phases == ["Completed", "Withdrawn", "Migrated"]
