import pytest
from solders.pubkey import Pubkey

from mcp_solana_launchpad.errors import (
    BondingCurveNotFoundError,
    InsufficientBalanceError,
    NoPurchaseRecordError,
    NotMigratedError,
)
from mcp_solana_launchpad.events import ClaimEvent


@pytest.fixture
def migrated(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    configured.buy(actors.buyer, mint, 450_000_000, 10**12)
    configured.buy(actors.other, mint, 150_000_000, 10**12)
    configured.withdraw(actors.migration_caller, mint)
    configured.migrate_liquidity(actors.migration_caller, mint)
    return mint


def test_purchases_accumulate(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    configured.buy(actors.buyer, mint, 1_000_000, 10**12)
    configured.buy(actors.buyer, mint, 2_000_000, 10**12)
    assert configured.purchases.recorded_amount(mint, actors.buyer) == 3_000_000
    assert configured.purchases.recorded_amount(mint, actors.other) == 0
    assert configured.get_user_purchase(mint, actors.other) is None


def test_reduce_purchase_checks_balance(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    configured.buy(actors.buyer, mint, 1_000_000, 10**12)
    with pytest.raises(InsufficientBalanceError):
        configured.purchases.reduce_purchase(mint, actors.buyer, 1_000_001)
    record = configured.purchases.reduce_purchase(mint, actors.buyer, 1_000_000)
    assert record.token_amount == 0


def test_claim_before_migration_is_rejected(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    configured.buy(actors.buyer, mint, 1_000_000, 10**12)
    with pytest.raises(NotMigratedError):
        configured.claim(actors.buyer, mint)


def test_claim_delivers_recorded_tokens(configured, migrated, actors):
    assert configured.claim(actors.buyer, migrated) == 450_000_000
    assert configured.tokens.balance(actors.buyer, migrated) == 450_000_000
    assert configured.get_user_purchase(migrated, actors.buyer).token_amount == 0

    event = configured.events.of_type(ClaimEvent, migrated)[-1]
    assert event.user == actors.buyer
    assert event.token_amount == 450_000_000


def test_claim_twice_is_rejected(configured, migrated, actors):
    configured.claim(actors.buyer, migrated)
    with pytest.raises(NoPurchaseRecordError):
        configured.claim(actors.buyer, migrated)
    assert configured.tokens.balance(actors.buyer, migrated) == 450_000_000


def test_claim_without_purchase(configured, migrated, actors):
    with pytest.raises(NoPurchaseRecordError):
        configured.claim(actors.creator, migrated)


def test_all_buyers_can_claim(configured, migrated, actors, terms):
    configured.claim(actors.buyer, migrated)
    configured.claim(actors.other, migrated)
    total = configured.tokens.balance(actors.buyer, migrated) + configured.tokens.balance(actors.other, migrated)
    assert total == terms.investing_supply


def test_claim_after_set_migrated(configured, mint, actors, terms, clock):
    clock.now = terms.start_at
    configured.buy(actors.buyer, mint, terms.investing_supply, 10**12)
    configured.withdraw(actors.migration_caller, mint)
    configured.set_migrated(actors.migration_caller, mint)
    assert configured.claim(actors.buyer, mint) == terms.investing_supply


def test_claim_unknown_mint(configured, actors):
    with pytest.raises(BondingCurveNotFoundError):
        configured.claim(actors.buyer, Pubkey.new_unique())
