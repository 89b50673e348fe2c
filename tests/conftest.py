import pytest
from types import SimpleNamespace

from solders.pubkey import Pubkey

from mcp_solana_launchpad.program import LaunchpadProgram

NOW = 1_700_000_000
DECIMALS = 6

# 1000 whole tokens: 600 sold, 100 creator, 50 platform, 200 pool, 50 burned
TOTAL_SUPPLY = 1_000_000_000
INVESTING_SUPPLY = 600_000_000
CREATOR_RESERVE = 100_000_000
PLATFORM_RESERVE = 50_000_000
POOL_RESERVE = 200_000_000

FEE_BPS = 100
PRICE_UP_BPS = 15_000
WITHDRAW_FEE_BPS = 500

PRICE = 1_000_000  # lamports per whole token
START_AT = NOW + 100
DEADLINE = NOW + 1_000
WHITELIST_START_AT = NOW + 10


class FakeClock:
    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def actors():
    return SimpleNamespace(
        authority=Pubkey.new_unique(),
        migration_caller=Pubkey.new_unique(),
        fee_recipient=Pubkey.new_unique(),
        lp_recipient=Pubkey.new_unique(),
        creator=Pubkey.new_unique(),
        buyer=Pubkey.new_unique(),
        other=Pubkey.new_unique(),
    )


@pytest.fixture
def program(clock):
    return LaunchpadProgram(clock=clock, token_decimals=DECIMALS)


def apply_default_params(program, actors):
    program.set_params(
        actors.authority,
        FEE_BPS,
        PRICE_UP_BPS,
        WITHDRAW_FEE_BPS,
        TOTAL_SUPPLY,
        INVESTING_SUPPLY,
        CREATOR_RESERVE,
        PLATFORM_RESERVE,
        POOL_RESERVE,
        actors.fee_recipient,
        actors.lp_recipient,
        actors.migration_caller,
    )


@pytest.fixture
def configured(program, actors):
    program.initialize(actors.authority)
    apply_default_params(program, actors)
    program.native.deposit(actors.buyer, 10**12)
    program.native.deposit(actors.other, 10**12)
    return program


@pytest.fixture
def mint(configured, actors):
    """A public sale opening at START_AT and ending at DEADLINE."""
    mint = Pubkey.new_unique()
    configured.create_token(
        actors.creator,
        mint,
        "Launch Token",
        "LAUNCH",
        "https://example.com/launch.json",
        PRICE,
        DEADLINE,
        START_AT,
    )
    return mint


@pytest.fixture
def terms():
    """Sale parameters used by the ``configured`` and ``mint`` fixtures."""
    return SimpleNamespace(
        now=NOW,
        decimals=DECIMALS,
        total_supply=TOTAL_SUPPLY,
        investing_supply=INVESTING_SUPPLY,
        creator_reserve=CREATOR_RESERVE,
        platform_reserve=PLATFORM_RESERVE,
        pool_reserve=POOL_RESERVE,
        fee_bps=FEE_BPS,
        price_up_bps=PRICE_UP_BPS,
        withdraw_fee_bps=WITHDRAW_FEE_BPS,
        price=PRICE,
        start_at=START_AT,
        deadline=DEADLINE,
        whitelist_start_at=WHITELIST_START_AT,
    )
