"""
ConfigStore: the singleton administrator-controlled parameters.

The store is created once per program (``initialize``) and never deleted. Sale
logic only reads it, and only at token creation time, when the values a sale needs
are copied into its BondingCurve record; later parameter changes never affect an
existing sale. The withdrawal, migration and set_migrated instructions read the
live recipients and migration caller, as the settlement must go to the currently
configured platform accounts.
"""
from solders.pubkey import Pubkey

from mcp_solana_launchpad.config import BASE_POINTS
from mcp_solana_launchpad.errors import (
    AlreadyInitializedError,
    InvalidValueError,
    NotInitializedError,
)
from mcp_solana_launchpad.schemas import GlobalConfig
from mcp_solana_launchpad.undo import UndoLog
from mcp_solana_launchpad.utils import U16_MAX, U64_MAX, check_authority, checked_mul, checked_sum
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)


class ConfigStore:
    def __init__(self, config: GlobalConfig = None, undo: UndoLog = None):
        self.config = config or GlobalConfig()
        self.undo = undo or UndoLog()

    def require_initialized(self) -> GlobalConfig:
        if not self.config.initialized:
            raise NotInitializedError()
        return self.config

    def initialize(self, caller: Pubkey) -> GlobalConfig:
        """Create the singleton with ``caller`` as its authority."""
        if self.config.initialized:
            raise AlreadyInitializedError()
        self.undo.touch_attr(self, "config")
        self.config = GlobalConfig(initialized=True, authority=caller)
        logger.info(f"Global config initialized, authority={caller}")
        return self.config

    def set_authority(self, caller: Pubkey, new_authority: Pubkey) -> GlobalConfig:
        config = self.require_initialized()
        check_authority(caller, config.authority)
        self.undo.touch_attr(self, "config")
        config.authority = new_authority
        logger.info(f"Global authority changed {caller} -> {new_authority}")
        return config

    def set_params(
        self,
        caller: Pubkey,
        fee_bps: int,
        token_price_up_bps: int,
        withdraw_fee_bps: int,
        token_total_supply: int,
        token_investing_supply: int,
        token_creator_reserve: int,
        token_platform_reserve: int,
        token_pool_reserve: int,
        fee_recipient: Pubkey,
        lp_recipient: Pubkey,
        migration_caller: Pubkey,
    ) -> GlobalConfig:
        """
        Replace every sale parameter at once.

        Validation runs to completion before anything is written, so a rejected
        call leaves the previous parameters intact.

        Raises:
            NotInitializedError: If the store has not been initialized.
            NotAuthorizedError: If caller is not the authority.
            InvalidValueError: If a fee is out of range, the supply partition exceeds
                the total supply, or the sale cannot fund the pool at the launch price.
            MathOverflowError: If the partition sum overflows u64.
        """
        config = self.require_initialized()
        check_authority(caller, config.authority)

        for name, value, upper in (
            ("fee_bps", fee_bps, U16_MAX),
            ("token_price_up_bps", token_price_up_bps, U16_MAX),
            ("withdraw_fee_bps", withdraw_fee_bps, U16_MAX),
            ("token_total_supply", token_total_supply, U64_MAX),
            ("token_investing_supply", token_investing_supply, U64_MAX),
            ("token_creator_reserve", token_creator_reserve, U64_MAX),
            ("token_platform_reserve", token_platform_reserve, U64_MAX),
            ("token_pool_reserve", token_pool_reserve, U64_MAX),
        ):
            if not 0 <= value <= upper:
                raise InvalidValueError(f"{name} out of range: {value}")

        if fee_bps >= BASE_POINTS:
            raise InvalidValueError(f"fee_bps must be < {BASE_POINTS}, got {fee_bps}")
        if token_price_up_bps < BASE_POINTS:
            raise InvalidValueError(f"token_price_up_bps must be >= {BASE_POINTS}, got {token_price_up_bps}")
        if withdraw_fee_bps >= BASE_POINTS:
            raise InvalidValueError(f"withdraw_fee_bps must be < {BASE_POINTS}, got {withdraw_fee_bps}")

        total_allocation = checked_sum([
            token_investing_supply,
            token_creator_reserve,
            token_platform_reserve,
            token_pool_reserve,
        ])
        if total_allocation > token_total_supply:
            raise InvalidValueError(
                f"Token allocation {total_allocation} exceeds total supply {token_total_supply}"
            )

        # pool_reserve * price_up_bps <= investing_supply * BASE_POINTS
        pool_requirement = checked_mul(token_pool_reserve, token_price_up_bps)
        raised_capacity = checked_mul(token_investing_supply, BASE_POINTS)
        if pool_requirement > raised_capacity:
            raise InvalidValueError("The investing supply cannot fund the pool reserve at the launch price")

        self.undo.touch_attr(self, "config")
        self.config = GlobalConfig(
            initialized=True,
            authority=config.authority,
            fee_bps=fee_bps,
            token_price_up_bps=token_price_up_bps,
            withdraw_fee_bps=withdraw_fee_bps,
            token_total_supply=token_total_supply,
            token_investing_supply=token_investing_supply,
            fee_recipient=fee_recipient,
            lp_recipient=lp_recipient,
            migration_caller=migration_caller,
            token_creator_reserve=token_creator_reserve,
            token_platform_reserve=token_platform_reserve,
            token_pool_reserve=token_pool_reserve,
        )
        logger.info(f"Global params updated: fee_bps={fee_bps}, price_up_bps={token_price_up_bps}, "
                    f"withdraw_fee_bps={withdraw_fee_bps}, total_supply={token_total_supply}, "
                    f"investing_supply={token_investing_supply}")
        return self.config
