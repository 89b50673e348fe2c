"""
LaunchpadProgram: instruction dispatch for the token-sale engine.

The program owns one ConfigStore, the record arena, the native and token ledgers,
the metadata registry, the pool provisioner and the event log, and exposes one
method per instruction. Handlers validate before their first effect, and each
instruction runs inside one UndoLog transaction: every component records the keys
it writes, and those are put back if anything raises. An instruction either
applies in full or leaves no trace, at a cost proportional to what it touches.

The host serializes instructions; the program does no locking of its own.

Clock:
    Instructions read the current UNIX time once, through ``self.clock`` (by
    default ``int(time.time())``), and use that single value throughout.
"""
import time
from pathlib import Path
from typing import Callable, List, Optional, Union

from solders.pubkey import Pubkey

from mcp_solana_launchpad.accounts import bonding_curve_vault_address
from mcp_solana_launchpad.bonding_curve import BondingCurveLedger
from mcp_solana_launchpad.config import TOKEN_DECIMALS
from mcp_solana_launchpad.events import EventLog, SetParamsEvent
from mcp_solana_launchpad.global_config import ConfigStore
from mcp_solana_launchpad.ledger import MetadataRegistry, NativeLedger, TokenProgram
from mcp_solana_launchpad.pool_gateway import ExternalPoolGateway, InMemoryPoolProvisioner, MigrationReceipt
from mcp_solana_launchpad.pricing import BuyQuote, WithdrawSettlement
from mcp_solana_launchpad.purchases import PurchaseLedger
from mcp_solana_launchpad.sale_store import SaleStore, load_state_file, save_state_file
from mcp_solana_launchpad.schemas import ZERO_HASH, BondingCurve, GlobalConfig, TokenMetadata, UserPurchase
from mcp_solana_launchpad.undo import UndoLog
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)


def _now() -> int:
    return int(time.time())


class LaunchpadProgram:
    def __init__(self, clock: Callable[[], int] = _now, token_decimals: int = TOKEN_DECIMALS):
        self.clock = clock
        self.undo = UndoLog()
        self.config_store = ConfigStore(undo=self.undo)
        self.store = SaleStore(self.undo)
        self.events = EventLog(self.undo)
        self.native = NativeLedger(self.undo)
        self.tokens = TokenProgram(self.native)
        self.metadata = MetadataRegistry(self.undo)
        self.provisioner = InMemoryPoolProvisioner(self.tokens)
        self.gateway = ExternalPoolGateway(self.native, self.tokens, self.provisioner)
        self.purchases = PurchaseLedger(self.store, self.tokens, self.events)
        self.curves = BondingCurveLedger(
            self.config_store,
            self.store,
            self.purchases,
            self.native,
            self.tokens,
            self.metadata,
            self.gateway,
            self.events,
            token_decimals=token_decimals,
        )

    # --- Global config ---

    def initialize(self, caller: Pubkey) -> GlobalConfig:
        with self.undo.transaction("initialize"):
            return self.config_store.initialize(caller)

    def set_authority(self, caller: Pubkey, new_authority: Pubkey) -> GlobalConfig:
        with self.undo.transaction("set_authority"):
            return self.config_store.set_authority(caller, new_authority)

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
        with self.undo.transaction("set_params"):
            config = self.config_store.set_params(
                caller,
                fee_bps,
                token_price_up_bps,
                withdraw_fee_bps,
                token_total_supply,
                token_investing_supply,
                token_creator_reserve,
                token_platform_reserve,
                token_pool_reserve,
                fee_recipient,
                lp_recipient,
                migration_caller,
            )
            self.events.emit(SetParamsEvent(
                fee_recipient=fee_recipient,
                lp_recipient=lp_recipient,
                migration_caller=migration_caller,
                fee_bps=fee_bps,
                token_price_up_bps=token_price_up_bps,
                withdraw_fee_bps=withdraw_fee_bps,
                token_total_supply=token_total_supply,
                token_investing_supply=token_investing_supply,
                timestamp=self.clock(),
            ))
            return config

    # --- Sale lifecycle ---

    def create_token(
        self,
        payer: Pubkey,
        mint: Pubkey,
        name: str,
        symbol: str,
        uri: str,
        token_investing_price: int,
        token_investing_deadline: int,
        investing_start_at: int,
        whitelisted: bool = False,
        merkle_root: bytes = ZERO_HASH,
        whitelist_start_at: Optional[int] = None,
        withdraw_recipient: Optional[Pubkey] = None,
    ) -> BondingCurve:
        if whitelist_start_at is None:
            whitelist_start_at = investing_start_at
        with self.undo.transaction("create_token"):
            return self.curves.create(
                payer,
                mint,
                name,
                symbol,
                uri,
                token_investing_price,
                token_investing_deadline,
                investing_start_at,
                whitelisted,
                merkle_root,
                whitelist_start_at,
                withdraw_recipient or payer,
                now=self.clock(),
            )

    def buy(self, buyer: Pubkey, mint: Pubkey, amount: int, max_sol_cost: int,
            merkle_proof: Optional[List[bytes]] = None) -> BuyQuote:
        with self.undo.transaction("buy"):
            return self.curves.buy(buyer, mint, amount, max_sol_cost, merkle_proof, now=self.clock())

    def sell(self, seller: Pubkey, mint: Pubkey, amount: int, min_sol_output: int) -> int:
        with self.undo.transaction("sell"):
            return self.curves.sell(seller, mint, amount, min_sol_output, now=self.clock())

    def withdraw(self, caller: Pubkey, mint: Pubkey) -> WithdrawSettlement:
        with self.undo.transaction("withdraw"):
            return self.curves.withdraw(caller, mint, now=self.clock())

    def migrate_liquidity(self, caller: Pubkey, mint: Pubkey) -> MigrationReceipt:
        with self.undo.transaction("migrate_liquidity"):
            return self.curves.migrate(caller, mint, now=self.clock())

    def migrate_liquidity_fallback(self, caller: Pubkey, mint: Pubkey) -> MigrationReceipt:
        with self.undo.transaction("migrate_liquidity_fallback"):
            return self.curves.migrate_fallback(caller, mint, now=self.clock())

    def set_migrated(self, caller: Pubkey, mint: Pubkey) -> BondingCurve:
        with self.undo.transaction("set_migrated"):
            return self.curves.set_migrated(caller, mint)

    def set_merkle_root(self, caller: Pubkey, mint: Pubkey, merkle_root: bytes) -> BondingCurve:
        with self.undo.transaction("set_merkle_root"):
            return self.curves.set_merkle_root(caller, mint, merkle_root)

    def claim(self, user: Pubkey, mint: Pubkey) -> int:
        with self.undo.transaction("claim"):
            return self.purchases.claim(mint, user, now=self.clock())

    # --- Views ---

    @property
    def global_config(self) -> GlobalConfig:
        return self.config_store.config

    def get_bonding_curve(self, mint: Pubkey) -> BondingCurve:
        return self.store.get_bonding_curve(mint)

    def get_user_purchase(self, mint: Pubkey, user: Pubkey) -> Optional[UserPurchase]:
        return self.store.find_user_purchase(mint, user)

    def get_token_metadata(self, mint: Pubkey) -> Optional[TokenMetadata]:
        return self.metadata.get(mint)

    def quote_buy(self, mint: Pubkey, amount: int) -> BuyQuote:
        return self.curves.quote_buy(mint, amount)

    def quote_sell(self, mint: Pubkey, amount: int) -> int:
        return self.curves.quote_sell(mint, amount)

    def vault_balance(self, mint: Pubkey) -> int:
        return self.native.balance(bonding_curve_vault_address(mint))

    # --- Persistence ---

    def to_state(self) -> dict:
        return {
            "global_config": self.config_store.config.model_dump(mode="json"),
            "records": self.store.to_state(),
            "lamports": self.native.to_state(),
            "tokens": self.tokens.to_state(),
            "metadata": self.metadata.to_state(),
            "pools": self.provisioner.to_state(),
        }

    def load_state(self, state: dict) -> None:
        self.config_store.config = GlobalConfig.model_validate(state.get("global_config", {}))
        self.store.load_state(state.get("records", {}))
        self.native.load_state(state.get("lamports", {}))
        self.tokens.load_state(state.get("tokens", {}))
        self.metadata.load_state(state.get("metadata", []))
        self.provisioner.load_state(state.get("pools", []))

    def save(self, path: Union[str, Path]) -> bool:
        return save_state_file(self.to_state(), path)

    @classmethod
    def load(cls, path: Union[str, Path], **kwargs) -> "LaunchpadProgram":
        program = cls(**kwargs)
        state = load_state_file(path)
        if state is not None:
            program.load_state(state)
            logger.info(f"Restored {len(program.store.bonding_curves)} sales and "
                        f"{len(program.store.user_purchases)} purchase records")
        return program
