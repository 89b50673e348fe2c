"""
BondingCurveLedger: the per-token sale state machine.

States: Active -> Completed -> Withdrawn -> Migrated (terminal).

Active
    Buyers purchase at the fixed investing price until the investing allocation is
    sold. Before ``investing_start_at`` only allowlisted buyers holding a valid
    Merkle proof may buy, and only from ``whitelist_start_at`` on. Once the
    deadline passes without completion, buyers may sell back (refund) at the same
    price.
Completed
    Set by the buy that takes the last of the allocation. No more trading.
Withdrawn
    One-time settlement: excess tokens burned, proceeds split between creator and
    platform fee, creator/platform token reserves paid out, pool seed kept.
Migrated
    Pool reserves handed to the external market (or directly to the LP recipient).
    Buyers may now claim their tokens.

Every handler checks its own rules and each collaborator's preconditions before
its first effect. The program's undo log only covers a collaborator that still
refuses midway.
"""
from typing import List, Optional

from solders.pubkey import Pubkey

from mcp_solana_launchpad import pricing
from mcp_solana_launchpad.accounts import (
    bonding_curve_address,
    bonding_curve_vault_address,
    mint_authority_address,
)
from mcp_solana_launchpad.config import TOKEN_DECIMALS
from mcp_solana_launchpad.errors import (
    AccountAlreadyInUseError,
    BondingCurveAlreadyMigratedError,
    BondingCurveAlreadyWithdrawedError,
    BondingCurveCompleteError,
    BondingCurveEndedError,
    BondingCurveNotCompleteError,
    BondingCurveNotEndedError,
    BondingCurveNotStartError,
    BondingCurveNotWithdrawedError,
    InsufficientBalanceError,
    InvalidValueError,
    MerkleProofMissingError,
    NotWhitelistedError,
    TooLittleSolReceivedError,
    TooMuchSolRequiredError,
    TransactionFailedError,
)
from mcp_solana_launchpad.events import (
    CompleteEvent,
    CreateEvent,
    EventLog,
    MigrateEvent,
    TradeEvent,
    WithdrawEvent,
)
from mcp_solana_launchpad.global_config import ConfigStore
from mcp_solana_launchpad.ledger import MetadataRegistry, NativeLedger, TokenProgram
from mcp_solana_launchpad.merkle import get_leaf_hash, verify_merkle_proof
from mcp_solana_launchpad.pool_gateway import ExternalPoolGateway, MigrationReceipt
from mcp_solana_launchpad.purchases import PurchaseLedger
from mcp_solana_launchpad.sale_store import SaleStore
from mcp_solana_launchpad.schemas import BondingCurve
from mcp_solana_launchpad.utils import U64_MAX, check_authority, checked_add, checked_sub
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)


class BondingCurveLedger:
    def __init__(
        self,
        config_store: ConfigStore,
        store: SaleStore,
        purchases: PurchaseLedger,
        native: NativeLedger,
        tokens: TokenProgram,
        metadata: MetadataRegistry,
        gateway: ExternalPoolGateway,
        events: EventLog,
        token_decimals: int = TOKEN_DECIMALS,
    ):
        self.config_store = config_store
        self.store = store
        self.purchases = purchases
        self.native = native
        self.tokens = tokens
        self.metadata = metadata
        self.gateway = gateway
        self.events = events
        self.token_decimals = token_decimals

    # --- Creation ---

    def create(
        self,
        payer: Pubkey,
        mint: Pubkey,
        name: str,
        symbol: str,
        uri: str,
        token_investing_price: int,
        token_investing_deadline: int,
        investing_start_at: int,
        whitelisted: bool,
        merkle_root: bytes,
        whitelist_start_at: int,
        withdraw_recipient: Pubkey,
        now: int,
    ) -> BondingCurve:
        """
        Create a token and its sale.

        The current global parameters are copied into the new record. The full
        total supply is minted into the sale's token vault and the mint authority
        is revoked, so the supply is final. The record is stored last, after the
        mint and metadata exist.
        """
        config = self.config_store.require_initialized()

        for value in (token_investing_price, token_investing_deadline, investing_start_at, whitelist_start_at):
            if not 0 <= value <= U64_MAX:
                raise InvalidValueError(f"Value out of range: {value}")
        if token_investing_price == 0 or token_investing_deadline == 0:
            raise InvalidValueError("Investing price and deadline must be positive")
        if whitelist_start_at > investing_start_at:
            raise InvalidValueError("Whitelist must start no later than the public sale")
        if investing_start_at >= token_investing_deadline:
            raise InvalidValueError("Public sale must start before the deadline")
        if config.token_total_supply == 0:
            raise InvalidValueError("Token total supply is not configured")
        MetadataRegistry.validate(name, symbol, uri)
        if whitelisted and whitelist_start_at < now:
            raise InvalidValueError("Whitelist start is in the past")
        if len(merkle_root) != 32:
            raise InvalidValueError("Merkle root must be 32 bytes")
        if self.store.find_bonding_curve(mint) is not None:
            raise AccountAlreadyInUseError(f"A bonding curve already exists for mint {mint}")
        if self.tokens.find_mint(mint) is not None:
            raise TransactionFailedError(f"Mint {mint} already exists")
        if self.metadata.get(mint) is not None:
            raise TransactionFailedError(f"Metadata for {mint} already exists")

        curve = BondingCurve(
            mint=mint,
            sol_reserves=0,
            token_reserves=config.token_total_supply,
            token_total_supply=config.token_total_supply,
            token_investing_supply=config.token_investing_supply,
            token_investing_price=token_investing_price,
            token_investing_deadline=token_investing_deadline,
            token_launching_price=pricing.calculate_launching_price(
                token_investing_price, config.token_price_up_bps
            ),
            withdraw_fee_bps=config.withdraw_fee_bps,
            withdraw_recipient=withdraw_recipient,
            investing_start_at=investing_start_at,
            whitelisted=whitelisted,
            merkle_root=merkle_root,
            whitelist_start_at=whitelist_start_at,
            token_creator_reserve=config.token_creator_reserve,
            token_platform_reserve=config.token_platform_reserve,
            token_pool_reserve=config.token_pool_reserve,
        )

        mint_authority = mint_authority_address()
        curve_address = bonding_curve_address(mint)
        self.metadata.create(mint, name, symbol, uri, update_authority=mint_authority)
        self.tokens.create_mint(mint, self.token_decimals, mint_authority)
        self.tokens.create_associated_account(curve_address, mint)
        self.tokens.mint_to(mint, curve_address, config.token_total_supply, authority=mint_authority)
        self.tokens.revoke_mint_authority(mint, authority=mint_authority)
        self.store.add_bonding_curve(curve)

        logger.info(f"Created token {symbol} ({mint}): supply={curve.token_total_supply}, "
                    f"price={token_investing_price}, deadline={token_investing_deadline}, "
                    f"whitelisted={whitelisted}")
        self.events.emit(CreateEvent(
            name=name,
            symbol=symbol,
            uri=uri,
            mint=mint,
            bonding_curve=curve_address,
            user=payer,
            timestamp=now,
        ))
        return curve

    # --- Trading ---

    def _check_buy_window(self, curve: BondingCurve, buyer: Pubkey,
                          merkle_proof: Optional[List[bytes]], now: int) -> None:
        if now >= curve.investing_start_at:
            return
        if not curve.whitelisted or now < curve.whitelist_start_at:
            raise BondingCurveNotStartError()
        if merkle_proof is None:
            raise MerkleProofMissingError()
        if not verify_merkle_proof(merkle_proof, curve.merkle_root, get_leaf_hash(buyer)):
            raise NotWhitelistedError()

    def quote_buy(self, mint: Pubkey, amount: int) -> pricing.BuyQuote:
        curve = self.store.get_bonding_curve(mint)
        return pricing.quote_buy(curve, amount, self.tokens.decimals(mint))

    def quote_sell(self, mint: Pubkey, amount: int) -> int:
        curve = self.store.get_bonding_curve(mint)
        return pricing.quote_sell(curve, amount, self.tokens.decimals(mint))

    def buy(self, buyer: Pubkey, mint: Pubkey, amount: int, max_sol_cost: int,
            merkle_proof: Optional[List[bytes]], now: int) -> pricing.BuyQuote:
        """
        Buy up to ``amount`` tokens for at most ``max_sol_cost`` lamports.

        Returns:
            The executed quote: the filled amount (clipped to the remaining
            allocation), the lamports charged and whether the sale completed.
        """
        if amount <= 0 or max_sol_cost <= 0:
            raise InvalidValueError("Amount and max SOL cost must be positive")
        curve = self.store.get_bonding_curve(mint)
        if curve.completed:
            raise BondingCurveCompleteError()
        if now >= curve.token_investing_deadline:
            raise BondingCurveEndedError()
        self._check_buy_window(curve, buyer, merkle_proof, now)

        quote = pricing.quote_buy(curve, amount, self.tokens.decimals(mint))
        if quote.sol_cost > max_sol_cost:
            raise TooMuchSolRequiredError(
                f"slippage: {quote.sol_cost} lamports required, max {max_sol_cost}"
            )

        sol_reserves = checked_add(curve.sol_reserves, quote.sol_cost)
        token_reserves = checked_sub(curve.token_reserves, quote.token_amount)
        # overflow checks for the purchase record and vault written below
        checked_add(self.purchases.recorded_amount(mint, buyer), quote.token_amount)
        vault = bonding_curve_vault_address(mint)
        checked_add(self.native.balance(vault), quote.sol_cost)
        available = self.native.balance(buyer)
        if available < quote.sol_cost:
            raise TransactionFailedError(
                f"Insufficient lamports in {buyer}: required {quote.sol_cost}, available {available}"
            )

        curve = self.store.get_bonding_curve(mint, writable=True)
        self.native.transfer(buyer, vault, quote.sol_cost, signer=buyer)
        self.purchases.record_purchase(mint, buyer, quote.token_amount)
        curve.sol_reserves = sol_reserves
        curve.token_reserves = token_reserves

        self.events.emit(TradeEvent(
            mint=mint,
            sol_amount=quote.sol_cost,
            token_amount=quote.token_amount,
            fee_amount=0,
            is_buy=True,
            user=buyer,
            timestamp=now,
        ))

        if quote.completes:
            curve.completed = True
            logger.info(f"The bonding curve for {mint} has completed.")
            self.events.emit(CompleteEvent(
                user=buyer,
                mint=mint,
                bonding_curve=bonding_curve_address(mint),
                timestamp=now,
            ))
        return quote

    def sell(self, seller: Pubkey, mint: Pubkey, amount: int, min_sol_output: int, now: int) -> int:
        """
        Return recorded tokens of an expired, uncompleted sale for a refund.

        Returns:
            Lamports paid to the seller.
        """
        if amount <= 0 or min_sol_output <= 0:
            raise InvalidValueError("Amount and min SOL output must be positive")
        curve = self.store.get_bonding_curve(mint)
        if curve.completed:
            raise BondingCurveCompleteError()
        if now < curve.token_investing_deadline:
            raise BondingCurveNotEndedError()
        if self.purchases.recorded_amount(mint, seller) < amount:
            raise InsufficientBalanceError()

        sol_amount = pricing.quote_sell(curve, amount, self.tokens.decimals(mint))
        if sol_amount < min_sol_output:
            raise TooLittleSolReceivedError(
                f"slippage: {sol_amount} lamports received, min {min_sol_output}"
            )
        vault = bonding_curve_vault_address(mint)
        vault_balance = self.native.balance(vault)
        if min(curve.sol_reserves, vault_balance) < sol_amount:
            raise InvalidValueError(
                f"Vault reserves {curve.sol_reserves} (held {vault_balance}) cannot pay {sol_amount}"
            )

        sol_reserves = checked_sub(curve.sol_reserves, sol_amount)
        token_reserves = checked_add(curve.token_reserves, amount)
        # overflow check for the seller credit below
        checked_add(self.native.balance(seller), sol_amount)

        curve = self.store.get_bonding_curve(mint, writable=True)
        self.purchases.reduce_purchase(mint, seller, amount)
        self.native.transfer(vault, seller, sol_amount, signer=vault)
        curve.sol_reserves = sol_reserves
        curve.token_reserves = token_reserves

        self.events.emit(TradeEvent(
            mint=mint,
            sol_amount=sol_amount,
            token_amount=amount,
            fee_amount=0,
            is_buy=False,
            user=seller,
            timestamp=now,
        ))
        return sol_amount

    # --- Settlement ---

    def withdraw(self, caller: Pubkey, mint: Pubkey, now: int) -> pricing.WithdrawSettlement:
        config = self.config_store.require_initialized()
        check_authority(caller, config.migration_caller)
        curve = self.store.get_bonding_curve(mint)
        if not curve.completed:
            raise BondingCurveNotCompleteError()
        if curve.withdrawed:
            raise BondingCurveAlreadyWithdrawedError()

        settlement = pricing.calculate_withdraw_settlement(curve, self.tokens.decimals(mint))

        curve_address = bonding_curve_address(mint)
        vault = bonding_curve_vault_address(mint)
        if self.native.balance(vault) < settlement.sol_withdraw:
            raise TransactionFailedError(
                f"Sale vault holds {self.native.balance(vault)} lamports, settlement needs {settlement.sol_withdraw}"
            )
        if self.tokens.balance(curve_address, mint) < curve.token_reserves:
            raise TransactionFailedError(
                f"Sale token vault holds {self.tokens.balance(curve_address, mint)}, "
                f"reserves record {curve.token_reserves}"
            )

        curve = self.store.get_bonding_curve(mint, writable=True)
        if settlement.token_burn > 0:
            self.tokens.burn(mint, curve_address, settlement.token_burn, authority=curve_address)
        self.native.transfer(vault, curve.withdraw_recipient, settlement.creator_amount, signer=vault)
        self.native.transfer(vault, config.fee_recipient, settlement.fee, signer=vault)
        if curve.token_creator_reserve > 0:
            self.tokens.create_associated_account(curve.withdraw_recipient, mint)
            self.tokens.transfer(mint, curve_address, curve.withdraw_recipient,
                                 curve.token_creator_reserve, authority=curve_address)
        if curve.token_platform_reserve > 0:
            self.tokens.create_associated_account(config.fee_recipient, mint)
            self.tokens.transfer(mint, curve_address, config.fee_recipient,
                                 curve.token_platform_reserve, authority=curve_address)

        curve.sol_reserves = settlement.final_sol_reserves
        curve.token_reserves = settlement.final_token_reserves
        curve.withdrawed = True

        logger.info(f"Withdraw completed for {mint}. Creator received: {settlement.creator_amount} lamports, "
                    f"Platform fee: {settlement.fee} lamports, burned {settlement.token_burn} tokens")
        self.events.emit(WithdrawEvent(
            user=caller,
            mint=mint,
            bonding_curve=curve_address,
            token_burn=settlement.token_burn,
            creator_amount=settlement.creator_amount,
            fee_amount=settlement.fee,
            token_creator_reserve=curve.token_creator_reserve,
            token_platform_reserve=curve.token_platform_reserve,
            timestamp=now,
        ))
        return settlement

    def _check_migratable(self, caller: Pubkey, mint: Pubkey) -> BondingCurve:
        config = self.config_store.require_initialized()
        check_authority(caller, config.migration_caller)
        curve = self.store.get_bonding_curve(mint)
        if not curve.completed:
            raise BondingCurveNotCompleteError()
        if not curve.withdrawed:
            raise BondingCurveNotWithdrawedError()
        if curve.migrated:
            raise BondingCurveAlreadyMigratedError()
        return curve

    def _finish_migration(self, caller: Pubkey, curve: BondingCurve, receipt: MigrationReceipt,
                          fallback: bool, now: int) -> None:
        curve = self.store.get_bonding_curve(curve.mint, writable=True)
        curve.token_reserves = 0
        curve.sol_reserves = 0
        curve.migrated = True
        logger.info(f"Migrate completed for {curve.mint}: tokens={receipt.token_amount}, "
                    f"lamports={receipt.sol_amount}, lp={receipt.lp_amount}, fallback={fallback}")
        self.events.emit(MigrateEvent(
            user=caller,
            mint=curve.mint,
            bonding_curve=bonding_curve_address(curve.mint),
            token_amount=receipt.token_amount,
            sol_amount=receipt.sol_amount,
            lp_amount=receipt.lp_amount,
            fallback=fallback,
            timestamp=now,
        ))

    def _check_vault_balance(self, curve: BondingCurve) -> None:
        vault_balance = self.native.balance(bonding_curve_vault_address(curve.mint))
        if vault_balance < curve.sol_reserves:
            raise BondingCurveAlreadyMigratedError(
                f"Vault holds {vault_balance} lamports, reserves record {curve.sol_reserves}"
            )

    def migrate(self, caller: Pubkey, mint: Pubkey, now: int) -> MigrationReceipt:
        curve = self._check_migratable(caller, mint)
        self._check_vault_balance(curve)
        config = self.config_store.config
        receipt = self.gateway.provision(mint, caller, config.lp_recipient, curve.token_reserves, curve.sol_reserves)
        self._finish_migration(caller, curve, receipt, fallback=False, now=now)
        return receipt

    def migrate_fallback(self, caller: Pubkey, mint: Pubkey, now: int) -> MigrationReceipt:
        curve = self._check_migratable(caller, mint)
        self._check_vault_balance(curve)
        config = self.config_store.config
        receipt = self.gateway.transfer_direct(mint, config.lp_recipient, curve.token_reserves, curve.sol_reserves)
        self._finish_migration(caller, curve, receipt, fallback=True, now=now)
        return receipt

    # --- Administrative overrides ---

    def set_migrated(self, caller: Pubkey, mint: Pubkey) -> BondingCurve:
        """Mark a withdrawn sale as migrated without moving any funds."""
        self._check_migratable(caller, mint)
        curve = self.store.get_bonding_curve(mint, writable=True)
        curve.migrated = True
        logger.warning(f"Bonding curve {mint} migrated status set to: true (no funds moved)")
        return curve

    def set_merkle_root(self, caller: Pubkey, mint: Pubkey, merkle_root: bytes) -> BondingCurve:
        config = self.config_store.require_initialized()
        check_authority(caller, config.authority)
        curve = self.store.get_bonding_curve(mint)
        if curve.completed:
            raise BondingCurveCompleteError()
        if len(merkle_root) != 32:
            raise InvalidValueError("Merkle root must be 32 bytes")
        curve = self.store.get_bonding_curve(mint, writable=True)
        curve.merkle_root = merkle_root
        logger.info(f"Merkle root for {mint} updated to {merkle_root.hex()}")
        return curve


