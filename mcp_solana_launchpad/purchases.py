"""
PurchaseLedger: per-buyer entitlement to tokens bought during the sale.

Buying and selling never move tokens; they only change the buyer's recorded
amount. Tokens are delivered once, by claim, after the sale has migrated.
"""
from solders.pubkey import Pubkey

from mcp_solana_launchpad.accounts import bonding_curve_address
from mcp_solana_launchpad.errors import (
    InsufficientBalanceError,
    NoPurchaseRecordError,
    NotMigratedError,
    TransactionFailedError,
)
from mcp_solana_launchpad.events import ClaimEvent, EventLog
from mcp_solana_launchpad.ledger import TokenProgram
from mcp_solana_launchpad.sale_store import SaleStore
from mcp_solana_launchpad.schemas import UserPurchase
from mcp_solana_launchpad.utils import checked_add, checked_sub
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)


class PurchaseLedger:
    def __init__(self, store: SaleStore, tokens: TokenProgram, events: EventLog):
        self.store = store
        self.tokens = tokens
        self.events = events

    def recorded_amount(self, mint: Pubkey, user: Pubkey) -> int:
        record = self.store.find_user_purchase(mint, user)
        return record.token_amount if record else 0

    def record_purchase(self, mint: Pubkey, user: Pubkey, amount: int) -> UserPurchase:
        token_amount = checked_add(self.recorded_amount(mint, user), amount)
        record = self.store.get_or_create_user_purchase(mint, user)
        record.token_amount = token_amount
        return record

    def reduce_purchase(self, mint: Pubkey, user: Pubkey, amount: int) -> UserPurchase:
        record = self.store.find_user_purchase(mint, user, writable=True)
        if record is None or record.token_amount < amount:
            raise InsufficientBalanceError(
                f"Recorded purchase {self.recorded_amount(mint, user)} is less than {amount}"
            )
        record.token_amount = checked_sub(record.token_amount, amount)
        return record

    def claim(self, mint: Pubkey, user: Pubkey, now: int) -> int:
        """
        Deliver a buyer's whole recorded amount from the sale's token vault.

        Returns:
            The number of token base units delivered.

        Raises:
            BondingCurveNotFoundError: If the mint has no sale.
            NotMigratedError: If the sale has not migrated yet.
            NoPurchaseRecordError: If nothing is owed, including after a previous claim.
        """
        curve = self.store.get_bonding_curve(mint)
        if not curve.migrated:
            raise NotMigratedError()

        record = self.store.find_user_purchase(mint, user)
        if record is None or record.token_amount == 0:
            raise NoPurchaseRecordError()

        token_amount = record.token_amount
        curve_address = bonding_curve_address(mint)
        available = self.tokens.balance(curve_address, mint)
        if available < token_amount:
            raise TransactionFailedError(f"Sale token vault holds {available}, claim needs {token_amount}")

        record = self.store.find_user_purchase(mint, user, writable=True)
        self.tokens.create_associated_account(user, mint)
        self.tokens.transfer(mint, curve_address, user, token_amount, authority=curve_address)
        record.token_amount = 0

        logger.info(f"User {user} claimed {token_amount} tokens of {mint}")
        self.events.emit(ClaimEvent(
            user=user,
            mint=mint,
            bonding_curve=curve_address,
            token_amount=token_amount,
            timestamp=now,
        ))
        return token_amount
