"""
Token and Ledger Adapters

In-memory renditions of the collaborators the launchpad moves value through:

- NativeLedger: native-currency (lamport) balances keyed by address
- TokenProgram: fungible-token mints and associated token accounts with mint,
  transfer, burn, revoke-mint-authority and native-wrapping primitives
- MetadataRegistry: name/symbol/uri records per mint

Every debit must be signed by the owner of the debited balance. The launchpad signs
for its own vaults only from inside its instruction handlers. A refused operation
raises TransactionFailedError before it writes anything.

Writes are recorded in the shared UndoLog so the program can reject an instruction
as a whole. Each adapter round-trips through a JSON-friendly state dict.
"""
from typing import Dict, List, Optional

from solders.pubkey import Pubkey

from mcp_solana_launchpad.accounts import get_token_account
from mcp_solana_launchpad.config import (
    LAMPORTS_PER_SOL,
    MAX_NAME_LENGTH,
    MAX_SYMBOL_LENGTH,
    MAX_URI_LENGTH,
    NATIVE_MINT,
)
from mcp_solana_launchpad.errors import (
    NameTooLongError,
    SymbolTooLongError,
    TransactionFailedError,
    UriTooLongError,
)
from mcp_solana_launchpad.schemas import LaunchpadModel, PubkeyField, TokenMetadata, U64
from mcp_solana_launchpad.undo import UndoLog
from mcp_solana_launchpad.utils import checked_add, checked_sub
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

NATIVE_DECIMALS = 9


class MintInfo(LaunchpadModel):
    mint: PubkeyField
    decimals: int
    supply: U64 = 0
    mint_authority: Optional[PubkeyField] = None


class TokenAccount(LaunchpadModel):
    address: PubkeyField
    mint: PubkeyField
    owner: PubkeyField
    amount: U64 = 0


def _require_signer(owner: Pubkey, signer: Pubkey, what: str) -> None:
    if owner != signer:
        raise TransactionFailedError(f"{what}: {signer} cannot sign for {owner}")


class NativeLedger:
    """Lamport balances keyed by address."""

    def __init__(self, undo: Optional[UndoLog] = None):
        self.undo = undo or UndoLog()
        self.lamports: Dict[Pubkey, int] = {}

    def balance(self, address: Pubkey) -> int:
        return self.lamports.get(address, 0)

    def deposit(self, address: Pubkey, amount: int) -> None:
        """Credit lamports from outside the system (airdrop/faucet)."""
        credited = checked_add(self.balance(address), amount)
        self.undo.touch(self.lamports, address)
        self.lamports[address] = credited

    def transfer(self, source: Pubkey, destination: Pubkey, amount: int, signer: Pubkey) -> None:
        _require_signer(source, signer, "Native transfer")
        available = self.balance(source)
        if available < amount:
            raise TransactionFailedError(
                f"Insufficient lamports in {source}: required {amount}, available {available}"
            )
        if amount == 0 or source == destination:
            return
        credited = checked_add(self.balance(destination), amount)
        self.undo.touch(self.lamports, source)
        self.undo.touch(self.lamports, destination)
        self.lamports[source] = available - amount
        self.lamports[destination] = credited
        logger.debug(f"Transferred {amount} lamports {source} -> {destination}")

    def to_state(self) -> Dict[str, int]:
        return {str(address): amount for address, amount in self.lamports.items()}

    def load_state(self, state: Dict[str, int]) -> None:
        self.lamports = {Pubkey.from_string(address): amount for address, amount in state.items()}


class TokenProgram:
    """Fungible-token mints and associated token accounts; shares the native ledger's undo log."""

    def __init__(self, native: NativeLedger):
        self.native = native
        self.undo = native.undo
        self.mints: Dict[Pubkey, MintInfo] = {}
        self.accounts: Dict[Pubkey, TokenAccount] = {}
        self.mints[NATIVE_MINT] = MintInfo(mint=NATIVE_MINT, decimals=NATIVE_DECIMALS)

    # --- Mints ---

    def create_mint(self, mint: Pubkey, decimals: int, mint_authority: Pubkey) -> MintInfo:
        if mint in self.mints:
            raise TransactionFailedError(f"Mint {mint} already exists")
        info = MintInfo(mint=mint, decimals=decimals, mint_authority=mint_authority)
        self.undo.touch(self.mints, mint)
        self.mints[mint] = info
        return info

    def find_mint(self, mint: Pubkey) -> Optional[MintInfo]:
        return self.mints.get(mint)

    def get_mint(self, mint: Pubkey) -> MintInfo:
        info = self.mints.get(mint)
        if info is None:
            raise TransactionFailedError(f"Mint {mint} does not exist")
        return info

    def decimals(self, mint: Pubkey) -> int:
        return self.get_mint(mint).decimals

    def mint_to(self, mint: Pubkey, owner: Pubkey, amount: int, authority: Pubkey) -> None:
        info = self.get_mint(mint)
        if info.mint_authority is None:
            raise TransactionFailedError(f"Mint {mint} has no mint authority")
        _require_signer(info.mint_authority, authority, "Mint")
        account = self._require_account(owner, mint)
        supply = checked_add(info.supply, amount)
        balance = checked_add(account.amount, amount)
        self.undo.touch(self.mints, mint)
        self.undo.touch(self.accounts, account.address)
        info.supply = supply
        account.amount = balance
        logger.debug(f"Minted {amount} of {mint} to {account.address}")

    def revoke_mint_authority(self, mint: Pubkey, authority: Pubkey) -> None:
        info = self.get_mint(mint)
        if info.mint_authority is None:
            raise TransactionFailedError(f"Mint {mint} has no mint authority")
        _require_signer(info.mint_authority, authority, "Set authority")
        self.undo.touch(self.mints, mint)
        info.mint_authority = None

    # --- Accounts ---

    def create_associated_account(self, owner: Pubkey, mint: Pubkey) -> Pubkey:
        """Create the owner's associated token account; idempotent."""
        self.get_mint(mint)
        address = get_token_account(owner, mint)
        if address not in self.accounts:
            self.undo.touch(self.accounts, address)
            self.accounts[address] = TokenAccount(address=address, mint=mint, owner=owner)
            logger.debug(f"Created token account {address} for owner {owner}, mint {mint}")
        return address

    def account_exists(self, owner: Pubkey, mint: Pubkey) -> bool:
        return get_token_account(owner, mint) in self.accounts

    def balance(self, owner: Pubkey, mint: Pubkey) -> int:
        account = self.accounts.get(get_token_account(owner, mint))
        return account.amount if account else 0

    def _require_account(self, owner: Pubkey, mint: Pubkey) -> TokenAccount:
        account = self.accounts.get(get_token_account(owner, mint))
        if account is None:
            raise TransactionFailedError(f"Token account for owner {owner}, mint {mint} does not exist")
        return account

    def transfer(self, mint: Pubkey, source_owner: Pubkey, destination_owner: Pubkey,
                 amount: int, authority: Pubkey) -> None:
        _require_signer(source_owner, authority, "Token transfer")
        source = self._require_account(source_owner, mint)
        destination = self._require_account(destination_owner, mint)
        if source.amount < amount:
            raise TransactionFailedError(
                f"Insufficient tokens in {source.address}: required {amount}, available {source.amount}"
            )
        if amount == 0 or source.address == destination.address:
            return
        credited = checked_add(destination.amount, amount)
        if mint == NATIVE_MINT:
            # wrapped balances are backed by the lamports held at the account address
            self.native.transfer(source.address, destination.address, amount, signer=source.address)
        self.undo.touch(self.accounts, source.address)
        self.undo.touch(self.accounts, destination.address)
        source.amount -= amount
        destination.amount = credited
        logger.debug(f"Transferred {amount} of {mint} {source.address} -> {destination.address}")

    def burn(self, mint: Pubkey, owner: Pubkey, amount: int, authority: Pubkey) -> None:
        _require_signer(owner, authority, "Burn")
        account = self._require_account(owner, mint)
        if account.amount < amount:
            raise TransactionFailedError(
                f"Insufficient tokens to burn in {account.address}: required {amount}, available {account.amount}"
            )
        info = self.get_mint(mint)
        supply = checked_sub(info.supply, amount)
        self.undo.touch(self.accounts, account.address)
        self.undo.touch(self.mints, mint)
        account.amount -= amount
        info.supply = supply
        logger.debug(f"Burned {amount} of {mint} from {account.address}")

    def sync_native(self, owner: Pubkey) -> int:
        """Align the owner's wrapped-native token balance with the lamports held by that account."""
        account = self._require_account(owner, NATIVE_MINT)
        wrapped = self.native.balance(account.address)
        info = self.mints[NATIVE_MINT]
        supply = checked_add(checked_sub(info.supply, account.amount), wrapped)
        self.undo.touch(self.accounts, account.address)
        self.undo.touch(self.mints, NATIVE_MINT)
        info.supply = supply
        account.amount = wrapped
        return wrapped

    def to_state(self) -> Dict[str, List[dict]]:
        return {
            "mints": [m.model_dump(mode="json") for m in self.mints.values()],
            "accounts": [a.model_dump(mode="json") for a in self.accounts.values()],
        }

    def load_state(self, state: Dict[str, List[dict]]) -> None:
        mints = [MintInfo.model_validate(m) for m in state.get("mints", [])]
        accounts = [TokenAccount.model_validate(a) for a in state.get("accounts", [])]
        self.mints = {m.mint: m for m in mints}
        self.mints.setdefault(NATIVE_MINT, MintInfo(mint=NATIVE_MINT, decimals=NATIVE_DECIMALS))
        self.accounts = {a.address: a for a in accounts}


class MetadataRegistry:
    """Token metadata keyed by mint."""

    def __init__(self, undo: Optional[UndoLog] = None):
        self.undo = undo or UndoLog()
        self.records: Dict[Pubkey, TokenMetadata] = {}

    @staticmethod
    def validate(name: str, symbol: str, uri: str) -> None:
        if len(name) > MAX_NAME_LENGTH:
            raise NameTooLongError(f"Token name is too long ({len(name)} > {MAX_NAME_LENGTH}).")
        if len(symbol) > MAX_SYMBOL_LENGTH:
            raise SymbolTooLongError(f"Token symbol is too long ({len(symbol)} > {MAX_SYMBOL_LENGTH}).")
        if len(uri) > MAX_URI_LENGTH:
            raise UriTooLongError(f"Token URI is too long ({len(uri)} > {MAX_URI_LENGTH}).")

    def create(self, mint: Pubkey, name: str, symbol: str, uri: str, update_authority: Pubkey) -> TokenMetadata:
        self.validate(name, symbol, uri)
        if mint in self.records:
            raise TransactionFailedError(f"Metadata for {mint} already exists")
        record = TokenMetadata(mint=mint, name=name, symbol=symbol, uri=uri, update_authority=update_authority)
        self.undo.touch(self.records, mint)
        self.records[mint] = record
        return record

    def get(self, mint: Pubkey) -> Optional[TokenMetadata]:
        return self.records.get(mint)

    def to_state(self) -> List[dict]:
        return [r.model_dump(mode="json") for r in self.records.values()]

    def load_state(self, state: List[dict]) -> None:
        records = [TokenMetadata.model_validate(r) for r in state]
        self.records = {r.mint: r for r in records}


def lamports_to_sol(lamports: int) -> float:
    """Convert lamports to SOL."""
    return lamports / LAMPORTS_PER_SOL
