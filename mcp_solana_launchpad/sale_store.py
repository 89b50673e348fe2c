"""
Keyed record arena for sale instances and purchase records.

BondingCurve records are keyed by the token mint and UserPurchase records by
(mint, buyer). Records never point at each other; every cross-record read goes
through a key. Records are never deleted: a finished sale stays in the store as
an audit record.

Handlers that change a record fetch it with ``writable=True`` so its previous
value is recorded in the undo log first.

The whole program state can be written to and read back from a JSON file, which
is how the MCP server keeps its state across restarts.
"""
import json
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from solders.pubkey import Pubkey

from mcp_solana_launchpad.errors import AccountAlreadyInUseError, BondingCurveNotFoundError
from mcp_solana_launchpad.schemas import BondingCurve, UserPurchase
from mcp_solana_launchpad.undo import UndoLog
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

PurchaseKey = Tuple[Pubkey, Pubkey]


class SaleStore:
    def __init__(self, undo: Optional[UndoLog] = None):
        self.undo = undo or UndoLog()
        self.bonding_curves: Dict[Pubkey, BondingCurve] = {}
        self.user_purchases: Dict[PurchaseKey, UserPurchase] = {}

    # --- Bonding curves ---

    def add_bonding_curve(self, curve: BondingCurve) -> BondingCurve:
        if curve.mint in self.bonding_curves:
            raise AccountAlreadyInUseError(f"A bonding curve already exists for mint {curve.mint}")
        self.undo.touch(self.bonding_curves, curve.mint)
        self.bonding_curves[curve.mint] = curve
        return curve

    def find_bonding_curve(self, mint: Pubkey) -> Optional[BondingCurve]:
        return self.bonding_curves.get(mint)

    def get_bonding_curve(self, mint: Pubkey, writable: bool = False) -> BondingCurve:
        curve = self.bonding_curves.get(mint)
        if curve is None:
            raise BondingCurveNotFoundError(f"No bonding curve exists for mint {mint}")
        if writable:
            self.undo.touch(self.bonding_curves, mint)
        return curve

    # --- Purchases ---

    def find_user_purchase(self, mint: Pubkey, user: Pubkey, writable: bool = False) -> Optional[UserPurchase]:
        record = self.user_purchases.get((mint, user))
        if record is not None and writable:
            self.undo.touch(self.user_purchases, (mint, user))
        return record

    def get_or_create_user_purchase(self, mint: Pubkey, user: Pubkey) -> UserPurchase:
        """Created lazily on a buyer's first purchase."""
        self.undo.touch(self.user_purchases, (mint, user))
        record = self.user_purchases.get((mint, user))
        if record is None:
            record = UserPurchase(user=user, mint=mint, token_amount=0)
            self.user_purchases[(mint, user)] = record
            logger.debug(f"Created purchase record for {user} on {mint}")
        return record

    # --- Serialization ---

    def to_state(self) -> Dict[str, list]:
        return {
            "bonding_curves": [c.model_dump(mode="json") for c in self.bonding_curves.values()],
            "user_purchases": [p.model_dump(mode="json") for p in self.user_purchases.values()],
        }

    def load_state(self, state: Dict[str, list]) -> None:
        curves = [BondingCurve.model_validate(c) for c in state.get("bonding_curves", [])]
        purchases = [UserPurchase.model_validate(p) for p in state.get("user_purchases", [])]
        self.bonding_curves = {c.mint: c for c in curves}
        self.user_purchases = {(p.mint, p.user): p for p in purchases}


def save_state_file(state: dict, path: Union[str, Path]) -> bool:
    """Write a program state dict to ``path`` as JSON."""
    file_path = Path(path)
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")
        with open(tmp_path, "w") as f:
            json.dump(state, f, indent=2)
        tmp_path.replace(file_path)
        logger.info(f"Saved launchpad state to {file_path}")
        return True
    except OSError as e:
        logger.error(f"Error saving launchpad state to {file_path}: {e}")
        return False


def load_state_file(path: Union[str, Path]) -> Optional[dict]:
    """Read a program state dict written by save_state_file; None if the file is absent."""
    file_path = Path(path)
    if not file_path.is_file():
        logger.warning(f"Launchpad state file not found: {file_path}. Starting empty.")
        return None
    with open(file_path, "r") as f:
        state = json.load(f)
    logger.info(f"Loaded launchpad state from {file_path}")
    return state
