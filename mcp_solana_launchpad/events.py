"""
Launchpad events.

Events are observational: the program emits them for off-system indexing and never
reads them back. Each one is timestamped with the clock of the instruction that
produced it and carries the economic amounts that moved.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from mcp_solana_launchpad.schemas import PubkeyField
from mcp_solana_launchpad.undo import UndoLog
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)


class LaunchpadEvent(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    timestamp: int

    @property
    def kind(self) -> str:
        return type(self).__name__


class CreateEvent(LaunchpadEvent):
    name: str
    symbol: str
    uri: str
    mint: PubkeyField
    bonding_curve: PubkeyField
    user: PubkeyField


class TradeEvent(LaunchpadEvent):
    mint: PubkeyField
    sol_amount: int
    token_amount: int
    fee_amount: int = 0
    is_buy: bool
    user: PubkeyField


class CompleteEvent(LaunchpadEvent):
    user: PubkeyField
    mint: PubkeyField
    bonding_curve: PubkeyField


class WithdrawEvent(LaunchpadEvent):
    user: PubkeyField
    mint: PubkeyField
    bonding_curve: PubkeyField
    token_burn: int
    creator_amount: int
    fee_amount: int
    token_creator_reserve: int
    token_platform_reserve: int


class MigrateEvent(LaunchpadEvent):
    user: PubkeyField
    mint: PubkeyField
    bonding_curve: PubkeyField
    token_amount: int
    sol_amount: int
    lp_amount: int = 0
    fallback: bool = False


class ClaimEvent(LaunchpadEvent):
    user: PubkeyField
    mint: PubkeyField
    bonding_curve: PubkeyField
    token_amount: int


class SetParamsEvent(LaunchpadEvent):
    fee_recipient: PubkeyField
    lp_recipient: PubkeyField
    migration_caller: PubkeyField
    fee_bps: int
    token_price_up_bps: int
    withdraw_fee_bps: int
    token_total_supply: int
    token_investing_supply: int


class EventLog:
    """In-process sink for emitted events."""

    def __init__(self, undo: Optional[UndoLog] = None):
        self.undo = undo or UndoLog()
        self.events: List[LaunchpadEvent] = []

    def emit(self, event: LaunchpadEvent) -> None:
        self.events.append(event)
        self.undo.record(self.events.pop)
        logger.info(f"{event.kind}: {event.model_dump_json()}")

    def of_type(self, event_type: type, mint: Optional[object] = None) -> List[LaunchpadEvent]:
        return [
            e for e in self.events
            if isinstance(e, event_type) and (mint is None or getattr(e, "mint", None) == mint)
        ]
