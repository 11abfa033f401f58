from typing import List, Dict, Any, Optional, Literal, Tuple
from pydantic import BaseModel, Field, field_validator

from ..errors import InvalidAssetRef


EVENT_TYPES = (
    "trade",
    "pick_trade",
    "draft_selected",
    "pick_selected",
    "waiver_add",
    "waiver_drop",
    "free_agent_add",
    "free_agent_drop",
    "commissioner",
)

TRADE_EVENT_TYPES = ("trade", "pick_trade")

AssetKind = Literal["player", "pick"]


class AssetRef(BaseModel):
    """Identity of one asset: a player id, or the (season, round, original roster) pick triple."""
    kind: AssetKind
    player_id: Optional[str] = None
    pick_season: Optional[str] = None
    pick_round: Optional[int] = None
    pick_original_roster_id: Optional[int] = None

    model_config = {"frozen": True}

    @classmethod
    def player(cls, player_id: str) -> "AssetRef":
        return cls(kind="player", player_id=str(player_id))

    @classmethod
    def pick(cls, season: str, round: int, original_roster_id: int) -> "AssetRef":
        return cls(
            kind="pick",
            pick_season=str(season),
            pick_round=int(round),
            pick_original_roster_id=int(original_roster_id),
        )

    @classmethod
    def parse(cls, raw: str) -> "AssetRef":
        """Parse ``player:<id>`` or ``pick:<season>-<round>-<original_roster_id>``."""
        if not raw or ":" not in raw:
            raise InvalidAssetRef(raw)
        kind, _, value = raw.partition(":")
        if kind == "player" and value:
            return cls.player(value)
        if kind == "pick":
            parts = value.split("-")
            if len(parts) == 3 and all(parts):
                try:
                    return cls.pick(parts[0], int(parts[1]), int(parts[2]))
                except ValueError:
                    pass
        raise InvalidAssetRef(raw)

    @property
    def key(self) -> str:
        if self.kind == "player":
            return f"player:{self.player_id}"
        return f"pick:{self.pick_season}-{self.pick_round}-{self.pick_original_roster_id}"

    def __str__(self) -> str:
        return self.key


class AssetEvent(BaseModel):
    """One atomic movement of one asset between two parties at one point in time."""
    id: Optional[int] = None
    league_id: str
    season: Optional[str] = None
    week: Optional[int] = None
    event_time: Optional[int] = None  # Unix timestamp in ms
    event_type: str
    asset_kind: AssetKind
    player_id: Optional[str] = None
    pick_season: Optional[str] = None
    pick_round: Optional[int] = None
    pick_original_roster_id: Optional[int] = None
    from_user_id: Optional[str] = None
    to_user_id: Optional[str] = None
    from_roster_id: Optional[int] = None
    to_roster_id: Optional[int] = None
    transaction_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_type")
    @classmethod
    def known_event_type(cls, value: str) -> str:
        if value not in EVENT_TYPES:
            raise ValueError(f"unknown event type {value!r}")
        return value

    @property
    def asset(self) -> AssetRef:
        if self.asset_kind == "player":
            return AssetRef.player(self.player_id)
        return AssetRef(
            kind="pick",
            pick_season=self.pick_season,
            pick_round=self.pick_round,
            pick_original_roster_id=self.pick_original_roster_id,
        )

    @property
    def business_key(self) -> Tuple:
        return (
            self.league_id,
            self.event_type,
            self.asset_kind,
            self.player_id,
            self.pick_season,
            self.pick_round,
            self.pick_original_roster_id,
            self.transaction_id,
            self.from_user_id,
            self.to_user_id,
        )


class PickCandidate(BaseModel):
    """A physical draft pick that a selection could have consumed."""
    season: str
    round: int
    original_roster_id: int  # in the drafting league's roster numbering
    original_user_id: Optional[str] = None
    current_user_id: Optional[str] = None
    selected_player_id: Optional[str] = None
    # Original roster as named by an earlier season's pick trade, when that
    # league numbered its rosters differently
    alias_roster_id: Optional[int] = None

    @property
    def identity_roster_id(self) -> int:
        return self.alias_roster_id if self.alias_roster_id is not None else self.original_roster_id

    @property
    def ref(self) -> AssetRef:
        return AssetRef.pick(self.season, self.round, self.identity_roster_id)

    @property
    def is_traded(self) -> bool:
        return self.original_user_id != self.current_user_id


class PickResolution(BaseModel):
    rule: str  # "single", "reuse", "draft_slot", "unused", "strategy", "fallback", "none"
    pick: Optional[PickCandidate] = None
    candidates: List[PickCandidate] = []

    def audit(self) -> Dict[str, Any]:
        return {
            "rule": self.rule,
            "candidates": [
                {
                    "original_roster_id": c.original_roster_id,
                    "identity_roster_id": c.identity_roster_id,
                    "original_user_id": c.original_user_id,
                    "selected_player_id": c.selected_player_id,
                }
                for c in self.candidates
            ],
        }


class UserSummary(BaseModel):
    id: str
    username: Optional[str] = None
    display_name: Optional[str] = None


class PlayerSummary(BaseModel):
    id: str
    name: str
    position: Optional[str] = None
    team: Optional[str] = None
    status: Optional[str] = None


class TimelineEvent(AssetEvent):
    from_user: Optional[UserSummary] = None
    to_user: Optional[UserSummary] = None


class TimelineResponse(BaseModel):
    family: List[str]
    asset: AssetRef
    player: Optional[PlayerSummary] = None
    events: List[TimelineEvent]


class TradeBranch(BaseModel):
    transaction_id: str
    event_type: str
    event_time: Optional[int] = None
    derived: List["TradeTreeNode"] = []


class TradeTreeNode(BaseModel):
    asset: AssetRef
    events: List[AssetEvent] = []
    branches: List[TradeBranch] = []
    became: Optional["TradeTreeNode"] = None  # pick -> the player drafted with it
    truncated: bool = False


class NetworkNode(BaseModel):
    asset: AssetRef
    depth: int
    importance: float
    transaction_count: int = 0


class NetworkTransaction(BaseModel):
    transaction_id: str
    type: str
    league_id: str
    season: Optional[str] = None
    week: Optional[int] = None
    event_time: Optional[int] = None
    assets: List[AssetRef] = []


class NetworkConnection(BaseModel):
    from_asset: str
    to_asset: str
    transaction_id: str
    depth: int


class NetworkStats(BaseModel):
    total_nodes: int
    total_transactions: int
    depth_distribution: Dict[int, int]
    transaction_types: Dict[str, int]
    build_time_ms: int


class NetworkResponse(BaseModel):
    focal: AssetRef
    family: List[str]
    nodes: List[NetworkNode]
    transactions: List[NetworkTransaction]
    connections: List[NetworkConnection]
    stats: NetworkStats


class SyncResult(BaseModel):
    league_id: str
    users: int = 0
    rosters: int = 0
    transactions: int = 0
    drafts: int = 0
    draft_picks: int = 0
    traded_picks: int = 0


class RebuildResult(BaseModel):
    league_id: str
    family: List[str]
    leagues_processed: int
    events_written: int
    warnings: List[str] = []


TradeBranch.model_rebuild()
TradeTreeNode.model_rebuild()
