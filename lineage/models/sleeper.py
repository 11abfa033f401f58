from typing import List, Dict, Any, Optional, Union
from pydantic import BaseModel, ConfigDict


class SleeperModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class User(SleeperModel):
    user_id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar: Optional[str] = None


class League(SleeperModel):
    league_id: str
    name: Optional[str] = None
    season: str
    total_rosters: Optional[int] = None
    status: Optional[str] = None
    previous_league_id: Optional[str] = None
    settings: Dict[str, Any] = {}
    scoring_settings: Dict[str, Any] = {}
    roster_positions: List[str] = []


class Roster(SleeperModel):
    roster_id: int
    league_id: Optional[str] = None
    owner_id: Optional[str] = None
    players: Optional[List[str]] = None
    settings: Dict[str, Any] = {}
    metadata: Optional[Dict[str, Any]] = None


class Draft(SleeperModel):
    draft_id: str
    league_id: Optional[str] = None
    status: Optional[str] = None
    type: Optional[str] = None
    season: str
    start_time: Optional[int] = None
    settings: Dict[str, Any] = {}
    metadata: Optional[Dict[str, Any]] = None
    slot_to_roster_id: Optional[Dict[str, Optional[int]]] = None

    @property
    def rounds(self) -> Optional[int]:
        return self.settings.get("rounds")

    @property
    def teams(self) -> Optional[int]:
        return self.settings.get("teams")


class Pick(SleeperModel):
    """One selection made in a draft."""
    draft_id: Optional[str] = None
    player_id: Optional[str] = None
    pick_no: int
    round: int
    draft_slot: Optional[int] = None
    roster_id: Optional[int] = None
    picked_by: Optional[str] = None
    is_keeper: Optional[bool] = None
    metadata: Optional[Dict[str, Any]] = None


class Player(SleeperModel):
    player_id: str
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    position: Optional[str] = None
    team: Optional[str] = None
    status: Optional[str] = None

    @property
    def name(self) -> Optional[str]:
        if self.full_name:
            return self.full_name
        joined = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return joined or None


class DraftPickMovement(SleeperModel):
    season: str
    round: int
    roster_id: int  # ORIGINAL owner of the pick (who initially had this draft slot)
    owner_id: Optional[Union[int, str]] = None   # NEW owner after this trade
    previous_owner_id: Optional[Union[int, str]] = None  # Roster trading away the pick


class Transaction(SleeperModel):
    transaction_id: str
    league_id: Optional[str] = None
    type: str
    status: Optional[str] = None
    leg: Optional[int] = None
    created: Optional[int] = None
    status_updated: Optional[int] = None  # Unix timestamp in ms
    adds: Optional[Dict[str, Any]] = None
    drops: Optional[Dict[str, Any]] = None
    roster_ids: Optional[List[int]] = None
    draft_picks: Optional[List[DraftPickMovement]] = None
    metadata: Optional[Dict[str, Any]] = None


class TradedPick(SleeperModel):
    season: str
    round: int
    roster_id: int  # Original owner
    owner_id: int   # Current owner
    previous_owner_id: Optional[int] = None
