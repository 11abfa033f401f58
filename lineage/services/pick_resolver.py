"""
Draft pick identity resolution.

A draft selection says who picked and at which overall number, but not whose
original pick was spent when the picking manager holds several picks in the
same round. The ledger below reconstructs which picks each manager held going
into a draft; the resolver then assigns each selection one of them.
"""
import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..models.assets import AssetEvent, PickCandidate, PickResolution
from .roster_map import RosterOwnerMap, translate_roster

logger = logging.getLogger(__name__)

TieBreakStrategy = Callable[[List[PickCandidate], int, Optional[int]], Optional[PickCandidate]]


def prefer_traded_early(candidates: List[PickCandidate], pick_in_round: int,
                        round_size: Optional[int]) -> Optional[PickCandidate]:
    """
    Early in a round (first half) take a traded-in pick, later take the manager's own.

    Best effort only: it reflects how managers usually spend acquired picks and
    will be wrong for some drafts. Every resolution records its rule and
    candidates so mis-assignments can be found afterwards.
    """
    if not round_size:
        return None
    early = pick_in_round <= max(1, round_size // 2)
    for candidate in candidates:
        if candidate.is_traded == early:
            return candidate
    return None


def first_candidate(candidates: List[PickCandidate], pick_in_round: int,
                    round_size: Optional[int]) -> Optional[PickCandidate]:
    return candidates[0] if candidates else None


class PickLedger:
    """Every pick slot of each drafted season and who held it going into the draft."""

    def __init__(self):
        self._picks: Dict[Tuple[str, int, int], PickCandidate] = {}

    def __len__(self):
        return len(self._picks)

    def get(self, season: str, round: int, original_roster_id: int) -> Optional[PickCandidate]:
        return self._picks.get((str(season), int(round), int(original_roster_id)))

    def _ensure(self, season: str, round: int, original_roster_id: int,
                owner_map: RosterOwnerMap) -> PickCandidate:
        key = (str(season), int(round), int(original_roster_id))
        if key not in self._picks:
            user_id = owner_map.get(int(original_roster_id))
            self._picks[key] = PickCandidate(
                season=key[0],
                round=key[1],
                original_roster_id=key[2],
                original_user_id=user_id,
                current_user_id=user_id,
            )
        return self._picks[key]

    def add_natal_picks(self, season: str, rounds: int, owner_map: RosterOwnerMap):
        """Each roster of the drafting league starts with its own pick in every round."""
        for round in range(1, rounds + 1):
            for roster_id in sorted(owner_map):
                self._ensure(season, round, roster_id, owner_map)

    def apply_pick_trades(self, events: Iterable[AssetEvent], draft_league_id: str,
                          owner_maps: Dict[str, RosterOwnerMap],
                          warnings: Optional[List[str]] = None):
        """
        Replay pick trades in order. Trades made in an earlier season's league name
        the original roster in that league's numbering, so they are translated
        onto the drafting league's rosters through the manager who held them.
        """
        draft_map = owner_maps.get(draft_league_id, {})
        ordered = sorted(
            (e for e in events if e.asset_kind == "pick" and e.event_type in ("pick_trade", "commissioner")),
            key=lambda e: (e.event_time is None, e.event_time or 0),
        )
        for event in ordered:
            if event.pick_season is None or event.pick_round is None or event.pick_original_roster_id is None:
                continue
            original = event.pick_original_roster_id
            upstream_original = original
            if event.league_id != draft_league_id:
                source_map = owner_maps.get(event.league_id, {})
                translated = translate_roster(original, source_map, draft_map)
                if translated is None:
                    message = (
                        f"Pick {event.pick_season}-{event.pick_round}-{original} traded in league "
                        f"{event.league_id} has no matching roster in league {draft_league_id}"
                    )
                    logger.warning(message)
                    if warnings is not None:
                        warnings.append(message)
                elif translated != original:
                    original = translated
            candidate = self._ensure(event.pick_season, event.pick_round, original, draft_map)
            # Keep the identity the pick was first traded under so its events stay on one timeline
            if original != upstream_original and candidate.alias_roster_id is None:
                candidate.alias_roster_id = upstream_original
            if event.to_user_id is not None:
                candidate.current_user_id = event.to_user_id

    def apply_traded_picks(self, records: Iterable[Dict], owner_map: RosterOwnerMap):
        """Overlay the upstream traded-pick listing, which states the final holder of each pick."""
        for record in records:
            owner_id = record.get("owner_id")
            if owner_id is None:
                continue
            candidate = self._ensure(record["season"], record["round"], record["roster_id"], owner_map)
            user_id = owner_map.get(int(owner_id))
            if user_id is not None:
                candidate.current_user_id = user_id

    def held_by(self, season: str, round: int, user_id: Optional[str]) -> List[PickCandidate]:
        if user_id is None:
            return []
        held = [
            c for (s, r, _), c in self._picks.items()
            if s == str(season) and r == int(round) and c.current_user_id == user_id
        ]
        return sorted(held, key=lambda c: c.original_roster_id)


class PickIdentityResolver:
    """
    Assigns each draft selection to one physical pick from the ledger.

    Rules, first match wins: the only candidate; a candidate already holding
    this player (re-runs); the pick the draft board places in this slot; the
    only unused candidate; the tie-break strategy; the first unused candidate.
    A used pick is never handed to a different player.
    """

    def __init__(self, ledger: PickLedger, strategy: Optional[TieBreakStrategy] = prefer_traded_early):
        self.ledger = ledger
        self.strategy = strategy or first_candidate

    def resolve(self, season: Optional[str], round: int, user_id: Optional[str], player_id: str,
                pick_no: int = 0, round_size: Optional[int] = None, draft_slot: Optional[int] = None,
                slot_to_roster: Optional[Dict[str, Optional[int]]] = None) -> PickResolution:
        candidates = self.ledger.held_by(season, round, user_id) if season is not None else []
        snapshot = [c.model_copy() for c in candidates]

        rule, chosen = self._choose(candidates, player_id, pick_no, round_size, draft_slot, slot_to_roster)
        if chosen is not None:
            chosen.selected_player_id = player_id
        return PickResolution(rule=rule, pick=chosen.model_copy() if chosen else None, candidates=snapshot)

    def _choose(self, candidates: List[PickCandidate], player_id: str, pick_no: int,
                round_size: Optional[int], draft_slot: Optional[int],
                slot_to_roster: Optional[Dict[str, Optional[int]]]):
        if not candidates:
            return "none", None

        for candidate in candidates:
            if candidate.selected_player_id == player_id:
                return ("single" if len(candidates) == 1 else "reuse"), candidate

        unused = [c for c in candidates if c.selected_player_id is None]
        if not unused:
            return "exhausted", None
        if len(candidates) == 1:
            return "single", unused[0]

        if slot_to_roster and draft_slot is not None:
            slot_roster = slot_to_roster.get(str(draft_slot))
            for candidate in unused:
                if slot_roster is not None and candidate.original_roster_id == int(slot_roster):
                    return "draft_slot", candidate

        if len(unused) == 1:
            return "unused", unused[0]

        pick_in_round = ((pick_no - 1) % round_size) + 1 if round_size and pick_no else pick_no
        chosen = self.strategy(unused, pick_in_round, round_size)
        if chosen is not None:
            return "strategy", chosen
        return "fallback", unused[0]
